"""Structured logging with secret redaction and cloud formatters.

This module configures Loguru for the whole service. Every record goes
through a redacting patcher before reaching any sink, so upstream API keys,
bearer tokens and other credentials never end up in log storage, whatever
formatter is active.

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: Generic structured format (self-hosted)
- **gcp**: Google Cloud Logging format
- **aws**: CloudWatch Logs Insights optimized format

Standard library loggers (uvicorn, httpx) are intercepted and routed through
Loguru so their records are redacted and formatted the same way.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from typing import Any, Final, Protocol, cast

import orjson
from loguru import logger

from src.core.config import get_settings
from src.core.error_context import redact_secrets, sanitize_value


class _LoggingState:
    """Simple state holder to track if logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()


class LogConfigProtocol(Protocol):
    """Protocol for log configuration objects."""

    @property
    def log_level(self) -> str: ...

    @property
    def log_formatter_type(self) -> str | None: ...


class SettingsProtocol(Protocol):
    """Protocol for settings objects that setup_logging can accept."""

    @property
    def debug(self) -> bool: ...

    @property
    def log_config(self) -> LogConfigProtocol: ...


DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
REQUEST_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "client_host",
    "upstream",
)


def redact_record(record: dict[str, Any]) -> None:
    """Loguru patcher that scrubs secrets from a record in place.

    The message is scanned for credential-like substrings and every bound
    extra field is sanitized by name and by value.
    """
    record["message"] = redact_secrets(record["message"])
    extra = record["extra"]
    for key, value in list(extra.items()):
        if key.startswith("_"):
            continue
        extra[key] = sanitize_value(value, key)


def _escape(value: object) -> str:
    """Escape format braces and colour markup (``<root>`` is not a tag)."""
    return str(value).replace("{", "{{").replace("}", "}}").replace("<", r"\<")


def _format_priority_field(field: str, value: object) -> str:
    text = str(value)
    if field == "request_id" and len(text) > REQUEST_ID_DISPLAY_LENGTH:
        text = text[:REQUEST_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        text = f"{text}ms"
    elif field == "status_code":
        colour = {"2": "green", "3": "yellow", "4": "red", "5": "red"}.get(text[:1])
        if colour:
            return f"<{colour}>{_escape(text)}</{colour}>"
    return _escape(text)


def _format_extra_field(key: str, value: object) -> str:
    str_value = str(value)
    if len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Format the bound context of a record, priority fields first."""
    context_parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    context_parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    return context_parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Format log record for console with all context fields visible.

    Args:
        record: Loguru record to format.

    Returns:
        str: Loguru format string for this record.
    """
    try:
        time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        parts = [
            f"<green>{time_str}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
        ]

        if context_parts := _format_context_fields(record.get("extra", {})):
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))

        if record.get("exception"):
            parts.append("\n{exception}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to Loguru.

    This handler captures logs from libraries using standard logging
    and forwards them to Loguru for consistent formatting.
    """

    def emit(self, record: logging.LogRecord) -> None:
        """Forward log record to Loguru.

        Args:
            record: Standard library LogRecord to forward.
        """
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra: dict[str, Any] = {}
        if record.name == "uvicorn.access" and hasattr(record, "scope"):
            scope = record.scope
            extra["method"] = scope.get("method", "")
            extra["path"] = scope.get("path", "")
            extra["client_host"] = (scope.get("client") or ["unknown"])[0]

        logger.opt(depth=depth, exception=record.exc_info).bind(**extra).log(
            level, record.getMessage()
        )


def _dumps(log_entry: dict[str, Any]) -> str:
    return orjson.dumps(log_entry, default=str).decode() + "\n"


def _public_extra(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.get("extra", {}).items() if not k.startswith("_")}


def serialize_for_json(record: dict[str, Any]) -> str:
    """Format log record as generic JSON for self-hosted deployments."""
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    log_entry.update(_public_extra(record))

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": redact_secrets(str(exc.value)) if exc.value else None,
        }

    return _dumps(log_entry)


def serialize_for_gcp(record: dict[str, Any]) -> str:
    """Format log record for GCP Cloud Logging.

    Follows GCP structured logging format:
    https://cloud.google.com/logging/docs/structured-logging
    """
    severity_mapping = {
        "TRACE": "DEBUG",
        "DEBUG": "DEBUG",
        "INFO": "INFO",
        "SUCCESS": "INFO",
        "WARNING": "WARNING",
        "ERROR": "ERROR",
        "CRITICAL": "CRITICAL",
    }

    settings = get_settings()
    log_entry: dict[str, Any] = {
        "severity": severity_mapping.get(record["level"].name, "INFO"),
        "message": record["message"],
        "timestamp": record["time"].isoformat(),
        "serviceContext": {
            "service": settings.app_name,
            "version": settings.app_version,
        },
    }

    labels = {"function": record["function"], "line": str(record["line"])}
    extra = _public_extra(record)
    if request_id := extra.pop("request_id", None):
        labels["request_id"] = str(request_id)
    if fingerprint := extra.get("fingerprint"):
        labels["error_fingerprint"] = str(fingerprint)[:8]
    if extra:
        log_entry["jsonPayload"] = extra
    log_entry["logging.googleapis.com/labels"] = labels

    if record.get("exception") or record["level"].name in {"ERROR", "CRITICAL"}:
        log_entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }

    return _dumps(log_entry)


def serialize_for_aws(record: dict[str, Any]) -> str:
    """Format log record for AWS CloudWatch Logs Insights."""
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    extra = _public_extra(record)
    if request_id := extra.pop("request_id", None):
        log_entry["requestId"] = request_id
    for key, value in extra.items():
        log_entry.setdefault(key, value)

    if exc := record.get("exception"):
        log_entry["error"] = {
            "type": exc.type.__name__ if exc.type else None,
            "message": redact_secrets(str(exc.value)) if exc.value else None,
        }

    return _dumps(log_entry)


type FormatterFunc = Callable[[dict[str, Any]], str]

LOG_FORMATTERS: dict[str, FormatterFunc | None] = {
    "console": None,
    "json": serialize_for_json,
    "gcp": serialize_for_gcp,
    "aws": serialize_for_aws,
}


def detect_environment() -> str:
    """Auto-detect the formatter from cloud environment variables."""
    if os.getenv("K_SERVICE"):  # Cloud Run
        return "gcp"
    if os.getenv("AWS_EXECUTION_ENV"):  # AWS Lambda/ECS
        return "aws"
    return "console"


def setup_logging(settings: SettingsProtocol) -> None:
    """Configure Loguru with the redacting patcher and a formatter.

    Args:
        settings: Application settings containing log configuration.

    Note:
        This function ensures it's only called once using module state.
    """
    if _state.configured:
        return

    logger.remove()
    logger.configure(patcher=cast("Any", redact_record))

    formatter_type = settings.log_config.log_formatter_type or detect_environment()
    formatter = LOG_FORMATTERS.get(formatter_type)

    if formatter is None:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:
        structured = formatter

        def structured_sink(message: object) -> None:
            """Write one structured record per line."""
            if hasattr(message, "record"):
                sys.stdout.write(structured(message.record))
                sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,  # No variable values in production
            backtrace=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        if not uvicorn_logger.handlers:
            uvicorn_logger.handlers = [InterceptHandler()]
            uvicorn_logger.setLevel(logging.INFO)
            uvicorn_logger.propagate = False

    # httpx logs every request URL at INFO, which is noise next to our own logs
    for logger_name in ("httpx", "httpcore"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger.info(
        "Logging configured with {} formatter",
        formatter_type,
        formatter_type=formatter_type,
        log_level=settings.log_config.log_level,
    )

    _state.configured = True
