"""Global exception handlers for the FastAPI application.

Every failure leaves the service as an error envelope. ``ShieldError``
subclasses carry their own status, code, client-safe details and extra
headers; framework exceptions are mapped onto the same codes; anything else
becomes a generic ``INTERNAL_ERROR`` whose details are only logged.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.utils.responses import error_response
from src.core.error_context import redact_secrets, sanitize_error_context
from src.core.exceptions import ErrorCode, ShieldError, UpstreamError
from src.core.types import Issue
from src.security.json_parser import ROOT_PATH

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"

HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.BAD_REQUEST,
    status.HTTP_401_UNAUTHORIZED: ErrorCode.UNAUTHORIZED,
    status.HTTP_403_FORBIDDEN: ErrorCode.FORBIDDEN,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.METHOD_NOT_ALLOWED,
    status.HTTP_413_CONTENT_TOO_LARGE: ErrorCode.PAYLOAD_TOO_LARGE,
    status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: ErrorCode.UNSUPPORTED_MEDIA_TYPE,
    status.HTTP_429_TOO_MANY_REQUESTS: ErrorCode.RATE_LIMIT_EXCEEDED,
    status.HTTP_501_NOT_IMPLEMENTED: ErrorCode.NOT_IMPLEMENTED,
}

# Headers a framework HTTPException may carry that are safe to relay
_RELAYED_HEADERS = {"allow", "retry-after", "www-authenticate"}


async def shield_error_handler(request: Request, exc: Exception) -> Response:
    """Handle ShieldError exceptions.

    Args:
        request: The FastAPI request that caused the exception
        exc: The ShieldError exception to handle

    Returns:
        Response: Error envelope with the status and headers of the error

    Raises:
        TypeError: If exc is not a ShieldError instance
    """
    # Type narrowing - we know this handler only receives ShieldError
    if not isinstance(exc, ShieldError):
        raise TypeError(f"Expected ShieldError, got {type(exc).__name__}")

    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "fingerprint": exc.fingerprint,
        },
    )
    if exc.cause is not None:
        error_context["cause_type"] = type(exc.cause).__name__
        error_context["cause_message"] = redact_secrets(str(exc.cause))

    if isinstance(exc, UpstreamError) or exc.should_alert:
        logger.error(
            "Handling {exception_type}: {message}",
            exception_type=type(exc).__name__,
            message=exc.message,
            **error_context,
        )
    else:
        logger.warning(
            "Handling {exception_type}: {message}",
            exception_type=type(exc).__name__,
            message=exc.message,
            **error_context,
        )

    return error_response(
        exc.error_code,
        exc.message,
        exc.status_code,
        details=exc.context or None,
        headers=exc.headers or None,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    Path and query parameter errors are reported like body validation
    failures: ``400 VALIDATION_ERROR`` with a ``{"path", "message"}`` issue
    list.

    Args:
        request: The FastAPI request that caused the exception
        exc: The RequestValidationError exception to handle

    Returns:
        Response: Error envelope with the issue list

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    issues: list[Issue] = []
    for error in exc.errors():
        # Drop the location kind ('path', 'query', 'body')
        location = error.get("loc", ())[1:]
        path = ".".join(str(part) for part in location) or ROOT_PATH
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        issues.append({"path": path, "message": message})

    logger.warning(
        "Request validation failed",
        request_method=request.method,
        request_path=str(request.url.path),
        issues=issues,
    )

    return error_response(
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        status.HTTP_400_BAD_REQUEST,
        details={"issues": issues},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException (unknown routes, disallowed methods...).

    Args:
        request: The FastAPI request that caused the exception
        exc: The HTTPException to handle

    Returns:
        Response: Error envelope keeping the status code of the exception

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    error_code = HTTP_STATUS_CODES.get(exc.status_code)
    if error_code is None:
        error_code = (
            ErrorCode.INTERNAL_ERROR
            if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
            else ErrorCode.BAD_REQUEST
        )

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        request_method=request.method,
        request_path=str(request.url.path),
        detail=exc.detail,
    )

    headers = {
        name: value
        for name, value in (exc.headers or {}).items()
        if name.lower() in _RELAYED_HEADERS
    }

    return error_response(
        error_code,
        str(exc.detail),
        exc.status_code,
        headers=headers or None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle generic exceptions.

    Clients only ever see a generic ``INTERNAL_ERROR``; the exception type,
    message and stack trace are logged through the redacting logger.

    Args:
        request: The FastAPI request that caused the exception
        exc: The unhandled exception

    Returns:
        Response: Error envelope with a generic message
    """
    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": str(request.url.path),
        },
    )

    logger.opt(exception=exc).error(
        "Unhandled exception: {exception_type}",
        exception_type=type(exc).__name__,
        **error_context,
    )

    return error_response(
        ErrorCode.INTERNAL_ERROR,
        INTERNAL_ERROR_MESSAGE,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(ShieldError, shield_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
