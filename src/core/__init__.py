"""Core infrastructure package for shared application functionality.

This package provides the foundational components used across all layers
of the Bags Shield API:

- **config**: Centralized configuration management with environment support
- **context**: Request context and request ID management
- **exceptions**: Error codes and the ShieldError hierarchy
- **error_context**: Secret redaction for safe logging and error payloads
- **logging**: Structured logging with a redacting patcher
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for JSON payloads and context dictionaries
"""
