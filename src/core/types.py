"""Type aliases for dynamic data structures throughout the application.

This module centralizes type definitions for data that cannot be statically
typed, providing clear semantic meaning for validation results shared by
the security layer, the exception hierarchy and the exception handlers.

All types defined here should be JSON-serializable to support logging
and API responses.
"""

# A single field-level validation problem: {"path": "a.b", "message": "..."}
type Issue = dict[str, str]
