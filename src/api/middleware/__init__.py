"""FastAPI middleware package for cross-cutting request/response concerns.

- **SecurityHeadersMiddleware**: no-store caching and security headers
- **RequestContextMiddleware**: request ID, client IP and the last-resort
  ``INTERNAL_ERROR`` envelope
- **ShieldCORSMiddleware**: origin allowlist and ``204`` answers to OPTIONS
- **RequestLoggingMiddleware**: structured logging with performance tracking
- **error_handler**: exception handlers rendering the error envelope

Middleware are executed in a specific order (outermost first):
1. Security headers (first to process, last to respond)
2. Request context (request ID and client IP, so preflights carry one too)
3. CORS (answers OPTIONS before routing)
4. Request logging (logs with request context)
"""
