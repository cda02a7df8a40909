"""HTTP API layer of the Bags Shield API.

Key components:
- **main**: Application factory and lifecycle management
- **dependencies**: Per-route guards (rate limit, idempotency, JSON body,
  credentials, feature flags)
- **middleware**: Cross-cutting concerns for all requests
- **routes**: Thin backend-for-frontend handlers, local or forwarding
- **schemas**: The response envelope
- **utils**: orjson responses and client IP resolution

Every route composes the hardening layer of ``src.security`` in the same
order: request ID, rate limit, safe JSON parse, sanitize and validate, SSRF
guard when fetching, then compute or forward, then the envelope.
"""
