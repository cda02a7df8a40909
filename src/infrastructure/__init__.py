"""Infrastructure layer for external system integrations.

Key responsibilities:
- **Upstream APIs**: A pooled ``httpx.AsyncClient`` shared by all routes and
  the ``UpstreamClient`` that guards, authenticates, traces and maps the
  errors of every outbound call

There is no persistence layer: every value the service handles lives for
one request, except the in-memory rate limit counters.
"""
