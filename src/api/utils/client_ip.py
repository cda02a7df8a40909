"""Client IP resolution."""

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"


def get_client_ip(request: Request, *, trust_proxy_headers: bool) -> str:
    """Extract the client IP, honouring proxy headers only when trusted.

    Args:
        request: The incoming request.
        trust_proxy_headers: Whether ``X-Forwarded-For`` and ``X-Real-IP``
            are set by a trusted reverse proxy.

    Returns:
        str: The client IP address, or ``"unknown"``.
    """
    if trust_proxy_headers:
        # First entry is the original client
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first

        real_ip = request.headers.get("x-real-ip")
        if real_ip and real_ip.strip():
            return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT
