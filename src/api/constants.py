"""API-related constants."""

# HTTP Headers
REQUEST_ID_HEADER = "X-Request-ID"
IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
RETRY_AFTER_HEADER = "Retry-After"

# Request handling
REQUEST_BODY_METHODS = {"POST", "PUT", "PATCH"}

# Content types
JSON_CONTENT_TYPES = {"application/json", "text/json"}

# Response headers applied to every response
NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "Expires": "0",
}
PERMISSIONS_POLICY = "geolocation=(), microphone=(), camera=(), payment=(), usb=()"
REFERRER_POLICY = "strict-origin-when-cross-origin"

# CORS
CORS_ALLOWED_METHODS = ("GET", "POST", "OPTIONS")
CORS_ALLOWED_HEADERS = (
    "Content-Type",
    "Authorization",
    "X-Request-ID",
    "Idempotency-Key",
)
CORS_EXPOSED_HEADERS = ("X-Request-ID", "Retry-After")

# Route names used as rate limit scopes
ROUTE_SCAN = "scan"
ROUTE_SIMULATE = "simulate"
ROUTE_APPLY = "apply"
ROUTE_LAUNCHPAD = "launchpad"
ROUTE_BAGS = "bags"
ROUTE_HELIUS = "helius"
ROUTE_SWAP = "swap"
ROUTE_FEATURES = "features"
