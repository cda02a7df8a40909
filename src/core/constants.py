"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"
DEFAULT_HSTS_MAX_AGE = 31536000  # 1 year in seconds

# Safe JSON parsing
MAX_JSON_SIZE = 10 * 1024 * 1024  # 10 MiB
MAX_JSON_DEPTH = 32

# Request bodies (bytes)
MAX_BODY_BYTES = 64 * 1024

# URL handling
MAX_URL_LENGTH = 2048

# Solana
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
PUBKEY_MIN_LENGTH = 32
PUBKEY_MAX_LENGTH = 44
SIGNATURE_MIN_LENGTH = 86
SIGNATURE_MAX_LENGTH = 90
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"
