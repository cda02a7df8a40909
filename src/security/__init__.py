"""Inbound request hardening shared by every API route.

Each module is an independent building block invoked once per request:

- **json_parser**: bounds-checked JSON decoding (size, then nesting depth)
- **sanitizer**: per-field string, number, key and handle sanitizers
- **schemas**: strict pydantic payload schemas built on the sanitizers
- **validation**: the parse -> sanitize -> schema -> domain rule pipeline
- **ssrf**: the outbound URL guard applied before any server-side fetch
- **rate_limit**: process-local fixed-window counters for IPs and
  idempotency keys
"""
