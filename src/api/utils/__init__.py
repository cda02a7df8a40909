"""Utility modules for API-specific functionality.

- **responses**: orjson response class and the success/error envelope builders
- **client_ip**: client IP resolution with opt-in proxy header support
"""
