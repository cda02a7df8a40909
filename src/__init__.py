"""Bags Shield API - request-hardening backend for a Solana token scanner.

The service hosts the backend-for-frontend routes of the Bags Shield web
application, built with Python 3.13+ and FastAPI.

Architecture Overview:
- **API Layer**: FastAPI routes, guards and middleware
- **Security Layer**: Safe JSON parsing, sanitizers, strict schemas, the
  SSRF guard and the rate limiter
- **Core Layer**: Configuration, errors, logging and tracing
- **Infrastructure Layer**: The pooled client for Bags, Helius and Jupiter

Every route composes the security layer in the same order before it
computes a local answer or forwards to an upstream, and every answer is
wrapped in the same response envelope.
"""
