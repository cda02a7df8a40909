"""Pydantic models describing the API responses.

Request payload schemas live in ``src.security.schemas``; this package only
holds the response envelope shared by every route.
"""
