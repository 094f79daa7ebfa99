"""
API package for the Photo Gallery Backend.

This module intentionally exposes the FastAPI `app` for ASGI servers and tooling.
"""

from src.api.main import app  # noqa: F401
