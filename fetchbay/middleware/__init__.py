"""Middleware package for the API."""

from fetchbay.middleware.auth import SessionAuth, get_auth, require_session

__all__ = [
    "SessionAuth",
    "get_auth",
    "require_session",
]
