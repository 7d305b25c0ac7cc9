"""API endpoints."""

from fetchbay.api import auth, config, download, health, jobs, metrics

__all__ = [
    "auth",
    "config",
    "download",
    "health",
    "jobs",
    "metrics",
]
