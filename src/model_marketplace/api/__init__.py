"""HTTP API for The Elite Vibe marketplace."""

from .main import app, create_app

__all__ = ["app", "create_app"]
