"""HTTP API for raters and dispatchers."""

from .app import create_app

__all__ = ["create_app"]
