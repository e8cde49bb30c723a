"""HTTP boundary for the extraction pipeline."""

from .app import create_app

__all__ = ["create_app"]
