"""HTTP interface for the manufacturing marketplace."""

from .app import create_app

__all__ = ["create_app"]
