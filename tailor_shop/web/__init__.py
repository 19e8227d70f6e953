"""HTTP interface for the tailor shop."""

from .app import create_app

__all__ = ["create_app"]
