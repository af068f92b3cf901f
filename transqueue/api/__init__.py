"""HTTP API."""

from transqueue.api.app import create_app

__all__ = ["create_app"]
