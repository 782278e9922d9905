"""FastAPI transport for the session engine."""

from screenguide.server.app import create_app

__all__ = ["create_app"]
