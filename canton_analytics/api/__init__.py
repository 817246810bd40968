"""HTTP API for Canton Network analytics."""

from canton_analytics.api.main import create_app

__all__ = ["create_app"]
