"""HTTP surface for the engine."""

from augur.api.app import create_app

__all__ = ["create_app"]
