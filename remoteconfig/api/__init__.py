"""HTTP surface of the template service."""

from remoteconfig.api.main import create_app

__all__ = ["create_app"]
