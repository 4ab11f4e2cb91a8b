"""HTTP and WebSocket read surface for the pair panel."""

from pairwatch.api.app import create_app

__all__ = ["create_app"]
