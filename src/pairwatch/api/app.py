"""FastAPI application factory with the panel WebSocket hub."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from pairwatch.api.routes import actions, api, ws
from pairwatch.api.routes.ws import PanelHub


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to wire the engine into ``app.state.engine``.

    Returns:
        Configured FastAPI application with WebSocket hub and routes.
    """
    app = FastAPI(
        title="Pairwatch Market Data Panel",
        lifespan=lifespan,
    )

    # Store WebSocket hub on app state for access from route handlers
    app.state.hub = PanelHub()

    # Wired by main.py lifespan (or directly by tests)
    app.state.engine = None

    app.include_router(api.router, prefix="/api")
    app.include_router(actions.router, prefix="/actions")
    app.include_router(ws.router)

    return app
