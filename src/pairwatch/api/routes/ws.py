"""WebSocket hub pushing panel views to connected clients."""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from pairwatch.market_data.state import PanelView

log = structlog.get_logger(__name__)

router = APIRouter()


class PanelHub:
    """Manages WebSocket connections and broadcasts panel views to all clients."""

    def __init__(self) -> None:
        self.connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        """Accept a WebSocket connection and add it to the active connections list."""
        await ws.accept()
        self.connections.append(ws)
        log.info("panel_ws_connected", total=len(self.connections))

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket connection from the active connections list."""
        if ws in self.connections:
            self.connections.remove(ws)
        log.info("panel_ws_disconnected", total=len(self.connections))

    async def broadcast(self, view: PanelView) -> None:
        """Send a view as JSON to all connected clients, removing broken connections."""
        if not self.connections:
            return
        message = json.dumps(view.to_dict())
        for ws in self.connections.copy():
            try:
                await ws.send_text(message)
            except Exception:
                self.connections.remove(ws)
                log.warning("panel_ws_broadcast_error", remaining=len(self.connections))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time panel updates."""
    hub: PanelHub = websocket.app.state.hub
    await hub.connect(websocket)

    # Current view first so a client never waits a full tick
    engine = websocket.app.state.engine
    if engine is not None and engine.active_pair is not None:
        view = engine.get_snapshot(engine.active_pair.pair_id)
        if view is not None:
            await websocket.send_text(json.dumps(view.to_dict()))

    try:
        while True:
            # Consume messages to keep connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)
