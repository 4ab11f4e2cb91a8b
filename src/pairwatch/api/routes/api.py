"""JSON read endpoints for the active pair panel."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger(__name__)

router = APIRouter()


def _engine_unavailable() -> JSONResponse:
    return JSONResponse(content={"error": "Engine not running"}, status_code=503)


@router.get("/pairs/{pair_id}")
async def get_pair(request: Request, pair_id: str) -> JSONResponse:
    """Panel view for ``pair_id`` ("{chain}:{pair_address}")."""
    engine = request.app.state.engine
    if engine is None:
        return _engine_unavailable()

    view = engine.get_snapshot(pair_id)
    if view is None:
        return JSONResponse(
            content={"error": f"Pair not observed: {pair_id}"}, status_code=404
        )
    return JSONResponse(content=view.to_dict())


@router.get("/active")
async def get_active(request: Request) -> JSONResponse:
    """Panel view for whichever pair is currently active."""
    engine = request.app.state.engine
    if engine is None:
        return _engine_unavailable()

    pair = engine.active_pair
    if pair is None:
        return JSONResponse(content={"error": "No active pair"}, status_code=404)
    view = engine.get_snapshot(pair.pair_id)
    return JSONResponse(content=view.to_dict())
