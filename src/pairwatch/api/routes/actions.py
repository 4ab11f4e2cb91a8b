"""POST endpoints that change what the engine observes."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from pairwatch.models import PairRef, TokenRef

log = structlog.get_logger(__name__)

router = APIRouter()


def _token_from_body(raw: Any, role: str) -> TokenRef:
    if isinstance(raw, str):
        return TokenRef(address=raw)
    if not isinstance(raw, dict) or not raw.get("address"):
        raise ValueError(f"{role} must be an address or an object with 'address'")
    return TokenRef(
        address=str(raw["address"]),
        symbol=str(raw.get("symbol") or ""),
        name=str(raw.get("name") or ""),
    )


def pair_from_body(body: Any) -> PairRef:
    """Build a PairRef from a JSON body, raising ValueError when invalid."""
    if not isinstance(body, dict):
        raise ValueError("Body must be a JSON object")
    for field in ("pair_address", "chain", "base_token", "quote_token"):
        if not body.get(field):
            raise ValueError(f"Missing required field: {field}")
    return PairRef(
        pair_address=str(body["pair_address"]),
        chain=str(body["chain"]),
        base_token=_token_from_body(body["base_token"], "base_token"),
        quote_token=_token_from_body(body["quote_token"], "quote_token"),
    )


@router.post("/active-pair")
async def set_active_pair(request: Request) -> JSONResponse:
    """Switch the observed pair and return its (initially loading) view.

    Expects JSON body with: pair_address, chain, base_token, quote_token.
    Tokens are either an address string or {address, symbol, name}.
    """
    engine = request.app.state.engine
    if engine is None:
        return JSONResponse(content={"error": "Engine not running"}, status_code=503)

    try:
        body = await request.json()
    except Exception:
        return JSONResponse(
            content={"error": "Invalid JSON body"}, status_code=400
        )

    try:
        pair = pair_from_body(body)
    except ValueError as e:
        return JSONResponse(content={"error": str(e)}, status_code=400)

    view = await engine.set_active_pair(pair)
    log.info("active_pair_set_via_api", pair_id=pair.pair_id)
    return JSONResponse(content=view.to_dict())
