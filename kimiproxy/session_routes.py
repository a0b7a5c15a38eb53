from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, Response

from .deps import get_session_store
from .logging_config import logger
from .schemas import SessionResetResponse, SessionStateResponse
from .session_key import resolve_session_key, set_session_cookie
from .session_store import SessionStore


router = APIRouter(tags=["sessions"])


@router.get(
    "/v1/session",
    response_model=SessionStateResponse,
    response_model_exclude_none=True,
)
async def get_session_endpoint(
    request: Request,
    response: Response,
    store: SessionStore = Depends(get_session_store),
) -> SessionStateResponse:
    """
    Return the conversation state for the caller's session key.
    """
    resolved = resolve_session_key(request)
    if resolved.generated:
        set_session_cookie(response, resolved.key)

    info = store.info(resolved.key)
    if info is None:
        return SessionStateResponse(session_key=resolved.key)
    return SessionStateResponse(
        session_key=resolved.key,
        upstream_session_id=info.upstream_session_id,
        turn_count=info.turn_count,
        ttl_ms_remaining=int(info.ttl_remaining * 1000),
    )


@router.post("/v1/session/reset", response_model=SessionResetResponse)
async def reset_session_endpoint(
    request: Request,
    response: Response,
    raw_body: Optional[Dict[str, Any]] = Body(default=None),
    store: SessionStore = Depends(get_session_store),
) -> SessionResetResponse:
    """
    Drop the caller's conversation history.
    """
    resolved = resolve_session_key(request, raw_body)
    if resolved.generated:
        set_session_cookie(response, resolved.key)

    cleared = store.clear(resolved.key)
    logger.info(
        "Session reset for '%s' (source=%s, cleared=%s)",
        resolved.key,
        resolved.source,
        cleared,
    )
    return SessionResetResponse(cleared=cleared)


__all__ = ["router"]
