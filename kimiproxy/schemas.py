from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    sessions: int = 0


class ModelInfo(BaseModel):
    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelsResponse(BaseModel):
    object: str = "list"
    data: List[ModelInfo] = Field(default_factory=list)


class SessionStateResponse(BaseModel):
    """
    Session inspection payload; the upstream fields are omitted when the
    key has no live session.
    """

    session_key: str
    upstream_session_id: Optional[str] = None
    turn_count: Optional[int] = None
    ttl_ms_remaining: Optional[int] = None


class SessionResetResponse(BaseModel):
    ok: bool = True
    cleared: bool


__all__ = [
    "HealthResponse",
    "ModelInfo",
    "ModelsResponse",
    "SessionResetResponse",
    "SessionStateResponse",
]
