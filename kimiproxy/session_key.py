from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fastapi import Request, Response

from .settings import settings


SESSION_HEADER = "X-Session-Id"
SESSION_COOKIE = "sid"


@dataclass(frozen=True)
class ResolvedSessionKey:
    key: str
    source: str  # body | header | cookie | generated

    @property
    def generated(self) -> bool:
        return self.source == "generated"


def _clean(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def resolve_session_key(
    request: Request, body: Optional[Mapping[str, Any]] = None
) -> ResolvedSessionKey:
    """
    Work out which conversation a request belongs to.

    Precedence: body ``session_id`` > body ``user`` > X-Session-Id header
    > ``sid`` cookie > a freshly generated key.
    """
    if body:
        for field_name in ("session_id", "user"):
            value = _clean(body.get(field_name))
            if value:
                return ResolvedSessionKey(value, "body")

    value = _clean(request.headers.get(SESSION_HEADER))
    if value:
        return ResolvedSessionKey(value, "header")

    value = _clean(request.cookies.get(SESSION_COOKIE))
    if value:
        return ResolvedSessionKey(value, "cookie")

    return ResolvedSessionKey(uuid.uuid4().hex, "generated")


def set_session_cookie(response: Response, key: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        key,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
    )


__all__ = [
    "ResolvedSessionKey",
    "SESSION_COOKIE",
    "SESSION_HEADER",
    "resolve_session_key",
    "set_session_cookie",
]
