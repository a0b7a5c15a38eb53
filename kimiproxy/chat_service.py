"""
Chat completion orchestration.

A request is handled in two phases:

- ``prepare`` resolves the session and validates the payload. Its
  ValidationError surfaces as an HTTP 400 because nothing has been
  streamed yet.
- ``stream`` talks to the upstream (one attempt with the cached nonce,
  one retry with a forced refresh), records the exchange in the session,
  and yields SSE frames. Upstream failures at this point can only be
  reported inside the stream.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

from .exceptions import (
    UpstreamCallError,
    UpstreamFetchError,
    ValidationError,
)
from .logging_config import logger
from .nonce import NonceSource
from .prompt import build_prompt
from .session_store import Session, SessionStore
from .settings import settings
from .sse import DONE_CHUNK, chat_completion_chunk, encode_sse_payload
from .upstream import UpstreamClient


# One attempt with the cached nonce plus one retry after a forced refresh.
MAX_ATTEMPTS = 2

UPSTREAM_FAILURE_MESSAGE = "重试后上游请求依然失败"


def flatten_content(content: Any) -> Optional[str]:
    """
    Best-effort extraction of plain text from an OpenAI message content,
    which may be a string or a list of ``{"type": "text", "text": ...}``
    parts.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return None


@dataclass
class ChatTurn:
    session: Session
    model: str
    user_content: str
    request_id: str = field(default_factory=lambda: f"chatcmpl-{uuid.uuid4()}")


class ChatCompletionService:
    def __init__(
        self,
        nonce_source: NonceSource,
        session_store: SessionStore,
        upstream: UpstreamClient,
        *,
        char_delay: Optional[float] = None,
    ) -> None:
        self.nonce_source = nonce_source
        self.session_store = session_store
        self.upstream = upstream
        self._char_delay = char_delay

    @property
    def char_delay(self) -> float:
        if self._char_delay is not None:
            return self._char_delay
        return settings.stream_char_delay

    def prepare(self, payload: Dict[str, Any], session_key: str) -> ChatTurn:
        """
        Resolve the caller's session and validate the request.
        Raises ValidationError (UnsupportedModelError for unknown models).
        """
        session = self.session_store.get_or_create(session_key)

        messages = payload.get("messages")
        if (
            not isinstance(messages, list)
            or not messages
            or not isinstance(messages[-1], dict)
            or messages[-1].get("role") != "user"
        ):
            raise ValidationError(
                "'messages' must be a non-empty list whose last entry has role 'user'"
            )

        user_content = flatten_content(messages[-1].get("content"))
        if user_content is None:
            raise ValidationError("The last user message has no text content")

        model = payload.get("model") or settings.default_model
        # Reject unknown models before any upstream traffic.
        self.upstream.resolve_model(model)

        return ChatTurn(session=session, model=model, user_content=user_content)

    async def complete(self, turn: ChatTurn, prompt: str) -> Optional[str]:
        """
        Run the bounded retry loop. Returns the assistant text, or None
        when every attempt failed.
        """
        session = turn.session
        for attempt in range(1, MAX_ATTEMPTS + 1):
            force_refresh = attempt > 1
            try:
                nonce = await self.nonce_source.get(force_refresh=force_refresh)
                return await self.upstream.send(
                    prompt, turn.model, session.upstream_session_id, nonce
                )
            except UpstreamFetchError as exc:
                reason = "nonce_fetch_failed"
                error: Exception = exc
            except UpstreamCallError as exc:
                reason = "upstream_call_failed"
                error = exc

            if attempt < MAX_ATTEMPTS:
                logger.warning(
                    "Attempt %d/%d for %s failed (reason=%s): %s; "
                    "refreshing nonce and retrying",
                    attempt,
                    MAX_ATTEMPTS,
                    turn.request_id,
                    reason,
                    error,
                )
            else:
                logger.error(
                    "Attempt %d/%d for %s failed (reason=%s): %s; giving up",
                    attempt,
                    MAX_ATTEMPTS,
                    turn.request_id,
                    reason,
                    error,
                )
        return None

    async def stream(self, turn: ChatTurn) -> AsyncIterator[bytes]:
        session = turn.session

        # Hold the session lock from reading history until the exchange is
        # recorded so concurrent turns on one key cannot lose context.
        async with session.lock:
            prompt = build_prompt(session.history, turn.user_content)
            reply = await self.complete(turn, prompt)
            if reply is not None:
                self.session_store.record_exchange(
                    session, turn.user_content, reply
                )
                logger.info(
                    "Session '%s' updated, %d messages in history",
                    session.session_key,
                    len(session.history),
                )

        if reply is None:
            yield encode_sse_payload(
                chat_completion_chunk(
                    turn.request_id, turn.model, UPSTREAM_FAILURE_MESSAGE, "stop"
                )
            )
            yield DONE_CHUNK
            return

        delay = self.char_delay
        for char in reply:
            yield encode_sse_payload(
                chat_completion_chunk(turn.request_id, turn.model, char)
            )
            if delay:
                await asyncio.sleep(delay)

        yield encode_sse_payload(
            chat_completion_chunk(turn.request_id, turn.model, "", "stop")
        )
        yield DONE_CHUNK


__all__ = [
    "ChatCompletionService",
    "ChatTurn",
    "MAX_ATTEMPTS",
    "UPSTREAM_FAILURE_MESSAGE",
    "flatten_content",
]
