"""In-memory conversation sessions.

Sessions expire lazily: every access compares the session deadline with
the store clock, so no background timers are involved. Each create or
touch moves the deadline ``ttl_seconds`` into the future.
"""
from __future__ import annotations

import asyncio
import random
import string
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .logging_config import logger

_BASE36 = string.digits + string.ascii_lowercase


def new_upstream_session_id() -> str:
    """Return an id shaped like ``session_<epoch-ms>_<9 base36 chars>``."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


@dataclass
class ChatMessage:
    role: str  # user|assistant
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class Session:
    session_key: str
    upstream_session_id: str
    expires_at: float
    history: List[ChatMessage] = field(default_factory=list)
    # Serializes turns on the same key; see ChatCompletionService.stream.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    # Set by SessionStore.clear so an in-flight turn does not bring it back.
    cleared: bool = field(default=False, repr=False)


@dataclass
class SessionInfo:
    upstream_session_id: str
    turn_count: int
    ttl_remaining: float  # seconds


class SessionStore:
    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_history_messages: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_history_messages = max_history_messages
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._sessions)

    def _live(self, key: str) -> Optional[Session]:
        session = self._sessions.get(key)
        if session is None:
            return None
        if session.expires_at <= self._clock():
            del self._sessions[key]
            logger.info("Session '%s' expired and was evicted", key)
            return None
        return session

    def get(self, key: str) -> Optional[Session]:
        return self._live(key)

    def get_or_create(self, key: str) -> Session:
        session = self._live(key)
        if session is not None:
            return session

        self.purge_expired()
        session = Session(
            session_key=key,
            upstream_session_id=new_upstream_session_id(),
            expires_at=self._clock() + self.ttl_seconds,
        )
        self._sessions[key] = session
        logger.info(
            "Created session for '%s': %s", key, session.upstream_session_id
        )
        return session

    def touch(self, key: str) -> None:
        session = self._live(key)
        if session is not None:
            session.expires_at = self._clock() + self.ttl_seconds

    def clear(self, key: str) -> bool:
        session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.cleared = True
        logger.info("Cleared session '%s'", key)
        return session.expires_at > self._clock()

    def info(self, key: str) -> Optional[SessionInfo]:
        session = self._live(key)
        if session is None:
            return None
        return SessionInfo(
            upstream_session_id=session.upstream_session_id,
            turn_count=len(session.history),
            ttl_remaining=max(0.0, session.expires_at - self._clock()),
        )

    def append_turn(
        self, session: Session, user_content: str, assistant_content: str
    ) -> None:
        """
        Record one completed exchange, trimming the oldest pairs when
        a history bound is configured.
        """
        session.history.append(ChatMessage(role="user", content=user_content))
        session.history.append(
            ChatMessage(role="assistant", content=assistant_content)
        )
        limit = self.max_history_messages
        if limit > 0 and len(session.history) > limit:
            # Drop whole user/assistant pairs from the front.
            excess = len(session.history) - limit
            excess += excess % 2
            del session.history[:excess]

    def record_exchange(
        self, session: Session, user_content: str, assistant_content: str
    ) -> None:
        """
        Store a completed exchange and refresh the session deadline.

        A session that expired while its upstream call was in flight is
        put back under its key. One that was reset, or whose key already
        belongs to a newer session, keeps the exchange out of the store.
        """
        key = session.session_key
        if session.cleared:
            logger.info("Session '%s' was reset during the call; exchange dropped", key)
            return

        live = self._live(key)
        if live is None:
            self._sessions[key] = session
            logger.info("Session '%s' expired during the call and was restored", key)
        elif live is not session:
            logger.warning(
                "Session '%s' was replaced during the call; exchange dropped", key
            )
            return

        self.append_turn(session, user_content, assistant_content)
        session.expires_at = self._clock() + self.ttl_seconds

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, s in self._sessions.items() if s.expires_at <= now]
        for key in expired:
            del self._sessions[key]
        if expired:
            logger.info("Evicted %d expired session(s)", len(expired))
        return len(expired)


__all__ = [
    "ChatMessage",
    "Session",
    "SessionInfo",
    "SessionStore",
    "new_upstream_session_id",
]
