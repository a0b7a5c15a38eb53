from __future__ import annotations

from typing import Iterable

from .session_store import ChatMessage


USER_LABEL = "用户"
ASSISTANT_LABEL = "模型"


def _label(role: str) -> str:
    return USER_LABEL if role == "user" else ASSISTANT_LABEL


def build_prompt(history: Iterable[ChatMessage], new_user_content: str) -> str:
    """
    Collapse prior turns plus the new user message into the single
    ``message`` field kimi-ai.chat accepts, one ``<label>: <content>``
    line per turn.
    """
    lines = [f"{_label(msg.role)}: {msg.content}" for msg in history]
    lines.append(f"{USER_LABEL}: {new_user_content}")
    return "\n".join(lines).strip()


__all__ = ["ASSISTANT_LABEL", "USER_LABEL", "build_prompt"]
