from __future__ import annotations

from typing import Optional


class ValidationError(ValueError):
    """Raised when a chat request is rejected before any upstream call."""


class UnsupportedModelError(ValidationError):
    """Raised for a model id outside the configured known set."""

    def __init__(self, model: object):
        self.model = model
        super().__init__(f"Unsupported model: {model!r}")


class UpstreamError(RuntimeError):
    """Base class for failures talking to kimi-ai.chat."""


class UpstreamFetchError(UpstreamError):
    """Raised when the nonce cannot be scraped from the chat page."""


class UpstreamCallError(UpstreamError):
    """Raised when the AJAX chat call fails at the HTTP or logical level."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


__all__ = [
    "ValidationError",
    "UnsupportedModelError",
    "UpstreamError",
    "UpstreamFetchError",
    "UpstreamCallError",
]
