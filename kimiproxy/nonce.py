"""
Anti-CSRF nonce handling for kimi-ai.chat.

The chat page embeds a WordPress AJAX config object such as::

    var kimi_ajax = {"ajax_url": "...", "nonce": "abc123"};

Every AJAX call must carry that nonce. It stays valid for a while, so
NonceSource caches one value and shares a single in-flight fetch between
concurrent callers. Callers ask for a forced refresh when they suspect
the cached value has expired.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Optional

import httpx

from .exceptions import UpstreamFetchError
from .logging_config import logger
from .settings import build_upstream_headers, settings


NONCE_PATTERN = re.compile(r"var kimi_ajax = ({.*?});")


def extract_nonce(html: str) -> str:
    """
    Pull the nonce out of the chat page HTML.
    """
    match = NONCE_PATTERN.search(html)
    if not match:
        raise UpstreamFetchError("'kimi_ajax' variable not found in chat page HTML")

    try:
        ajax_data = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise UpstreamFetchError(f"'kimi_ajax' object is not valid JSON: {exc}") from exc

    nonce = ajax_data.get("nonce") if isinstance(ajax_data, dict) else None
    if not isinstance(nonce, str) or not nonce:
        raise UpstreamFetchError("'kimi_ajax' object has no 'nonce' field")
    return nonce


class NonceSource:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._value: Optional[str] = None
        self._inflight: Optional[asyncio.Task[str]] = None

    @property
    def value(self) -> Optional[str]:
        return self._value

    def invalidate(self) -> None:
        self._value = None

    async def get(self, force_refresh: bool = False) -> str:
        """
        Return the cached nonce, fetching it when missing or when
        ``force_refresh`` is set. Raises UpstreamFetchError.
        """
        if force_refresh:
            self._value = None
        elif self._value is not None:
            return self._value

        if force_refresh or self._inflight is None:
            self._inflight = asyncio.ensure_future(self._fetch())

        # Shield so a cancelled waiter does not abort the shared fetch.
        return await asyncio.shield(self._inflight)

    async def _fetch(self) -> str:
        task = asyncio.current_task()
        try:
            nonce = await self._scrape()
        except UpstreamFetchError:
            if self._inflight is task:
                self._inflight = None
            raise
        if self._inflight is task:
            self._value = nonce
            self._inflight = None
        return nonce

    async def _scrape(self) -> str:
        url = settings.chat_page_url
        logger.info("Fetching a fresh nonce from %s", url)
        try:
            resp = await self._client.get(url, headers=build_upstream_headers())
        except httpx.HTTPError as exc:
            logger.warning("Nonce fetch transport error for %s: %s", url, exc)
            raise UpstreamFetchError(f"Failed to load chat page: {exc}") from exc

        if not resp.is_success:
            logger.warning(
                "Nonce fetch got HTTP %s from %s", resp.status_code, url
            )
            raise UpstreamFetchError(
                f"Failed to load chat page, status code {resp.status_code}"
            )

        try:
            nonce = extract_nonce(resp.text)
        except UpstreamFetchError as exc:
            logger.warning("Nonce extraction failed: %s", exc)
            raise
        logger.info("Fetched new nonce %s", nonce)
        return nonce


__all__ = ["NONCE_PATTERN", "NonceSource", "extract_nonce"]
