from typing import Any, Dict, Mapping, Optional

import httpx

from .exceptions import UnsupportedModelError, UpstreamCallError
from .logging_config import logger
from .settings import build_upstream_headers, settings


SEND_MESSAGE_ACTION = "kimi_send_message"


class UpstreamClient:
    """
    Client for the kimi-ai.chat WordPress AJAX endpoint.

    The upstream answers each call with one JSON document:
    ``{"success": true, "data": {"message": "..."}}`` on success, or
    ``{"success": false, "data": "<reason>"}`` when it rejects the call
    (most commonly because the nonce expired).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        model_map: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._model_map = model_map

    @property
    def model_map(self) -> Mapping[str, str]:
        if self._model_map is not None:
            return self._model_map
        return settings.known_model_map

    def resolve_model(self, model_id: Any) -> str:
        """
        Map a public model id to the upstream model string.
        """
        if not isinstance(model_id, str) or model_id not in self.model_map:
            raise UnsupportedModelError(model_id)
        return self.model_map[model_id]

    def build_form(
        self, prompt: str, model_id: str, upstream_session_id: str, nonce: str
    ) -> Dict[str, str]:
        return {
            "action": SEND_MESSAGE_ACTION,
            "nonce": nonce,
            "message": prompt,
            "model": self.resolve_model(model_id),
            "session_id": upstream_session_id,
        }

    async def send(
        self, prompt: str, model_id: str, upstream_session_id: str, nonce: str
    ) -> str:
        """
        Send one prompt upstream and return the assistant text.

        Raises UnsupportedModelError before any network I/O for unknown
        models, and UpstreamCallError for HTTP or logical failures.
        """
        form = self.build_form(prompt, model_id, upstream_session_id, nonce)
        url = settings.upstream_url
        headers = build_upstream_headers()
        headers["Content-Type"] = "application/x-www-form-urlencoded; charset=UTF-8"

        logger.info(
            "Sending message upstream (session_id=%s, model=%s, prompt_chars=%d)",
            upstream_session_id,
            model_id,
            len(prompt),
        )
        try:
            resp = await self._client.post(url, data=form, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Upstream transport error for %s: %s", url, exc)
            raise UpstreamCallError(f"Upstream transport error: {exc}") from exc

        if not resp.is_success:
            logger.warning(
                "Upstream HTTP error %s for %s; response=%s",
                resp.status_code,
                url,
                resp.text[:500],
            )
            raise UpstreamCallError(
                f"Upstream API error, status code {resp.status_code}",
                status_code=resp.status_code,
            )

        # ValueError covers both invalid JSON and a body that is not UTF-8.
        try:
            body = resp.json()
        except ValueError as exc:
            logger.warning("Upstream returned non-JSON body: %s", resp.text[:500])
            raise UpstreamCallError(
                "Upstream returned a non-JSON body", status_code=resp.status_code
            ) from exc

        if not isinstance(body, dict) or not body.get("success"):
            data = body.get("data") if isinstance(body, dict) else None
            detail = data or "未知错误"
            logger.warning("Upstream rejected the request: %s", detail)
            raise UpstreamCallError(
                f"Upstream request failed: {detail}", status_code=resp.status_code
            )

        data = body.get("data")
        message = data.get("message") if isinstance(data, dict) else None
        if message is None:
            return ""
        return str(message)


__all__ = ["SEND_MESSAGE_ACTION", "UpstreamClient"]
