"""
Scripted stand-in for kimi-ai.chat, served through httpx.MockTransport.
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx


CHAT_PAGE_URL = "https://kimi.test/chat/"
UPSTREAM_URL = "https://kimi.test/wp-admin/admin-ajax.php"


def chat_page_html(nonce: str) -> str:
    ajax = {"ajax_url": UPSTREAM_URL, "nonce": nonce}
    return (
        "<html><head><script>"
        f"var kimi_ajax = {json.dumps(ajax)};"
        "</script></head><body>chat</body></html>"
    )


class FakeKimi:
    """
    Scripted kimi-ai.chat: serves the chat page with an incrementing nonce
    and answers AJAX calls from a queue of canned replies.

    Each queued AJAX reply is either an httpx.Response or a str, the
    latter meaning a successful reply with that message text.
    """

    def __init__(self) -> None:
        self.page_calls = 0
        self.page_statuses: List[int] = []
        self.ajax_replies: List[Any] = []
        self.ajax_forms: List[Dict[str, str]] = []
        self.default_reply = "Hello there"

    @property
    def ajax_calls(self) -> int:
        return len(self.ajax_forms)

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if request.method == "GET" and url == CHAT_PAGE_URL:
            self.page_calls += 1
            status = self.page_statuses.pop(0) if self.page_statuses else 200
            if status != 200:
                return httpx.Response(status, text="maintenance")
            return httpx.Response(200, text=chat_page_html(f"nonce-{self.page_calls}"))

        if request.method == "POST" and url == UPSTREAM_URL:
            form = {
                k: v[0]
                for k, v in parse_qs(request.content.decode("utf-8")).items()
            }
            self.ajax_forms.append(form)
            reply = self.ajax_replies.pop(0) if self.ajax_replies else self.default_reply
            if isinstance(reply, httpx.Response):
                return reply
            return httpx.Response(200, json={"success": True, "data": {"message": reply}})

        return httpx.Response(404, json={"error": "unexpected mock path", "url": url})


def rejected(reason: str = "Nonce verification failed") -> httpx.Response:
    return httpx.Response(200, json={"success": False, "data": reason})


def parse_sse(text: str) -> List[Optional[Dict[str, Any]]]:
    """
    Split an SSE body into decoded JSON payloads; ``[DONE]`` becomes None.
    """
    frames: List[Optional[Dict[str, Any]]] = []
    for block in text.split("\n\n"):
        if not block.strip():
            continue
        assert block.startswith("data: "), block
        data = block[len("data: "):]
        frames.append(None if data == "[DONE]" else json.loads(data))
    return frames




def make_client(fake: FakeKimi) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake.handle), timeout=30.0)
