import html
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
from fastapi import Body, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse

from .chat_service import ChatCompletionService
from .deps import get_chat_service, get_session_store
from .errors import bad_request
from .exceptions import UnsupportedModelError, ValidationError
from .logging_config import logger
from .nonce import NonceSource
from .schemas import HealthResponse, ModelInfo, ModelsResponse
from .session_key import resolve_session_key, set_session_cookie
from .session_routes import router as session_router
from .session_store import SessionStore
from .settings import settings
from .upstream import UpstreamClient


_REDACTED_HEADERS = {"authorization", "cookie"}


async def handle_unexpected_error(request: Request, exc: Exception):
    """
    Catch-all handler: log with an error id and return a structured 500.
    """
    error_id = uuid.uuid4().hex
    logger.exception(
        "Unhandled error %s %s (error_id=%s)",
        request.method,
        request.url.path,
        error_id,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "internal_error",
            "message": "Internal server error",
            "error_id": error_id,
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s v%s starting", settings.app_name, settings.app_version)
    yield
    await app.state.http_client.aclose()
    logger.info("%s stopped", settings.app_name)


def _render_index_page() -> str:
    name = html.escape(settings.app_name)
    version = html.escape(settings.app_version)
    models = "".join(
        f"<li><code>{html.escape(model_id)}</code></li>"
        for model_id in settings.known_models()
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{name}</title></head>
<body>
<h1>{name} v{version}</h1>
<p>OpenAI-compatible proxy for kimi-ai.chat. The service is running.</p>
<h2>Endpoints</h2>
<ul>
<li><code>GET /v1/models</code></li>
<li><code>POST /v1/chat/completions</code> (streams <code>text/event-stream</code>)</li>
<li><code>GET /v1/session</code></li>
<li><code>POST /v1/session/reset</code></li>
</ul>
<h2>Models</h2>
<ul>{models}</ul>
</body>
</html>
"""


def create_app(http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the FastAPI app together with the services it owns: one shared
    HTTP client, the nonce cache, the session store and the chat service.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.add_exception_handler(Exception, handle_unexpected_error)

    client = http_client or httpx.AsyncClient(
        timeout=settings.upstream_timeout, follow_redirects=True
    )
    session_store = SessionStore(
        settings.session_ttl_seconds,
        max_history_messages=settings.session_max_history_messages,
    )
    app.state.http_client = client
    app.state.session_store = session_store
    app.state.chat_service = ChatCompletionService(
        NonceSource(client),
        session_store,
        UpstreamClient(client),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(session_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Basic request/response logging with credentials redacted.
        """
        client_host = request.client.host if request.client else "-"
        headers_for_log = {
            k: ("***REDACTED***" if k.lower() in _REDACTED_HEADERS else v)
            for k, v in request.headers.items()
        }
        logger.info(
            "HTTP %s %s from %s, headers=%s",
            request.method,
            request.url.path,
            client_host,
            headers_for_log,
        )
        response = await call_next(request)
        logger.info(
            "HTTP %s %s -> %s", request.method, request.url.path, response.status_code
        )
        return response

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(_render_index_page())

    @app.get("/health", response_model=HealthResponse)
    async def health(
        store: SessionStore = Depends(get_session_store),
    ) -> HealthResponse:
        return HealthResponse(sessions=len(store))

    @app.get("/v1/models", response_model=ModelsResponse)
    async def list_models() -> ModelsResponse:
        created = int(time.time())
        return ModelsResponse(
            data=[
                ModelInfo(id=model_id, created=created, owned_by=settings.models_owned_by)
                for model_id in settings.known_models()
            ]
        )

    @app.post("/v1/chat/completions")
    async def chat_completions(
        request: Request,
        raw_body: Dict[str, Any] = Body(...),
        service: ChatCompletionService = Depends(get_chat_service),
    ):
        """
        Run one chat turn against kimi-ai.chat and stream the reply as
        OpenAI chat.completion.chunk events.
        """
        resolved = resolve_session_key(request, raw_body)
        messages = raw_body.get("messages")
        logger.info(
            "chat_completions: model=%r messages=%d session_key=%s (source=%s)",
            raw_body.get("model"),
            len(messages) if isinstance(messages, list) else 0,
            resolved.key,
            resolved.source,
        )

        try:
            turn = service.prepare(raw_body, resolved.key)
        except UnsupportedModelError as exc:
            raise bad_request(
                str(exc), details={"known_models": settings.known_models()}
            ) from exc
        except ValidationError as exc:
            raise bad_request(str(exc)) from exc

        response = StreamingResponse(
            service.stream(turn),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )
        if resolved.generated:
            set_session_cookie(response, resolved.key)
        return response

    return app


__all__ = ["create_app", "handle_unexpected_error", "lifespan"]
