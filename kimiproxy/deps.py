from fastapi import Request

from .chat_service import ChatCompletionService
from .session_store import SessionStore


def get_session_store(request: Request) -> SessionStore:
    """
    Process-wide session store created by create_app().
    Tests override this dependency with their own store.
    """
    return request.app.state.session_store


def get_chat_service(request: Request) -> ChatCompletionService:
    """
    Process-wide chat service created by create_app().
    """
    return request.app.state.chat_service
