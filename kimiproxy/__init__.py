"""
kimi-ai-2api package.

This package contains:
- settings: configuration loaded from the environment / .env
- logging_config: shared logging setup
- nonce: anti-CSRF nonce scraping and caching
- session_store: in-memory conversation sessions with TTL
- prompt: collapse a conversation into one upstream prompt
- upstream: kimi-ai.chat AJAX client
- chat_service: request orchestration and SSE emission
- routes: FastAPI app factory and HTTP endpoints
"""
