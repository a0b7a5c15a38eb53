from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)


def _default_model_map() -> Dict[str, str]:
    return {
        "kimi-k2-instruct-0905": "moonshotai/Kimi-K2-Instruct-0905",
        "kimi-k2-instruct": "moonshotai/Kimi-K2-Instruct",
    }


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field("kimi-ai-2api", alias="APP_NAME")
    app_version: str = Field("1.0.0", alias="APP_VERSION")

    host: str = Field("0.0.0.0", alias="HOST")
    port: int = Field(8088, alias="PORT")

    # Conversation sessions
    session_ttl_seconds: int = Field(
        3600,
        alias="SESSION_CACHE_TTL",
        description="Idle lifetime of a conversation session, in seconds",
    )
    session_max_history_messages: int = Field(
        0,
        alias="SESSION_MAX_HISTORY_MESSAGES",
        description="Keep at most this many history messages per session; 0 means unbounded",
        ge=0,
    )

    # kimi-ai.chat upstream
    upstream_url: str = Field(
        "https://kimi-ai.chat/wp-admin/admin-ajax.php",
        alias="UPSTREAM_URL",
    )
    chat_page_url: str = Field(
        "https://kimi-ai.chat/chat/",
        alias="CHAT_PAGE_URL",
        description="HTML page the anti-CSRF nonce is scraped from",
    )
    upstream_user_agent: str = Field(DEFAULT_USER_AGENT, alias="UPSTREAM_USER_AGENT")
    upstream_timeout: float = Field(120.0, alias="UPSTREAM_TIMEOUT")

    # Models
    default_model: str = Field("kimi-k2-instruct-0905", alias="DEFAULT_MODEL")
    known_model_map: Dict[str, str] = Field(
        default_factory=_default_model_map,
        alias="MODEL_MAP",
        description="JSON object mapping public model ids to upstream model strings",
    )
    models_owned_by: str = Field("kimi-ai.chat", alias="MODELS_OWNED_BY")

    # Delay between simulated streaming chunks, in seconds.
    stream_char_delay: float = Field(0.02, alias="STREAM_CHAR_DELAY", ge=0)

    cors_allow_origins: str = Field(
        "*",
        alias="CORS_ALLOW_ORIGINS",
        description="Comma-separated list of allowed origins, '*' for any",
    )

    # Application log level for our kimiproxy logger.
    # Can be overridden via LOG_LEVEL env var, e.g. "DEBUG" while debugging.
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: Optional[str] = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Asia/Shanghai'. Defaults to system local time.",
    )

    def known_models(self) -> List[str]:
        """
        Return the public model ids accepted by the gateway, in config order.
        """
        return list(self.known_model_map.keys())

    def get_cors_origins(self) -> List[str]:
        if not self.cors_allow_origins or self.cors_allow_origins.strip() == "*":
            return ["*"]
        return [
            item.strip()
            for item in self.cors_allow_origins.split(",")
            if item.strip()
        ]


settings = Settings()  # Reads from environment if available


def build_upstream_headers() -> Dict[str, str]:
    """
    Headers for calling kimi-ai.chat as if from a browser page.
    """
    return {
        "User-Agent": settings.upstream_user_agent,
        "Accept": "*/*",
    }
