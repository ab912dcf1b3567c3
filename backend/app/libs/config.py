"""Runtime configuration read from the environment."""

import os
from dataclasses import dataclass
from typing import Optional

OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
DEEPSEEK_BASE_URL = "https://api.deepseek.com/v1"
DEEPSEEK_MODEL = "deepseek-chat"
DEFAULT_MAX_TOOL_ITERATIONS = 10


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Service settings.

    Built once at startup and handed to the pieces that need it, so tests can
    construct their own instance instead of patching the environment.
    """

    database_url: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = OPENAI_DEFAULT_MODEL
    deepseek_api_key: Optional[str] = None
    max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.environ.get("DATABASE_URL"),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_model=os.environ.get("OPENAI_MODEL") or OPENAI_DEFAULT_MODEL,
            deepseek_api_key=os.environ.get("DEEPSEEK_API_KEY") or None,
            max_tool_iterations=_int_env("AI_MAX_TOOL_ITERATIONS", DEFAULT_MAX_TOOL_ITERATIONS),
            db_pool_min_size=_int_env("DB_POOL_MIN_SIZE", 1),
            db_pool_max_size=_int_env("DB_POOL_MAX_SIZE", 10),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )

    def provider(self) -> Optional[str]:
        """Return the configured chat-completion provider, OpenAI first."""
        if self.openai_api_key:
            return "openai"
        if self.deepseek_api_key:
            return "deepseek"
        return None

    @property
    def ai_configured(self) -> bool:
        return self.provider() is not None
