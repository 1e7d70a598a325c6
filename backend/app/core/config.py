"""Application settings, read from the environment once at startup."""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # LLM
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_max_tokens: int = 500
    llm_temperature: float = 0.7
    llm_base_url: str = ""
    llm_timeout_seconds: float = 30.0

    # Dialog
    session_ttl_hours: int = 24
    max_history_turns: int = 5
    max_listings_in_prompt: int = 3
    fast_path_enabled: bool = True
    request_deadline_seconds: float = 45.0
    send_welcome_message: bool = True
    platform_name: str = "TreesIndia"

    # Infrastructure
    database_url: str = "sqlite:///./chatbot.db"
    log_level: str = "INFO"
    cors_origins: tuple = ("*",)

    @property
    def llm_enabled(self) -> bool:
        return bool(self.llm_api_key)


def _cors_origins() -> List[str]:
    raw = os.getenv("CORS_ORIGINS", "*").strip()
    if not raw or raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def load_settings() -> Settings:
    return Settings(
        llm_api_key=os.getenv("LLM_API_KEY", "").strip(),
        llm_model=os.getenv("LLM_MODEL", "").strip() or "gpt-4o-mini",
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", 500, minimum=1),
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
        llm_base_url=os.getenv("LLM_BASE_URL", "").strip(),
        llm_timeout_seconds=max(1.0, _env_float("LLM_TIMEOUT_SECONDS", 30.0)),
        session_ttl_hours=_env_int("SESSION_TTL_HOURS", 24, minimum=1),
        max_history_turns=_env_int("MAX_HISTORY_TURNS", 5),
        max_listings_in_prompt=_env_int("MAX_LISTINGS_IN_PROMPT", 3),
        fast_path_enabled=_env_bool("FAST_PATH_ENABLED", True),
        request_deadline_seconds=max(1.0, _env_float("REQUEST_DEADLINE_SECONDS", 45.0)),
        send_welcome_message=_env_bool("SEND_WELCOME_MESSAGE", True),
        platform_name=os.getenv("PLATFORM_NAME", "").strip() or "TreesIndia",
        database_url=os.getenv("DATABASE_URL", "").strip() or "sqlite:///./chatbot.db",
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        cors_origins=tuple(_cors_origins()),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
