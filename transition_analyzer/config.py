from __future__ import annotations
import os
from typing import Optional
from pydantic import BaseModel


PROVIDERS = {"auto", "gemini", "mistral"}


def get_secret(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def normalize_provider(p: str | None) -> str:
    if not p:
        return "auto"
    p = p.strip().lower()
    if p in PROVIDERS:
        return p
    return "auto"


def _number(name: str, default: float) -> float:
    raw = get_secret(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    provider: str = "auto"
    temperature: float = 0.2
    timeout_seconds: float = 20.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    search_max_results: int = 5
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read settings from the environment (call load_dotenv() first for .env support)."""
    return Settings(
        provider=normalize_provider(get_secret("LLM_PROVIDER")),
        temperature=_number("LLM_TEMPERATURE", 0.2),
        timeout_seconds=_number("SERVICE_TIMEOUT_SECONDS", 20.0),
        max_retries=max(0, int(_number("SERVICE_MAX_RETRIES", 3))),
        backoff_seconds=_number("SERVICE_BACKOFF_SECONDS", 1.0),
        search_max_results=max(1, int(_number("SEARCH_MAX_RESULTS", 5))),
        log_level=(get_secret("LOG_LEVEL") or "INFO").upper(),
    )
