"""
Environment configuration.

Every knob is read from the environment (a local ``.env`` is loaded once on
import) with a default that lets local runs work without any setup. LLM
settings are read at call time so tests and long-running servers pick up
changes without re-importing.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def _as_int(env_name: str, default: int) -> int:
    v = os.getenv(env_name)
    try:
        return int(v) if v is not None else default
    except ValueError:
        return default


def _as_float(env_name: str, default: float) -> float:
    v = os.getenv(env_name)
    try:
        return float(v) if v is not None else default
    except ValueError:
        return default


def _as_list(env_name: str, default: List[str]) -> List[str]:
    v = _env(env_name)
    if not v:
        return list(default)
    return [item.strip() for item in v.split(",") if item.strip()]


# Server
CORS_ALLOW_ORIGINS = _as_list("CORS_ALLOW_ORIGINS", ["http://localhost:3000", "http://localhost:5173"])
LOG_LEVEL = (_env("LOG_LEVEL", "INFO") or "INFO").upper()

# History: the env var can only lower the cap
MAX_HISTORY_LIMIT = 50
HISTORY_LIMIT = max(1, min(_as_int("HISTORY_LIMIT", MAX_HISTORY_LIMIT), MAX_HISTORY_LIMIT))


@dataclass(frozen=True)
class LLMSettings:
    provider: str
    model: Optional[str]
    api_key: Optional[str]
    base_url: Optional[str]
    temperature: float
    max_tokens: int
    timeout: float


def llm_settings() -> LLMSettings:
    """Snapshot of the LLM-related environment at call time."""
    return LLMSettings(
        provider=(_env("LLM_PROVIDER", "openai") or "openai").lower(),
        model=_env("LLM_MODEL"),
        api_key=_env("LLM_API_KEY"),
        base_url=_env("LLM_BASE_URL"),
        temperature=_as_float("LLM_TEMPERATURE", 0.1),
        max_tokens=_as_int("LLM_MAX_TOKENS", 2000),
        timeout=_as_float("LLM_TIMEOUT", 60.0),
    )
