"""Service settings read from the environment.

A `.env` file at the repository root is loaded first, so local overrides
don't need to be exported. Credentials are never part of the settings: the
caller supplies an API key with every request.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent
load_dotenv(ROOT / ".env")

_ENV_PREFIX = "QUESTLEARN_"
_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    gemini_model: str = "gemini-2.0-flash-exp"
    groq_model: str = "llama-3.3-70b-versatile"
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    groq_base_url: str = "https://api.groq.com"
    llm_timeout: float = 120.0
    replay_history: bool = True
    log_level: str = "INFO"


def _env(name: str) -> str | None:
    value = os.getenv(_ENV_PREFIX + name.upper())
    if value is None or not value.strip():
        return None
    return value.strip()


def get_settings() -> Settings:
    """Build settings from QUESTLEARN_* variables, falling back to defaults."""
    fields: dict[str, object] = {}
    for name in ("gemini_model", "groq_model", "gemini_base_url", "groq_base_url"):
        value = _env(name)
        if value is not None:
            fields[name] = value
    timeout = _env("llm_timeout")
    if timeout is not None:
        fields["llm_timeout"] = float(timeout)
    replay = _env("replay_history")
    if replay is not None:
        fields["replay_history"] = replay.lower() in _TRUTHY
    log_level = _env("log_level")
    if log_level is not None:
        fields["log_level"] = log_level.upper()
    return Settings(**fields)
