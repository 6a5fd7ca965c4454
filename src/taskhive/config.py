# src/taskhive/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole engine.
- No secrets required at import time (the AI provider falls back to offline mode).
- Every tuning knob of the retry wrapper and the suggestion cache is overridable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "TASKHIVE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- AI provider (OpenAI-compatible endpoint) ----
    ai_api_key: str | None
    ai_base_url: str
    ai_model: str

    # ---- Retry wrapper ----
    ai_max_attempts: int
    ai_base_delay_seconds: float
    ai_chat_timeout_seconds: float
    ai_quick_timeout_seconds: float

    # ---- Suggestion cache ----
    suggestion_cache_ttl_seconds: float
    suggestion_cache_max_entries: int

    # ---- Reconciliation sweep ----
    reconcile_interval_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskhive") or "taskhive"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        # GEMINI_API_KEY is accepted for compatibility with existing deployments.
        ai_api_key = _first_env(_k("AI_API_KEY"), "GEMINI_API_KEY", default=None)
        ai_base_url = _env(
            _k("AI_BASE_URL"), "https://generativelanguage.googleapis.com/v1beta/openai/"
        )
        ai_model = _env(_k("AI_MODEL"), "gemini-2.5-flash")

        ai_max_attempts = max(1, _env_int(_k("AI_MAX_ATTEMPTS"), 3))
        ai_base_delay_seconds = max(0.0, _env_float(_k("AI_BASE_DELAY_SECONDS"), 2.0))
        ai_chat_timeout_seconds = _env_float(_k("AI_CHAT_TIMEOUT_SECONDS"), 20.0)
        ai_quick_timeout_seconds = _env_float(_k("AI_QUICK_TIMEOUT_SECONDS"), 10.0)

        suggestion_cache_ttl_seconds = _env_float(_k("SUGGESTION_CACHE_TTL_SECONDS"), 300.0)
        suggestion_cache_max_entries = _env_int(_k("SUGGESTION_CACHE_MAX_ENTRIES"), 256)

        reconcile_interval_seconds = _env_float(_k("RECONCILE_INTERVAL_SECONDS"), 0.0)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskhive"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskhive.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            ai_api_key=ai_api_key,
            ai_base_url=ai_base_url,
            ai_model=ai_model,
            ai_max_attempts=ai_max_attempts,
            ai_base_delay_seconds=ai_base_delay_seconds,
            ai_chat_timeout_seconds=ai_chat_timeout_seconds,
            ai_quick_timeout_seconds=ai_quick_timeout_seconds,
            suggestion_cache_ttl_seconds=suggestion_cache_ttl_seconds,
            suggestion_cache_max_entries=suggestion_cache_max_entries,
            reconcile_interval_seconds=reconcile_interval_seconds,
            data_dir=data_dir,
            db_path=db_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
