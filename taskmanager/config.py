# taskmanager/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

- One Settings object for the whole app; Django settings are derived from it.
- No secrets required at import time.
- Unprefixed names (PORT, FRONTEND_URL, GEMINI_API_KEY, ...)
  are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKMANAGER"

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


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


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    environment: str
    secret_key: str
    allowed_hosts: List[str]
    log_level: str
    log_dir: Optional[Path]

    # ---- HTTP ----
    port: int
    frontend_url: str

    # ---- Storage ----
    db_path: Path

    # ---- Completion API ----
    llm_api_key: Optional[str]
    llm_base_url: str
    llm_model: str
    llm_max_tokens: int
    llm_temperature: float
    llm_timeout_seconds: float
    chat_max_history: int

    # ---- Rate limiting ----
    rate_limit_requests: int
    rate_limit_window_seconds: int

    # ---- Console client ----
    api_url: str

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskmanager")
        environment = (_first_env(_k("ENV"), "NODE_ENV", default="development") or "development").strip().lower()
        secret_key = _env(_k("SECRET_KEY"), "taskmanager-insecure-dev-key")
        allowed_hosts = _env_list(_k("ALLOWED_HOSTS"), ["*"])
        log_level = _env(_k("LOG_LEVEL"), "INFO").upper()

        raw_log_dir = os.getenv(_k("LOG_DIR"))
        if raw_log_dir is None:
            log_dir: Optional[Path] = Path(".local/taskmanager")
        elif raw_log_dir.strip() == "":
            log_dir = None
        else:
            log_dir = Path(raw_log_dir).expanduser()

        port = _env_int(_k("PORT"), _env_int("PORT", 5000))
        frontend_url = (_first_env(_k("FRONTEND_URL"), "FRONTEND_URL", default="http://localhost:5173") or "").rstrip("/")

        db_default = Path(_first_env("DATABASE_PATH", default=".local/taskmanager/tasks.sqlite3") or "")
        db_path = _env_path(_k("DB_PATH"), db_default)

        llm_api_key = _first_env(_k("LLM_API_KEY"), "GEMINI_API_KEY", default=None)
        llm_base_url = _env(_k("LLM_BASE_URL"), GEMINI_OPENAI_BASE_URL)
        llm_model = _env(_k("LLM_MODEL"), "gemini-1.5-flash")
        llm_max_tokens = _env_int(_k("LLM_MAX_TOKENS"), 500)
        llm_temperature = _env_float(_k("LLM_TEMPERATURE"), 0.7)
        llm_timeout_seconds = _env_float(_k("LLM_TIMEOUT_SECONDS"), 30.0)
        chat_max_history = _env_int(_k("CHAT_MAX_HISTORY"), 20)

        rate_limit_requests = _env_int(_k("RATE_LIMIT_REQUESTS"), 100)
        rate_limit_window_seconds = _env_int(_k("RATE_LIMIT_WINDOW_SECONDS"), 15 * 60)

        api_url = (_first_env(_k("API_URL"), "VITE_API_URL", default=f"http://localhost:{port}/api") or "").rstrip("/")

        return Settings(
            app_name=app_name,
            environment=environment,
            secret_key=secret_key,
            allowed_hosts=allowed_hosts,
            log_level=log_level,
            log_dir=log_dir,
            port=port,
            frontend_url=frontend_url,
            db_path=db_path,
            llm_api_key=llm_api_key,
            llm_base_url=llm_base_url,
            llm_model=llm_model,
            llm_max_tokens=llm_max_tokens,
            llm_temperature=llm_temperature,
            llm_timeout_seconds=llm_timeout_seconds,
            chat_max_history=chat_max_history,
            rate_limit_requests=rate_limit_requests,
            rate_limit_window_seconds=rate_limit_window_seconds,
            api_url=api_url,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
