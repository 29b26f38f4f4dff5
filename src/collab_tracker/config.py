# src/collab_tracker/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Components take settings as an argument; get_settings() is only the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TRACKER"

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

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    projects_db_path: Path
    tasks_db_path: Path

    # ---- Invitations / email ----
    app_base_url: str
    plunk_api_key: str | None
    invitation_ttl_days: int

    # ---- Metrics ----
    github_token: str | None

    # ---- Image analysis (OpenAI-compatible endpoint) ----
    openrouter_api_key: str | None
    openrouter_base_url: str
    vision_model: str

    # ---- HTTP ----
    http_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "collab-tracker")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tracker"))
        projects_db_path = _env_path(_k("PROJECTS_DB_PATH"), data_dir / "projects.sqlite3")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        vercel_url = os.getenv("VERCEL_URL")
        app_base_url = (
            _first_env(
                _k("APP_BASE_URL"),
                "SITE_URL",
                default=f"https://{vercel_url}" if vercel_url else "http://localhost:3000",
            )
            or "http://localhost:3000"
        ).rstrip("/")

        plunk_api_key = _first_env(_k("PLUNK_API_KEY"), "PLUNK_API_KEY", default=None)
        invitation_ttl_days = max(1, _env_int(_k("INVITATION_TTL_DAYS"), 7))

        github_token = _first_env(_k("GITHUB_TOKEN"), "GITHUB_TOKEN", default=None)

        openrouter_api_key = _first_env(_k("OPENROUTER_API_KEY"), "OPENROUTER_API_KEY", default=None)
        openrouter_base_url = _env(_k("OPENROUTER_BASE_URL"), "https://openrouter.ai/api/v1")
        vision_model = _env(_k("VISION_MODEL"), "anthropic/claude-3.7-sonnet")

        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            projects_db_path=projects_db_path,
            tasks_db_path=tasks_db_path,
            app_base_url=app_base_url,
            plunk_api_key=plunk_api_key,
            invitation_ttl_days=invitation_ttl_days,
            github_token=github_token,
            openrouter_api_key=openrouter_api_key,
            openrouter_base_url=openrouter_base_url,
            vision_model=vision_model,
            http_timeout_seconds=http_timeout_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
