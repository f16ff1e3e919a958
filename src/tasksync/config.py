# src/tasksync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once at startup and passed down.
- No secrets required at import time.
- Legacy frontend variable names (VITE_APPSYNC_*) are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKSYNC"

TRANSPORT_CHOICES = ("graphql", "rest", "memory")


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


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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
    data_dir: Path

    # ---- Identity (fixed stand-in user, no auth) ----
    user_id: str

    # ---- Transports ----
    primary_transport: str
    fallback_enabled: bool
    rest_base_url: str
    graphql_endpoint: str
    graphql_api_key: str | None
    aws_region: str
    http_timeout_seconds: float

    # ---- Sync tuning ----
    stale_after_seconds: float
    invalidate_delay_seconds: float
    mutation_timeout_seconds: float
    refresh_interval_seconds: float
    notification_ttl_seconds: float

    @staticmethod
    def from_env(*, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "tasksync") or "tasksync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/tasksync"))

        user_id = (_env(_k("USER_ID"), "default-user") or "default-user").strip()

        graphql_endpoint = (
            _first_env(_k("GRAPHQL_ENDPOINT"), "VITE_APPSYNC_ENDPOINT", default="") or ""
        ).strip()
        graphql_api_key = _first_env(_k("GRAPHQL_API_KEY"), "VITE_APPSYNC_API_KEY", default=None)
        rest_base_url = (
            _first_env(_k("REST_BASE_URL"), "VITE_API_ENDPOINT", default="http://localhost:5000/api")
            or ""
        ).strip()
        aws_region = (
            _first_env(_k("AWS_REGION"), "VITE_AWS_REGION", default="ap-northeast-1") or ""
        ).strip()

        # Default primary: GraphQL when it is configured, otherwise REST.
        default_primary = "graphql" if graphql_endpoint and graphql_api_key else "rest"
        primary = _env(_k("PRIMARY_TRANSPORT"), default_primary).strip().lower()
        if primary not in TRANSPORT_CHOICES:
            primary = default_primary

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            user_id=user_id,
            primary_transport=primary,
            fallback_enabled=_env_bool(_k("FALLBACK_ENABLED"), True),
            rest_base_url=rest_base_url,
            graphql_endpoint=graphql_endpoint,
            graphql_api_key=graphql_api_key,
            aws_region=aws_region,
            http_timeout_seconds=_env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0),
            stale_after_seconds=_env_float(_k("STALE_AFTER_SECONDS"), 10.0),
            invalidate_delay_seconds=_env_float(_k("INVALIDATE_DELAY_SECONDS"), 1.0),
            mutation_timeout_seconds=_env_float(_k("MUTATION_TIMEOUT_SECONDS"), 15.0),
            refresh_interval_seconds=_env_float(_k("REFRESH_INTERVAL_SECONDS"), 30.0),
            notification_ttl_seconds=_env_float(_k("NOTIFICATION_TTL_SECONDS"), 4.0),
        )

    @property
    def graphql_configured(self) -> bool:
        return bool(self.graphql_endpoint and self.graphql_api_key)


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Settings for the running process (read from the environment on first use)."""
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
