from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Controller
    watch_namespace: str = os.getenv("CJSYNC_WATCH_NAMESPACE", "")
    max_concurrent_reconciles: int = _env_int("CJSYNC_MAX_CONCURRENT_RECONCILES", 2)
    match_by_image: bool = _env_bool("CJSYNC_MATCH_BY_IMAGE", True)
    retry_base_s: float = _env_float("CJSYNC_RETRY_BASE_S", 0.5)
    retry_max_s: float = _env_float("CJSYNC_RETRY_MAX_S", 300.0)
    component: str = os.getenv("CJSYNC_COMPONENT", "cronjob-controller")
    # true|false|auto
    in_cluster: str = os.getenv("CJSYNC_IN_CLUSTER", "auto").strip().lower()
    start_controller: bool = _env_bool("CJSYNC_START_CONTROLLER", True)

    # Ledger / logging
    db_path: str = os.getenv("CJSYNC_DB_PATH", "cjsync.db")
    log_level: str = os.getenv("CJSYNC_LOG_LEVEL", "INFO")

    # Email alerting on Warning events (optional)
    enable_email: bool = _env_bool("CJSYNC_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("CJSYNC_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("CJSYNC_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("CJSYNC_SMTP_USER")
    smtp_password: str | None = os.getenv("CJSYNC_SMTP_PASSWORD")
    email_from: str | None = os.getenv("CJSYNC_EMAIL_FROM")
    email_to: str | None = os.getenv("CJSYNC_EMAIL_TO")


settings = Settings()
