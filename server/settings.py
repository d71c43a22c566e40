"""Runtime settings for the cluster machine service."""
from __future__ import annotations

import os
from pathlib import Path
from types import SimpleNamespace


def _comma_separated_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_path(value: str | None) -> Path | None:
    if not value or not value.strip():
        return None
    return Path(value.strip()).expanduser().resolve()


ENV = os.getenv("ENV", os.getenv("ENVIRONMENT", "development")).strip().lower()
ENVIRONMENT = os.getenv("ENVIRONMENT", ENV).strip().lower()
ALLOWED_CORS_ORIGINS = _comma_separated_list(os.getenv("ALLOWED_ORIGINS"))

RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "30"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# Thread pool size used to fan a bulk action out over the selected machines.
ACTION_MAX_WORKERS = max(1, int(os.getenv("ACTION_MAX_WORKERS", "8")))

# Unset keeps machines in memory for the life of the process.
MACHINE_STORE_PATH = _optional_path(os.getenv("MACHINE_STORE_PATH"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()

settings = SimpleNamespace(
    ENV=ENV,
    ENVIRONMENT=ENVIRONMENT,
    ALLOWED_ORIGINS=ALLOWED_CORS_ORIGINS,
    ALLOWED_CORS_ORIGINS=ALLOWED_CORS_ORIGINS,
    RATE_LIMIT_REQUESTS=RATE_LIMIT_REQUESTS,
    RATE_LIMIT_WINDOW_SECONDS=RATE_LIMIT_WINDOW_SECONDS,
    ACTION_MAX_WORKERS=ACTION_MAX_WORKERS,
    MACHINE_STORE_PATH=MACHINE_STORE_PATH,
    LOG_LEVEL=LOG_LEVEL,
)

__all__ = [
    "ENV",
    "ENVIRONMENT",
    "ALLOWED_CORS_ORIGINS",
    "RATE_LIMIT_REQUESTS",
    "RATE_LIMIT_WINDOW_SECONDS",
    "ACTION_MAX_WORKERS",
    "MACHINE_STORE_PATH",
    "LOG_LEVEL",
    "settings",
]
