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
    # Core
    db_path: str = os.getenv("MCO_DB_PATH", "mco.db")
    log_level: str = os.getenv("MCO_LOG_LEVEL", "INFO")

    # Platform access
    # Empty namespace means "watch every namespace".
    namespace: str = os.getenv("MCO_NAMESPACE", "")
    kubeconfig: str | None = os.getenv("MCO_KUBECONFIG")
    request_timeout_s: float = _env_float("MCO_REQUEST_TIMEOUT_S", 10.0)
    register_crds: bool = _env_bool("MCO_REGISTER_CRDS", True)

    # Watch loop
    watch_timeout_s: int = _env_int("MCO_WATCH_TIMEOUT_S", 300)
    watch_retry_s: int = _env_int("MCO_WATCH_RETRY_S", 5)

    # Dispatcher
    worker_idle_s: float = _env_float("MCO_WORKER_IDLE_S", 60.0)

    # Templates; None uses the manifests shipped in mco/artifacts.
    templates_dir: str | None = os.getenv("MCO_TEMPLATES_DIR")


settings = Settings()
