from __future__ import annotations

import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_app_version() -> str:
    return os.getenv("APP_VERSION", "0.1.0")


def get_snapshot_debounce_seconds() -> float:
    return max(_float_env("SNAPSHOT_DEBOUNCE_SECONDS", 1.0), 0.0)


def get_notification_ttl_seconds() -> float:
    # 0 disables auto-removal
    return max(_float_env("NOTIFICATION_TTL_SECONDS", 5.0), 0.0)


def is_export_import_enabled() -> bool:
    """
    Feature flag (rollback-first):
      EXPORT_IMPORT_ENABLED=0 -> off
      EXPORT_IMPORT_ENABLED=1 -> on (default)
    """
    v = os.getenv("EXPORT_IMPORT_ENABLED", "1").strip().lower()
    return v not in ("0", "false", "no", "")
