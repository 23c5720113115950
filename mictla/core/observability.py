from __future__ import annotations

import datetime
import json
import logging
import os
from typing import Any, Dict, Optional

_log = logging.getLogger("mictla")
if not _log.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "audit": logging.INFO,
}


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _json_default(v: Any) -> Any:
    if isinstance(v, (datetime.datetime, datetime.date)):
        return v.isoformat()
    return str(v)


def emit(level: str, event: str, message: str, module: str, request_id: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Log one JSON line ``{ts, level, message, request_id, event, module, ...}``."""
    payload: Dict[str, Any] = {
        "ts": now_iso(),
        "level": level.lower(),
        "message": message,
        "request_id": request_id,
        "event": event,
        "module": module,
    }
    payload.update(extra)
    _log.log(_LEVELS.get(level.lower(), logging.INFO), json.dumps(payload, ensure_ascii=False, default=_json_default))
    return payload
