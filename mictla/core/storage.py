"""
Local filesystem storage for the state snapshot blob.

Defaults:
- STORAGE_ROOT: ./data/storage
"""
from __future__ import annotations

import json
import os
import re
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_SNAPSHOT_KEY = "mictla-app-state"
_KEY_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def json_default(v: Any) -> Any:
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    return str(v)


def get_storage_root() -> Path:
    raw = os.getenv("STORAGE_ROOT", "./data/storage")
    p = Path(raw)
    return (Path.cwd() / p).resolve() if not p.is_absolute() else p


def ensure_storage_root(root: Optional[Path] = None) -> Path:
    root = root or get_storage_root()
    root.mkdir(parents=True, exist_ok=True)
    return root


def storage_health(root: Optional[Path] = None) -> Dict[str, Any]:
    root = root or get_storage_root()
    try:
        ensure_storage_root(root)
        probe = root / ".probe_write"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
        return {"status": "ok", "kind": "local_fs", "root": str(root.as_posix())}
    except OSError as e:
        return {"status": "error", "kind": "local_fs", "root": str(root.as_posix()), "error": str(e)}


class SnapshotBlob:
    """
    Durable key-value blob: one JSON document per key under <root>/snapshots.

    Writes go to a temp file then os.replace, so a reader never sees a torn
    document.
    """

    def __init__(self, root: Optional[Path] = None, key: str = DEFAULT_SNAPSHOT_KEY):
        if not _KEY_RE.match(key):
            raise ValueError(f"invalid snapshot key: {key!r}")
        self.root = Path(root) if root is not None else get_storage_root()
        self.key = key

    @property
    def path(self) -> Path:
        return self.root / "snapshots" / f"{self.key}.json"

    def read(self) -> Optional[Dict[str, Any]]:
        p = self.path
        if not p.exists():
            return None
        data = json.loads(p.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else None

    def write(self, document: Dict[str, Any]) -> None:
        p = self.path
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, ensure_ascii=False, default=json_default), encoding="utf-8")
        os.replace(tmp, p)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
