"""
DB utilities (sqlite only).

Defaults:
- DATABASE_URL: sqlite:///./data/mictla.db
- relative sqlite paths resolve against the current working directory
"""
from __future__ import annotations

import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

DEFAULT_DATABASE_URL = "sqlite:///./data/mictla.db"
MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def resolve_sqlite_path(database_url: str) -> Optional[Path]:
    if not database_url.startswith("sqlite:///"):
        return None
    p = database_url[len("sqlite:///") :]

    # absolute unix
    if p.startswith("/"):
        return Path(p)

    # absolute windows drive, both C:/ and C:\ forms
    if len(p) >= 3 and p[1] == ":" and (p[2] == "/" or p[2] == "\\"):
        return Path(p)

    return (Path.cwd() / p).resolve()


def normalize_sqlite_url(database_url: str) -> str:
    sp = resolve_sqlite_path(database_url)
    if sp is None:
        raise ValueError(f"Only sqlite file urls are supported, got DATABASE_URL={database_url!r}")
    sp.parent.mkdir(parents=True, exist_ok=True)
    return "sqlite:///" + sp.as_posix()


def create_sqlite_engine(database_url: str) -> Engine:
    return create_engine(
        normalize_sqlite_url(database_url),
        future=True,
        connect_args={"check_same_thread": False},
    )


def connect(database_url: str) -> sqlite3.Connection:
    """
    Raw connection used by the entity store.

    isolation_level=None: the store issues BEGIN/COMMIT/ROLLBACK itself so a
    multi-statement operation (cascade delete, import) is one transaction.
    """
    path = resolve_sqlite_path(normalize_sqlite_url(database_url))
    conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def migration_config(database_url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation
    cfg.set_main_option("sqlalchemy.url", normalize_sqlite_url(database_url).replace("%", "%%"))
    return cfg


def run_migrations(database_url: str, revision: str = "head") -> None:
    command.upgrade(migration_config(database_url), revision)


def db_health(database_url: Optional[str] = None) -> Dict[str, Any]:
    url = database_url or get_database_url()
    kind = "sqlite" if url.startswith("sqlite") else "unknown"
    sp = resolve_sqlite_path(url)
    path = str(sp.as_posix()) if sp is not None else url

    try:
        eng = create_sqlite_engine(url)
        try:
            with eng.connect() as conn:
                conn.execute(text("SELECT 1"))
        finally:
            eng.dispose()
        return {"status": "ok", "kind": kind, "path": path}
    except Exception as e:
        return {"status": "error", "kind": kind, "path": path, "error": str(e)}
