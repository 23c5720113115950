"""
Shared fixtures for the mictla data core tests.

Every test gets its own sqlite file and storage root under tmp_path, so no
test sees another's data.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator

import pytest

from mictla.core.storage import SnapshotBlob
from mictla.modules.store.service import EntityStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return "sqlite:///" + (tmp_path / "db" / "mictla.db").as_posix()


@pytest.fixture
def storage_root(tmp_path, monkeypatch):
    root = tmp_path / "storage"
    monkeypatch.setenv("STORAGE_ROOT", str(root))
    return root


@pytest.fixture
def store(database_url) -> Iterator[EntityStore]:
    s = EntityStore(database_url).init()
    yield s
    s.close()


@pytest.fixture
def blob(storage_root) -> SnapshotBlob:
    return SnapshotBlob(storage_root)


@pytest.fixture
def memorial_data() -> Dict[str, Any]:
    return {
        "name": "Juan García",
        "relationship": "padre",
        "birthDate": "1950-01-01",
        "deathDate": "2020-01-01",
        "altarLevel": 1,
    }


@pytest.fixture
def offering_data() -> Dict[str, Any]:
    return {"type": "cempasuchil", "position": {"x": 0.5, "y": 1.0, "z": -2.0}, "placedBy": "user_1"}


@pytest.fixture
def creator() -> Dict[str, Any]:
    return {"userId": "user_ana", "email": "Ana@Example.com"}
