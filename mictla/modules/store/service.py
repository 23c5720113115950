"""
Persistent entity store (sqlite).

Four collections, one table each; the full entity is kept as camelCase JSON in
`data_json` and the indexed fields are mirrored into columns:

- memorials(id)              ix: altar_level, name, sync_status
- family_groups(group_id)    ux: invite_code
- virtual_offerings(id)      ix: memorial_id, type, placed_by
- user_preferences(user_id)

Every mutating call is one BEGIN..COMMIT on the single connection; any failure
rolls back and surfaces as StoreError with the sqlite message. No retries.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel

from mictla.core.db import connect, get_database_url, run_migrations
from mictla.core.errors import (
    ImportFormatError,
    MembershipError,
    StoreClosedError,
    StoreError,
    StoreInitError,
    ValidationFailed,
)
from mictla.core.ids import new_invite_code
from mictla.core.observability import emit, now_iso
from mictla.core.wire import utcnow
from mictla.modules.family_groups.schemas import FamilyGroup, FamilyMember
from mictla.modules.memorials.schemas import Memorial
from mictla.modules.offerings.schemas import VirtualOffering
from mictla.modules.preferences.schemas import UserPreferences
from mictla.modules.validation.schemas import ALTAR_LEVELS, SYNC_STATUSES
from mictla.modules.validation.service import as_wire, build_model, validate_batch, validated_entity

STORE_VERSION = 1

M = TypeVar("M", bound=BaseModel)

# import document key -> (validator kind, model)
_IMPORT_COLLECTIONS: Tuple[Tuple[str, str, Type[BaseModel]], ...] = (
    ("memorials", "memorial", Memorial),
    ("familyGroups", "familyGroup", FamilyGroup),
    ("virtualOfferings", "virtualOffering", VirtualOffering),
    ("userPreferences", "userPreferences", UserPreferences),
)


# --- helpers ---
def _dump(entity: BaseModel) -> str:
    return json.dumps(entity.model_dump(mode="json", by_alias=True), ensure_ascii=False)


def _load(model: Type[M], row: Optional[sqlite3.Row]) -> Optional[M]:
    if row is None:
        return None
    return model.model_validate(json.loads(row["data_json"]))


def _iso(entity: BaseModel, field: str) -> str:
    return getattr(entity, field).isoformat()


class EntityStore:
    """
    Durable store for Memorial, FamilyGroup, VirtualOffering and UserPreferences.

    Construct one per process and pass it where needed. Calls on a store that
    was never initialized initialize it lazily; calls after close() raise
    StoreClosedError.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or get_database_url()
        self._conn: Optional[sqlite3.Connection] = None
        self._closed = False
        self._lock = threading.RLock()

    # -------------------------
    # lifecycle
    # -------------------------
    def init(self) -> "EntityStore":
        with self._lock:
            if self._closed:
                raise StoreClosedError()
            if self._conn is not None:
                return self
            try:
                run_migrations(self.database_url)
                self._conn = connect(self.database_url)
            except Exception as e:
                emit("error", "store.init.failed", str(e), module="store", database_url=self.database_url)
                raise StoreInitError(f"Failed to initialize entity store: {e}") from e
            emit("info", "store.init.ok", "entity store ready", module="store", database_url=self.database_url)
            return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
            self._conn = None
            self._closed = True

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._closed

    def __enter__(self) -> "EntityStore":
        return self.init()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _db(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreClosedError()
        if self._conn is None:
            self.init()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def _tx(self, op: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            c = self._db()
            try:
                c.execute("BEGIN")
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            try:
                yield c
                c.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(c)
                emit("error", "store.tx.failed", str(e), module="store", op=op)
                raise StoreError(str(e)) from e
            except BaseException:
                self._rollback(c)
                raise

    @staticmethod
    def _rollback(c: sqlite3.Connection) -> None:
        # a failed COMMIT may already have ended the transaction
        if c.in_transaction:
            c.execute("ROLLBACK")

    def _rows(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            c = self._db()
            try:
                return c.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def _row(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        rows = self._rows(sql, params)
        return rows[0] if rows else None

    # -------------------------
    # row writers (inside a transaction)
    # -------------------------
    @staticmethod
    def _put_memorial(c: sqlite3.Connection, m: Memorial) -> None:
        c.execute(
            """
            INSERT INTO memorials (id, altar_level, name, relationship, sync_status, created_at, updated_at, data_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              altar_level=excluded.altar_level,
              name=excluded.name,
              relationship=excluded.relationship,
              sync_status=excluded.sync_status,
              created_at=excluded.created_at,
              updated_at=excluded.updated_at,
              data_json=excluded.data_json
            """,
            (
                m.id,
                m.altar_level,
                m.name,
                m.relationship,
                m.sync_status,
                _iso(m, "created_at"),
                _iso(m, "updated_at"),
                _dump(m),
            ),
        )

    @staticmethod
    def _put_family_group(c: sqlite3.Connection, g: FamilyGroup) -> None:
        c.execute(
            """
            INSERT INTO family_groups (group_id, name, invite_code, created_at, data_json)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(group_id) DO UPDATE SET
              name=excluded.name,
              invite_code=excluded.invite_code,
              created_at=excluded.created_at,
              data_json=excluded.data_json
            """,
            (g.group_id, g.name, g.invite_code, _iso(g, "created_at"), _dump(g)),
        )

    @staticmethod
    def _put_offering(c: sqlite3.Connection, o: VirtualOffering) -> None:
        c.execute(
            """
            INSERT INTO virtual_offerings (id, memorial_id, type, placed_by, created_at, data_json)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              memorial_id=excluded.memorial_id,
              type=excluded.type,
              placed_by=excluded.placed_by,
              created_at=excluded.created_at,
              data_json=excluded.data_json
            """,
            (o.id, o.memorial_id, o.type, o.placed_by, _iso(o, "created_at"), _dump(o)),
        )

    @staticmethod
    def _put_preferences(c: sqlite3.Connection, p: UserPreferences) -> None:
        c.execute(
            """
            INSERT INTO user_preferences (user_id, updated_at, data_json)
            VALUES (?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
              updated_at=excluded.updated_at,
              data_json=excluded.data_json
            """,
            (p.user_id, _iso(p, "updated_at"), _dump(p)),
        )

    # -------------------------
    # memorials
    # -------------------------
    def save_memorial(self, memorial: Union[Memorial, Mapping]) -> Memorial:
        m = validated_entity("memorial", memorial, Memorial)
        # synced is only ever set by mark_memorials_synced
        if m.sync_status == "synced":
            m.sync_status = "pending"
        m.updated_at = utcnow()
        with self._tx("save_memorial") as c:
            self._put_memorial(c, m)
        return m

    def get_memorial(self, memorial_id: str) -> Optional[Memorial]:
        return _load(Memorial, self._row("SELECT data_json FROM memorials WHERE id=?", (memorial_id,)))

    def get_memorials(self) -> List[Memorial]:
        rows = self._rows("SELECT data_json FROM memorials ORDER BY created_at, id")
        return [_load(Memorial, r) for r in rows]

    def get_memorials_by_level(self, level: int) -> List[Memorial]:
        rows = self._rows("SELECT data_json FROM memorials WHERE altar_level=? ORDER BY created_at, id", (level,))
        return [_load(Memorial, r) for r in rows]

    def get_memorials_by_sync_status(self, status: str) -> List[Memorial]:
        rows = self._rows("SELECT data_json FROM memorials WHERE sync_status=? ORDER BY created_at, id", (status,))
        return [_load(Memorial, r) for r in rows]

    def update_memorial(self, memorial_id: str, partial: Mapping) -> Optional[Memorial]:
        with self._lock:
            existing = self.get_memorial(memorial_id)
            if existing is None:
                return None
            merged = {**existing.to_wire(), **as_wire(partial)}
            merged["id"] = memorial_id
            merged["createdAt"] = existing.to_wire()["createdAt"]
            merged["syncStatus"] = "pending"
            m = validated_entity("memorial", merged, Memorial)
            m.updated_at = utcnow()
            with self._tx("update_memorial") as c:
                self._put_memorial(c, m)
            return m

    def delete_memorial(self, memorial_id: str) -> bool:
        with self._tx("delete_memorial") as c:
            cur = c.execute("DELETE FROM memorials WHERE id=?", (memorial_id,))
            if cur.rowcount == 0:
                return False
            off = c.execute("DELETE FROM virtual_offerings WHERE memorial_id=?", (memorial_id,))
        emit(
            "info",
            "store.memorial.deleted",
            "memorial deleted",
            module="store",
            memorial_id=memorial_id,
            offerings_deleted=off.rowcount,
        )
        return True

    # -------------------------
    # family groups
    # -------------------------
    def save_family_group(self, group: Union[FamilyGroup, Mapping]) -> FamilyGroup:
        g = validated_entity("familyGroup", group, FamilyGroup)
        with self._tx("save_family_group") as c:
            self._put_family_group(c, g)
        return g

    def get_family_group(self, group_id: str) -> Optional[FamilyGroup]:
        return _load(FamilyGroup, self._row("SELECT data_json FROM family_groups WHERE group_id=?", (group_id,)))

    def get_family_groups(self) -> List[FamilyGroup]:
        rows = self._rows("SELECT data_json FROM family_groups ORDER BY created_at, group_id")
        return [_load(FamilyGroup, r) for r in rows]

    def get_family_group_by_invite_code(self, invite_code: str) -> Optional[FamilyGroup]:
        code = (invite_code or "").strip().upper()
        return _load(FamilyGroup, self._row("SELECT data_json FROM family_groups WHERE invite_code=?", (code,)))

    def create_family_group(self, name: str, creator: Union[FamilyMember, Mapping]) -> FamilyGroup:
        """New group with the creator as its only (admin) member."""
        member = {**as_wire(creator), "role": "admin"}
        with self._lock:
            g = validated_entity("familyGroup", {"name": name, "members": [member]}, FamilyGroup)
            while self.get_family_group_by_invite_code(g.invite_code) is not None:
                g.invite_code = new_invite_code()
            with self._tx("create_family_group") as c:
                self._put_family_group(c, g)
        emit("info", "store.family_group.created", "family group created", module="store", group_id=g.group_id)
        return g

    def _member_from(self, member: Union[FamilyMember, Mapping], role: Optional[str] = None) -> Dict[str, Any]:
        raw = dict(as_wire(member))
        if role is not None:
            raw["role"] = role
        raw.setdefault("role", "member")
        return raw

    def add_family_member(self, group_id: str, member: Union[FamilyMember, Mapping]) -> Optional[FamilyGroup]:
        with self._lock:
            existing = self.get_family_group(group_id)
            if existing is None:
                return None
            m = validated_entity("familyMember", self._member_from(member), FamilyMember)
            if not existing.add_member(m):
                return existing
            return self.save_family_group(existing)

    def remove_family_member(self, group_id: str, user_id: str) -> Optional[FamilyGroup]:
        """Updated group, or None when the group is missing or was deleted because it emptied."""
        with self._lock:
            g = self.get_family_group(group_id)
            if g is None:
                return None
            if not g.remove_member(user_id):
                return g
            if not g.members:
                self.delete_family_group(group_id)
                return None
            return self.save_family_group(g)

    def join_family_group(self, invite_code: str, member: Union[FamilyMember, Mapping]) -> Optional[FamilyGroup]:
        with self._lock:
            g = self.get_family_group_by_invite_code(invite_code)
            if g is None:
                return None
            if not g.settings.allow_new_members:
                raise MembershipError(f"Family group {g.group_id} is not accepting new members")
            return self.add_family_member(g.group_id, self._member_from(member, role="member"))

    def delete_family_group(self, group_id: str) -> bool:
        with self._tx("delete_family_group") as c:
            cur = c.execute("DELETE FROM family_groups WHERE group_id=?", (group_id,))
            deleted = cur.rowcount > 0
        if deleted:
            emit("info", "store.family_group.deleted", "family group deleted", module="store", group_id=group_id)
        return deleted

    # -------------------------
    # virtual offerings
    # -------------------------
    def save_virtual_offering(self, offering: Union[VirtualOffering, Mapping]) -> VirtualOffering:
        o = validated_entity("virtualOffering", offering, VirtualOffering)
        with self._tx("save_virtual_offering") as c:
            self._put_offering(c, o)
        return o

    def get_virtual_offering(self, offering_id: str) -> Optional[VirtualOffering]:
        return _load(VirtualOffering, self._row("SELECT data_json FROM virtual_offerings WHERE id=?", (offering_id,)))

    def get_virtual_offerings(self) -> List[VirtualOffering]:
        rows = self._rows("SELECT data_json FROM virtual_offerings ORDER BY created_at, id")
        return [_load(VirtualOffering, r) for r in rows]

    def get_offerings_by_memorial(self, memorial_id: str) -> List[VirtualOffering]:
        rows = self._rows(
            "SELECT data_json FROM virtual_offerings WHERE memorial_id=? ORDER BY created_at, id",
            (memorial_id,),
        )
        return [_load(VirtualOffering, r) for r in rows]

    def get_offerings_by_type(self, offering_type: str) -> List[VirtualOffering]:
        rows = self._rows(
            "SELECT data_json FROM virtual_offerings WHERE type=? ORDER BY created_at, id",
            (offering_type,),
        )
        return [_load(VirtualOffering, r) for r in rows]

    def delete_virtual_offering(self, offering_id: str) -> bool:
        with self._tx("delete_virtual_offering") as c:
            cur = c.execute("DELETE FROM virtual_offerings WHERE id=?", (offering_id,))
            return cur.rowcount > 0

    def delete_offerings_by_memorial(self, memorial_id: str) -> int:
        with self._tx("delete_offerings_by_memorial") as c:
            cur = c.execute("DELETE FROM virtual_offerings WHERE memorial_id=?", (memorial_id,))
            return cur.rowcount

    # -------------------------
    # user preferences
    # -------------------------
    def save_user_preferences(self, user_id: str, prefs: Union[UserPreferences, Mapping]) -> UserPreferences:
        raw = {**as_wire(prefs), "userId": user_id}
        p = validated_entity("userPreferences", raw, UserPreferences)
        p.updated_at = utcnow()
        with self._tx("save_user_preferences") as c:
            self._put_preferences(c, p)
        return p

    def get_user_preferences(self, user_id: str) -> Optional[UserPreferences]:
        return _load(UserPreferences, self._row("SELECT data_json FROM user_preferences WHERE user_id=?", (user_id,)))

    def _all_preferences(self) -> List[UserPreferences]:
        rows = self._rows("SELECT data_json FROM user_preferences ORDER BY user_id")
        return [_load(UserPreferences, r) for r in rows]

    # -------------------------
    # sync status (local placeholder, no remote side)
    # -------------------------
    def mark_memorials_synced(self, memorial_ids: Sequence[str]) -> int:
        count = 0
        with self._tx("mark_memorials_synced") as c:
            for mid in memorial_ids:
                m = _load(Memorial, c.execute("SELECT data_json FROM memorials WHERE id=?", (mid,)).fetchone())
                if m is None:
                    continue
                m.sync_status = "synced"
                self._put_memorial(c, m)
                count += 1
        return count

    def reset_sync_status(self) -> int:
        """Every memorial back to `local`; returns how many changed."""
        count = 0
        with self._tx("reset_sync_status") as c:
            for r in c.execute("SELECT data_json FROM memorials WHERE sync_status != 'local'").fetchall():
                m = _load(Memorial, r)
                m.sync_status = "local"
                self._put_memorial(c, m)
                count += 1
        return count

    def get_sync_stats(self) -> Dict[str, int]:
        out = {s: 0 for s in SYNC_STATUSES}
        for r in self._rows("SELECT sync_status, COUNT(*) AS n FROM memorials GROUP BY sync_status"):
            out[r["sync_status"]] = int(r["n"])
        out["total"] = sum(out[s] for s in SYNC_STATUSES)
        return out

    # -------------------------
    # export / import
    # -------------------------
    def export_data(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "version": STORE_VERSION,
                "exportDate": now_iso(),
                "memorials": [m.to_wire() for m in self.get_memorials()],
                "familyGroups": [g.to_wire() for g in self.get_family_groups()],
                "virtualOfferings": [o.to_wire() for o in self.get_virtual_offerings()],
                "userPreferences": [p.to_wire() for p in self._all_preferences()],
            }

    def import_data(self, doc: Any) -> Dict[str, int]:
        """
        Replace every collection with the document's contents.

        All records are validated before the first write; the clear and the
        inserts share one transaction, so a failure leaves the prior data.
        """
        if not isinstance(doc, Mapping) or not doc.get("version"):
            raise ImportFormatError()
        # import replaces all four tables, so each collection must be present
        for key, _, _ in _IMPORT_COLLECTIONS:
            if not isinstance(doc.get(key), list):
                raise ImportFormatError(f"Invalid import data format: {key} must be an array")

        errors: List[str] = []
        parsed: Dict[str, List[BaseModel]] = {}
        for key, kind, model in _IMPORT_COLLECTIONS:
            batch = validate_batch(doc[key], kind)
            errors.extend(f"{key}: {e}" for e in batch.errors)
            parsed[key] = []
            for item in batch.valid_items:
                try:
                    parsed[key].append(build_model(model, item, key))
                except ValidationFailed as e:
                    errors.extend(f"{key}: {msg}" for msg in e.errors)
        if errors:
            raise ValidationFailed("Import", errors)

        with self._tx("import_data") as c:
            self._clear(c)
            for m in parsed["memorials"]:
                self._put_memorial(c, m)
            for g in parsed["familyGroups"]:
                self._put_family_group(c, g)
            for o in parsed["virtualOfferings"]:
                self._put_offering(c, o)
            for p in parsed["userPreferences"]:
                self._put_preferences(c, p)

        counts = {key: len(parsed[key]) for key, _, _ in _IMPORT_COLLECTIONS}
        emit("audit", "store.import.completed", "data imported", module="store", counts=counts)
        return counts

    @staticmethod
    def _clear(c: sqlite3.Connection) -> None:
        for table in ("virtual_offerings", "memorials", "family_groups", "user_preferences"):
            c.execute(f"DELETE FROM {table}")

    def clear_all_data(self) -> None:
        with self._tx("clear_all_data") as c:
            self._clear(c)
        emit("audit", "store.cleared", "all data cleared", module="store")

    # -------------------------
    # stats
    # -------------------------
    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            memorials = self.get_memorials()
            offerings = self.get_virtual_offerings()
            groups = self._row("SELECT COUNT(*) AS n FROM family_groups")

        by_type: Dict[str, int] = {}
        for o in offerings:
            by_type[o.type] = by_type.get(o.type, 0) + 1

        return {
            "memorials": {
                "total": len(memorials),
                "byLevel": {lvl: sum(1 for m in memorials if m.altar_level == lvl) for lvl in ALTAR_LEVELS},
                "withPhotos": sum(1 for m in memorials if m.photo),
                "withAudio": sum(1 for m in memorials if m.audio_message),
            },
            "familyGroups": int(groups["n"]) if groups is not None else 0,
            "virtualOfferings": {"total": len(offerings), "byType": by_type},
        }
