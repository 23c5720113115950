"""
Reactive state container.

The tree mirrors application state as plain JSON-ready dicts/lists, addressed
by dot paths ("user.language"). Subscribers are called synchronously on every
change:

- exact path:      (new, old, path)
- ancestor paths:  (subtree, subtree, ancestor)   "" is the root and sees all
- descendants:     (new_child, old_child, child_path)

The entity store is the source of truth; `memorials` here is a cache that
reconcile() rebuilds from it.
"""
from __future__ import annotations

import copy
import json
import threading
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from mictla.core.config import get_notification_ttl_seconds, get_snapshot_debounce_seconds
from mictla.core.ids import new_id, new_user_id
from mictla.core.observability import emit, now_iso
from mictla.core.storage import SnapshotBlob, json_default
from mictla.core.wire import utcnow
from mictla.modules.memorials.schemas import Memorial
from mictla.modules.preferences.schemas import UserPreferences
from mictla.modules.state.flusher import SnapshotFlusher
from mictla.modules.store.service import EntityStore
from mictla.modules.validation.schemas import LANGUAGES
from mictla.modules.validation.service import as_wire, validated_entity

Callback = Callable[[Any, Any, str], Any]

_MISSING = object()


def default_tree() -> Dict[str, Any]:
    return {
        "user": {
            "userId": new_user_id(),
            "language": "es",
            "arEnabled": False,
            "audioEnabled": True,
            "tutorialCompleted": False,
            "lastVisit": now_iso(),
            "familyGroup": None,
            "syncSettings": {"autoSync": True, "lastSyncTime": None, "conflictResolution": "manual"},
            "exportSettings": {"includeAudio": True, "format": "pdf", "quality": "medium"},
        },
        "memorials": [],
        "familyGroup": None,
        "arSession": {"isActive": False, "isSupported": False, "camera": None, "scene": None, "offerings": []},
        "ui": {"currentView": "home", "loading": False, "modals": [], "notifications": [], "theme": "auto"},
        "sync": {"status": "idle", "lastSync": None, "pendingChanges": []},
    }


def deep_merge(target: Mapping, source: Mapping) -> Dict[str, Any]:
    """Nested dicts merge key by key; anything else in `source` replaces."""
    out = dict(target)
    for k, v in source.items():
        if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _split(path: str) -> List[str]:
    return [p for p in path.split(".") if p] if path else []


def _lookup(node: Any, parts: List[str]) -> Any:
    for key in parts:
        if isinstance(node, Mapping):
            node = node.get(key, _MISSING)
        elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
            node = node[int(key)]
        else:
            return _MISSING
        if node is _MISSING:
            return _MISSING
    return node


def _assign(node: Any, key: str, value: Any, path: str) -> None:
    """Set `key` on a dict, or an existing index (or the next one) on a list."""
    if isinstance(node, list):
        if not key.isdigit() or int(key) > len(node):
            raise ValueError(f"invalid list index {key!r} in path {path!r}")
        if int(key) == len(node):
            node.append(value)
        else:
            node[int(key)] = value
        return
    node[key] = value


class AppState:
    def __init__(
        self,
        store: Optional[EntityStore] = None,
        snapshot: Optional[SnapshotBlob] = None,
        debounce_seconds: Optional[float] = None,
        notification_ttl_seconds: Optional[float] = None,
        *,
        autostart: bool = True,
    ):
        self.store = store
        self.notification_ttl_seconds = (
            get_notification_ttl_seconds() if notification_ttl_seconds is None else notification_ttl_seconds
        )
        self._state: Dict[str, Any] = default_tree()
        self._observers: Dict[str, List[Callback]] = {}
        self._lock = threading.RLock()
        self._timers: List[threading.Timer] = []
        self.flusher: Optional[SnapshotFlusher] = None
        if snapshot is not None:
            self.flusher = SnapshotFlusher(
                snapshot,
                self.snapshot,
                get_snapshot_debounce_seconds() if debounce_seconds is None else debounce_seconds,
                autostart=autostart,
            )
        self.actions = StateActions(self)

    # -------------------------
    # read / write
    # -------------------------
    def get(self, path: str) -> Any:
        with self._lock:
            v = _lookup(self._state, _split(path))
            return None if v is _MISSING else v

    def set(self, path: str, value: Any) -> None:
        parts = _split(path)
        if not parts:
            raise ValueError("path must not be empty")
        with self._lock:
            old = self.get(path)
            node: Any = self._state
            for key in parts[:-1]:
                child = _lookup(node, [key])
                if not isinstance(child, (dict, list)):
                    child = {}
                    _assign(node, key, child, path)
                node = child
            _assign(node, parts[-1], value, path)
        self._notify(path, value, old)
        self._mark_dirty()

    def update(self, path: str, partial: Mapping) -> None:
        current = self.get(path)
        base = dict(current) if isinstance(current, Mapping) else {}
        self.set(path, {**base, **partial})

    def push(self, path: str, item: Any) -> None:
        current = self.get(path)
        self.set(path, [*(current if isinstance(current, list) else []), item])

    def remove(self, path: str, predicate: Any) -> None:
        """Drop items matching `predicate` (a callable) or equal to it (any other value)."""
        current = self.get(path)
        items = current if isinstance(current, list) else []
        if callable(predicate):
            kept = [i for i in items if not predicate(i)]
        else:
            kept = [i for i in items if i != predicate]
        self.set(path, kept)

    def subscribe(self, path: str, callback: Callback) -> Callable[[], None]:
        with self._lock:
            self._observers.setdefault(path, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                cbs = self._observers.get(path)
                if cbs and callback in cbs:
                    cbs.remove(callback)
                    if not cbs:
                        del self._observers[path]

        return unsubscribe

    def _call(self, cb: Callback, new: Any, old: Any, path: str) -> None:
        try:
            cb(new, old, path)
        except Exception as e:
            emit("error", "state.observer.failed", str(e), module="state", path=path)

    def _notify(self, path: str, new: Any, old: Any) -> None:
        with self._lock:
            observers = {p: list(cbs) for p, cbs in self._observers.items()}

        for cb in observers.get(path, []):
            self._call(cb, new, old, path)

        parts = _split(path)
        for i in range(len(parts) - 1, -1, -1):
            ancestor = ".".join(parts[:i])
            if ancestor not in observers:
                continue
            subtree = self._state if not ancestor else self.get(ancestor)
            for cb in observers[ancestor]:
                self._call(cb, subtree, subtree, ancestor)

        prefix = path + "."
        for sub_path, cbs in observers.items():
            if not sub_path.startswith(prefix):
                continue
            rel = _split(sub_path[len(prefix):])
            new_child = _lookup(new, rel)
            old_child = _lookup(old, rel)
            for cb in cbs:
                self._call(
                    cb,
                    None if new_child is _MISSING else new_child,
                    None if old_child is _MISSING else old_child,
                    sub_path,
                )

    # -------------------------
    # persistence
    # -------------------------
    def snapshot(self) -> Dict[str, Any]:
        """Detached JSON-ready copy of the tree."""
        with self._lock:
            return json.loads(json.dumps(self._state, ensure_ascii=False, default=json_default))

    def _mark_dirty(self) -> None:
        if self.flusher is not None:
            self.flusher.mark_dirty()

    def flush_now(self) -> bool:
        return self.flusher.flush_now() if self.flusher is not None else False

    def load(self) -> bool:
        """Merge the stored snapshot over the current tree; False when none was read."""
        if self.flusher is None:
            return False
        try:
            stored = self.flusher.blob.read()
        except (OSError, ValueError) as e:
            emit("error", "state.snapshot.load_failed", str(e), module="state")
            return False
        if not stored:
            return False
        with self._lock:
            self._state = deep_merge(self._state, stored)
        return True

    def reconcile(self) -> None:
        if self.store is None:
            return
        self.set("memorials", [m.to_wire() for m in self.store.get_memorials()])

    def close(self) -> None:
        for t in self._timers:
            t.cancel()
        self._timers.clear()
        if self.flusher is not None:
            self.flusher.stop(flush=True)

    def _schedule(self, delay: float, fn: Callable[[], Any]) -> None:
        t = threading.Timer(delay, fn)
        t.daemon = True
        self._timers = [x for x in self._timers if x.is_alive()]
        self._timers.append(t)
        t.start()


class StateActions:
    """Named composite operations over an AppState."""

    def __init__(self, state: AppState):
        self._s = state

    # user / ui
    def set_language(self, language: str) -> None:
        if language not in LANGUAGES:
            raise ValueError(f"Language must be one of: {', '.join(LANGUAGES)}")
        self._s.set("user.language", language)

    def toggle_theme(self) -> str:
        nxt = "dark" if self._s.get("ui.theme") == "light" else "light"
        self._s.set("ui.theme", nxt)
        return nxt

    def set_current_view(self, view: str) -> None:
        self._s.set("ui.currentView", view)

    def set_loading(self, loading: bool) -> None:
        self._s.set("ui.loading", bool(loading))

    def show_notification(self, notification: Mapping) -> Dict[str, Any]:
        n = {"id": new_id("notification"), "timestamp": now_iso(), **dict(notification)}
        self._s.push("ui.notifications", n)
        ttl = self._s.notification_ttl_seconds
        if ttl > 0:
            self._s._schedule(ttl, lambda: self.remove_notification(n["id"]))
        return n

    def remove_notification(self, notification_id: str) -> None:
        self._s.remove("ui.notifications", lambda n: isinstance(n, Mapping) and n.get("id") == notification_id)

    # memorials
    def add_memorial(self, data: Any) -> Memorial:
        raw = {**as_wire(data), "syncStatus": "local"}
        store = self._s.store
        memorial = store.save_memorial(raw) if store is not None else validated_entity("memorial", raw, Memorial)
        self._s.push("memorials", memorial.to_wire())
        return memorial

    def update_memorial(self, memorial_id: str, updates: Mapping) -> Optional[Memorial]:
        store = self._s.store
        if store is not None:
            updated = store.update_memorial(memorial_id, updates)
        else:
            current = next((m for m in self._s.get("memorials") or [] if m.get("id") == memorial_id), None)
            if current is None:
                return None
            merged = {**current, **as_wire(updates), "id": memorial_id, "syncStatus": "pending"}
            updated = validated_entity("memorial", merged, Memorial)
            updated.updated_at = utcnow()
        if updated is None:
            return None

        wire = updated.to_wire()
        memorials = list(self._s.get("memorials") or [])
        for i, m in enumerate(memorials):
            if m.get("id") == memorial_id:
                memorials[i] = wire
                break
        else:
            memorials.append(wire)
        self._s.set("memorials", memorials)
        return updated

    def remove_memorial(self, memorial_id: str) -> bool:
        deleted = self._s.store.delete_memorial(memorial_id) if self._s.store is not None else False
        before = self._s.get("memorials") or []
        in_mirror = any(m.get("id") == memorial_id for m in before)
        self._s.remove("memorials", lambda m: m.get("id") == memorial_id)
        return deleted or in_mirror

    # ar
    def start_ar_session(self) -> None:
        self._s.update("arSession", {"isActive": True})

    def end_ar_session(self) -> None:
        self._s.update("arSession", {"isActive": False, "camera": None, "scene": None})

    # preferences
    def save_preferences(self) -> Optional[UserPreferences]:
        """Persist the `user` subtree (plus ui.theme); None without an attached store."""
        store = self._s.store
        if store is None:
            return None
        user = copy.deepcopy(self._s.get("user") or {})
        prefs = store.save_user_preferences(user.get("userId"), {**user, "theme": self._s.get("ui.theme")})
        return prefs
