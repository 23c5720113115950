"""
Tests for the reactive state container, its actions and the snapshot flusher.
"""

from __future__ import annotations

import threading
import time

import pytest

from mictla.core.errors import ValidationFailed
from mictla.core.storage import SnapshotBlob
from mictla.modules.state.flusher import SnapshotFlusher
from mictla.modules.state.service import AppState, deep_merge


class FakeClock:
    def __init__(self):
        self.t = 100.0

    def __call__(self) -> float:
        return self.t


class BrokenBlob(SnapshotBlob):
    def write(self, document):
        raise OSError("disk full")


class CountingBlob(SnapshotBlob):
    def __init__(self, root):
        super().__init__(root)
        self.written = threading.Event()
        self.count = 0

    def write(self, document):
        super().write(document)
        self.count += 1
        self.written.set()


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def state():
    s = AppState(notification_ttl_seconds=0)
    yield s
    s.close()


@pytest.fixture
def bound_state(store, blob):
    s = AppState(store=store, snapshot=blob, debounce_seconds=60, notification_ttl_seconds=0, autostart=False)
    yield s
    s.close()


class TestPaths:
    def test_default_tree(self, state):
        assert state.get("user.language") == "es"
        assert state.get("user.userId").startswith("user_")
        assert state.get("ui.currentView") == "home"
        assert state.get("memorials") == []
        assert state.get("sync.status") == "idle"

    def test_missing_path_is_none(self, state):
        assert state.get("user.nope.deeper") is None
        assert state.get("nothing") is None

    def test_set_creates_intermediate_dicts(self, state):
        state.set("a.b.c", 1)
        assert state.get("a") == {"b": {"c": 1}}

    def test_set_through_list_index(self, state):
        seen = []
        state.set("memorials", [{"id": "a", "name": "x"}, {"id": "b", "name": "z"}])
        state.subscribe("memorials", lambda new, old, path: seen.append(path))
        state.set("memorials.0.name", "y")
        assert state.get("memorials") == [{"id": "a", "name": "y"}, {"id": "b", "name": "z"}]
        assert state.get("memorials.0.name") == "y"
        assert seen == ["memorials"]

    def test_set_appends_at_list_end(self, state):
        state.set("ui.modals.0", "first")
        state.set("ui.modals.1.title", "second")
        assert state.get("ui.modals") == ["first", {"title": "second"}]

    def test_set_rejects_bad_list_index(self, state):
        state.set("ui.modals", ["a"])
        with pytest.raises(ValueError):
            state.set("ui.modals.5", "b")
        with pytest.raises(ValueError):
            state.set("ui.modals.name", "b")
        assert state.get("ui.modals") == ["a"]

    def test_set_rejects_empty_path(self, state):
        with pytest.raises(ValueError):
            state.set("", 1)

    def test_update_merges(self, state):
        state.update("arSession", {"isActive": True})
        assert state.get("arSession.isActive") is True
        assert state.get("arSession.offerings") == []

    def test_push_and_remove(self, state):
        state.push("ui.modals", "a")
        state.push("ui.modals", "b")
        state.push("ui.modals", "c")
        state.remove("ui.modals", "b")
        assert state.get("ui.modals") == ["a", "c"]
        state.remove("ui.modals", lambda m: m == "a")
        assert state.get("ui.modals") == ["c"]

    def test_push_assigns_new_list(self, state):
        before = state.get("ui.modals")
        state.push("ui.modals", "x")
        assert state.get("ui.modals") is not before


class TestSubscriptions:
    def test_exact_and_ancestor_both_called(self, state):
        calls = []
        state.subscribe("user", lambda new, old, path: calls.append(("user", path)))
        state.subscribe("user.language", lambda new, old, path: calls.append(("lang", new, old, path)))
        state.set("user.language", "en")
        assert ("lang", "en", "es", "user.language") in calls
        assert ("user", "user") in calls

    def test_ancestor_gets_subtree(self, state):
        seen = []
        state.subscribe("user", lambda new, old, path: seen.append((new, old)))
        state.set("user.language", "en")
        new, old = seen[0]
        assert new is old
        assert new["language"] == "en"

    def test_descendant_notified_on_parent_set(self, state):
        seen = []
        state.subscribe("user.language", lambda new, old, path: seen.append((new, old, path)))
        state.set("user", {**state.get("user"), "language": "en"})
        assert seen == [("en", "es", "user.language")]

    def test_root_sees_every_change(self, state):
        paths = []
        state.subscribe("", lambda new, old, path: paths.append(path))
        state.set("ui.loading", True)
        state.set("sync.status", "syncing")
        assert paths == ["", ""]

    def test_failing_callback_does_not_stop_others(self, state):
        seen = []

        def boom(*_):
            raise RuntimeError("observer bug")

        state.subscribe("ui.theme", boom)
        state.subscribe("ui.theme", lambda new, old, path: seen.append(new))
        state.set("ui.theme", "dark")
        assert seen == ["dark"]
        assert state.get("ui.theme") == "dark"

    def test_unsubscribe(self, state):
        seen = []
        unsubscribe = state.subscribe("ui.loading", lambda new, old, path: seen.append(new))
        state.set("ui.loading", True)
        unsubscribe()
        state.set("ui.loading", False)
        assert seen == [True]


class TestSnapshots:
    def test_rapid_sets_coalesce_into_one_write(self, blob):
        clock = FakeClock()
        s = AppState(notification_ttl_seconds=0)
        flusher = SnapshotFlusher(blob, s.snapshot, debounce_seconds=1.0, clock=clock, autostart=False)
        s.flusher = flusher

        for lang in ("en", "es", "en", "es", "en"):
            s.set("user.language", lang)
            clock.t += 0.1

        assert flusher.run_pending() is False
        clock.t += 1.0
        assert flusher.run_pending() is True
        assert flusher.run_pending() is False
        assert flusher.writes == 1
        assert blob.read()["user"]["language"] == "en"

    def test_background_flush(self, storage_root):
        blob = CountingBlob(storage_root)
        s = AppState(snapshot=blob, debounce_seconds=0.05, notification_ttl_seconds=0)
        try:
            for view in ("altar", "memorias", "familia"):
                s.actions.set_current_view(view)
            assert blob.written.wait(timeout=2.0)
            assert _wait_for(lambda: not s.flusher.dirty)
            time.sleep(0.2)
            assert blob.count == 1
            assert blob.read()["ui"]["currentView"] == "familia"
        finally:
            s.close()

    def test_flush_now(self, bound_state, blob):
        bound_state.set("ui.theme", "dark")
        assert bound_state.flush_now() is True
        assert blob.read()["ui"]["theme"] == "dark"

    def test_write_failure_is_swallowed(self, storage_root):
        s = AppState(snapshot=BrokenBlob(storage_root), debounce_seconds=60, autostart=False)
        s.set("ui.loading", True)
        assert s.flush_now() is False
        assert s.flusher.failures == 1
        assert s.get("ui.loading") is True
        s.close()

    def test_load_deep_merges(self, blob):
        blob.write({"user": {"language": "en", "userId": "user_saved"}, "ui": {"theme": "dark"}})
        s = AppState(snapshot=blob, autostart=False)
        assert s.load() is True
        assert s.get("user.language") == "en"
        assert s.get("user.userId") == "user_saved"
        assert s.get("user.audioEnabled") is True
        assert s.get("ui.currentView") == "home"
        s.close()

    def test_load_without_snapshot(self, blob):
        s = AppState(snapshot=blob, autostart=False)
        assert s.load() is False
        s.close()

    def test_close_flushes_pending(self, blob):
        s = AppState(snapshot=blob, debounce_seconds=60)
        s.set("ui.theme", "light")
        s.close()
        assert blob.read()["ui"]["theme"] == "light"

    def test_blob_keys_and_clear(self, storage_root):
        with pytest.raises(ValueError):
            SnapshotBlob(storage_root, "../escape")
        b = SnapshotBlob(storage_root, "altar-state")
        b.write({"ui": {"theme": "dark"}})
        assert b.path == storage_root / "snapshots" / "altar-state.json"
        b.clear()
        assert b.read() is None

    def test_deep_merge(self):
        assert deep_merge({"a": {"b": 1, "c": 2}, "l": [1]}, {"a": {"b": 3}, "l": [2]}) == {
            "a": {"b": 3, "c": 2},
            "l": [2],
        }


class TestActions:
    def test_language_and_theme(self, state):
        state.actions.set_language("en")
        assert state.get("user.language") == "en"
        with pytest.raises(ValueError):
            state.actions.set_language("fr")
        assert state.actions.toggle_theme() == "light"
        assert state.actions.toggle_theme() == "dark"

    def test_view_and_loading(self, state):
        state.actions.set_current_view("altar")
        state.actions.set_loading(1)
        assert state.get("ui.currentView") == "altar"
        assert state.get("ui.loading") is True

    def test_notifications(self, state):
        n = state.actions.show_notification({"title": "Guardado"})
        assert state.get("ui.notifications")[0]["title"] == "Guardado"
        state.actions.remove_notification(n["id"])
        assert state.get("ui.notifications") == []

    def test_notification_auto_removal(self):
        s = AppState(notification_ttl_seconds=0.05)
        try:
            s.actions.show_notification({"title": "Temporal"})
            assert _wait_for(lambda: s.get("ui.notifications") == [])
        finally:
            s.close()

    def test_ar_session(self, state):
        state.set("arSession.camera", "cam")
        state.actions.start_ar_session()
        assert state.get("arSession.isActive") is True
        state.actions.end_ar_session()
        assert state.get("arSession") == {
            "isActive": False,
            "isSupported": False,
            "camera": None,
            "scene": None,
            "offerings": [],
        }

    def test_memorials_without_store(self, state, memorial_data):
        m = state.actions.add_memorial(memorial_data)
        assert m.sync_status == "local"
        assert state.get("memorials")[0]["id"] == m.id

        updated = state.actions.update_memorial(m.id, {"name": "Juan M. García"})
        assert updated.sync_status == "pending"
        assert state.get("memorials")[0]["name"] == "Juan M. García"
        assert state.actions.update_memorial("memorial_nope", {"name": "x"}) is None

        assert state.actions.remove_memorial(m.id) is True
        assert state.get("memorials") == []

    def test_add_memorial_persists(self, bound_state, store, memorial_data):
        m = bound_state.actions.add_memorial({**memorial_data, "syncStatus": "synced"})
        assert m.sync_status == "local"
        assert store.get_memorial(m.id).name == "Juan García"
        assert bound_state.get("memorials")[0]["syncStatus"] == "local"

    def test_add_invalid_memorial(self, bound_state, store):
        seen = []
        bound_state.subscribe("memorials", lambda *a: seen.append(a))
        with pytest.raises(ValidationFailed):
            bound_state.actions.add_memorial({"name": "", "altarLevel": 5})
        assert bound_state.get("memorials") == []
        assert store.get_memorials() == []
        assert seen == []

    def test_update_and_remove_persist(self, bound_state, store, memorial_data, offering_data):
        m = bound_state.actions.add_memorial(memorial_data)
        store.save_virtual_offering({**offering_data, "memorialId": m.id})

        updated = bound_state.actions.update_memorial(m.id, {"story": "Cantaba rancheras"})
        assert store.get_memorial(m.id).sync_status == "pending"
        assert bound_state.get("memorials")[0]["story"] == updated.story

        assert bound_state.actions.remove_memorial(m.id) is True
        assert store.get_memorial(m.id) is None
        assert store.get_offerings_by_memorial(m.id) == []
        assert bound_state.get("memorials") == []

    def test_reconcile(self, bound_state, store, memorial_data):
        m = store.save_memorial(memorial_data)
        bound_state.reconcile()
        assert [x["id"] for x in bound_state.get("memorials")] == [m.id]

    def test_save_preferences(self, bound_state, store):
        bound_state.actions.set_language("en")
        bound_state.set("ui.theme", "dark")
        prefs = bound_state.actions.save_preferences()
        stored = store.get_user_preferences(bound_state.get("user.userId"))
        assert prefs.language == stored.language == "en"
        assert stored.theme == "dark"

    def test_save_preferences_without_store(self, state):
        assert state.actions.save_preferences() is None
