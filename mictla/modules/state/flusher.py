from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

from mictla.core.observability import emit
from mictla.core.storage import SnapshotBlob


class SnapshotFlusher:
    """
    Debounced writer for the state snapshot.

    mark_dirty() records a change; the background thread writes once the tree
    has been quiet for `debounce_seconds`. Changes inside the window coalesce
    into one write of the latest tree. flush_now() writes synchronously.

    Write failures are logged (event state.snapshot.failed) and dropped.
    """

    def __init__(
        self,
        blob: SnapshotBlob,
        snapshot: Callable[[], Dict[str, Any]],
        debounce_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        autostart: bool = True,
    ):
        self.blob = blob
        self.debounce_seconds = debounce_seconds
        self.writes = 0
        self.failures = 0
        self._snapshot = snapshot
        self._clock = clock
        self._cond = threading.Condition()
        self._dirty = False
        self._last_change = 0.0
        self._stopped = False
        self._thread: Optional[threading.Thread] = None
        if autostart:
            self.start()

    @property
    def dirty(self) -> bool:
        with self._cond:
            return self._dirty

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="snapshot-flusher", daemon=True)
        self._thread.start()

    def mark_dirty(self) -> None:
        with self._cond:
            self._dirty = True
            self._last_change = self._clock()
            self._cond.notify_all()

    def run_pending(self) -> bool:
        """Write if dirty and the debounce window has passed; True when a write happened."""
        with self._cond:
            if not self._dirty or self._clock() - self._last_change < self.debounce_seconds:
                return False
            self._dirty = False
        return self._write()

    def flush_now(self) -> bool:
        with self._cond:
            self._dirty = False
        return self._write()

    def stop(self, flush: bool = True) -> None:
        with self._cond:
            self._stopped = True
            pending = self._dirty
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        if flush and pending:
            self.flush_now()

    def _write(self) -> bool:
        try:
            self.blob.write(self._snapshot())
        except Exception as e:
            self.failures += 1
            emit("error", "state.snapshot.failed", str(e), module="state", path=str(self.blob.path))
            return False
        self.writes += 1
        emit("debug", "state.snapshot.written", "snapshot written", module="state", path=str(self.blob.path))
        return True

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._dirty and not self._stopped:
                    self._cond.wait()
                if self._stopped:
                    return
                remaining = self.debounce_seconds - (self._clock() - self._last_change)
                if remaining > 0:
                    self._cond.wait(remaining)
                    continue
            self.run_pending()
