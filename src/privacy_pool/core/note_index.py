"""
Note index tracking.

Each (account key, pool) pair owns a monotonically increasing sequence of note
indices. Reusing an index re-derives an already used nullifier/secret pair,
so the tracker is the single source of truth for "next available index" and
hands indices out atomically: two concurrent reservations for the same pair
never receive the same value.

A reservation may carry a floor (`min_index`), typically one past the index of
the note being spent, so an index the tracker has not seen yet is never handed
out again.

State is keyed by a keccak fingerprint of (key, pool); raw keys are never
stored.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from eth_utils import keccak

from privacy_pool.errors import IndexTrackerError

logger = logging.getLogger("privacy_pool.note_index")


class NoteIndexTracker(Protocol):
    def reserve_next_index(self, account_key: str, pool_address: str, min_index: int = 0) -> int: ...


def tracker_fingerprint(account_key: str, pool_address: str) -> str:
    """Stable identifier of an (account, pool) pair that does not reveal the key."""
    material = f"{account_key.lower()}:{pool_address.lower()}".encode("utf-8")
    return keccak(material).hex()


class InMemoryNoteIndexTracker:
    """
    Process-local tracker.

    Usage:
        tracker = InMemoryNoteIndexTracker()
        tracker.record_used_index(key, pool, 3)           # seed from discovered notes
        tracker.reserve_next_index(key, pool)             # -> 4
        tracker.reserve_next_index(key, pool, min_index=9)  # -> 9
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_used: dict[str, int] = {}

    def reserve_next_index(self, account_key: str, pool_address: str, min_index: int = 0) -> int:
        """Atomically return max(last-used + 1, min_index) and mark it used. A fresh pair starts at 0."""
        if min_index < 0:
            raise IndexTrackerError(f"Note index floor must be non-negative, got {min_index}")
        fp = tracker_fingerprint(account_key, pool_address)
        with self._transaction():
            last = self._last_used.get(fp)
            index = max(0 if last is None else last + 1, min_index)
            self._last_used[fp] = index
            self._persist()
        logger.debug(f"Reserved note index {index} for {fp[:12]}...")
        return index

    def record_used_index(self, account_key: str, pool_address: str, index: int) -> None:
        """Mark `index` as used. Never moves the counter backwards."""
        if index < 0:
            raise IndexTrackerError(f"Note index must be non-negative, got {index}")
        fp = tracker_fingerprint(account_key, pool_address)
        with self._transaction():
            last = self._last_used.get(fp)
            if last is None or index > last:
                self._last_used[fp] = index
                self._persist()

    def last_used_index(self, account_key: str, pool_address: str) -> int | None:
        with self._transaction():
            return self._last_used.get(tracker_fingerprint(account_key, pool_address))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            yield

    def _persist(self) -> None:
        """Hook for durable subclasses; called inside a transaction."""


class JsonFileNoteIndexTracker(InMemoryNoteIndexTracker):
    """
    Tracker persisted to a JSON file.

    Every reservation holds an exclusive lock on `<path>.lock`, re-reads the
    file, and writes it back (atomically, via rename) before the index is
    returned. Several processes may share one file; a restarted process
    continues after the last handed-out index.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self.lock_path = self.path.with_suffix(self.path.suffix + ".lock")
        self._last_used = self._load()

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                handle = open(self.lock_path, "a")
            except OSError as err:
                raise IndexTrackerError(f"Cannot open note index lock {self.lock_path}: {err}") from err
            with handle:
                fcntl.flock(handle, fcntl.LOCK_EX)
                try:
                    # Another process may have reserved since our last read
                    self._last_used = self._load()
                    yield
                finally:
                    fcntl.flock(handle, fcntl.LOCK_UN)

    def _load(self) -> dict[str, int]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as err:
            raise IndexTrackerError(f"Cannot read note index file {self.path}: {err}") from err
        if not isinstance(data, dict):
            raise IndexTrackerError(f"Note index file {self.path} is not a JSON object")
        return {str(k): int(v) for k, v in data.items()}

    def _persist(self) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + f".{os.getpid()}.tmp")
        try:
            tmp_path.write_text(json.dumps(self._last_used, sort_keys=True))
            os.replace(tmp_path, self.path)
        except OSError as err:
            raise IndexTrackerError(f"Cannot write note index file {self.path}: {err}") from err
