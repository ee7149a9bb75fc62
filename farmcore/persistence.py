# farmcore/persistence.py
# Best-effort durable snapshots. Saves are fire-and-forget on a small worker
# pool, loads are synchronous.

from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from .db import SessionLocal
from .errors import PersistenceUnavailable
from .models import Snapshot

log = logging.getLogger(__name__)


def economy_key(player_id: int) -> str:
    return f"economy:{player_id}"


def quests_key(player_id: int) -> str:
    return f"quests:{player_id}"


class SqlSnapshotStore:
    def __init__(self, session_factory=None, max_workers: int = 1) -> None:
        self._session_factory = session_factory or SessionLocal
        # max_workers=1 keeps writes to the same key in submission order
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="snapshots")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_snapshot(self, key: str, blob: Dict[str, Any]) -> Future:
        """
        Queue an upsert and return immediately.

        Failures never reach the caller: they are logged when the write
        completes.
        """
        future = self._executor.submit(self._write, key, blob)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._done)
        return future

    def _write(self, key: str, blob: Dict[str, Any]) -> bool:
        try:
            with self._session_factory() as s:
                row = s.query(Snapshot).filter_by(key=key).one_or_none()
                if row is None:
                    s.add(Snapshot(key=key, blob=blob))
                else:
                    row.blob = blob
                    row.updated_at = dt.datetime.now(dt.timezone.utc)
                s.commit()
        except SQLAlchemyError as exc:
            log.error("Snapshot save failed for %s: %s", key, exc)
            return False
        except Exception:  # noqa: BLE001
            log.exception("Snapshot save failed for %s", key)
            return False
        log.debug("Snapshot saved: %s", key)
        return True

    def _done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued writes. Returns False if some are still running."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            log.warning("%s snapshot writes still pending after flush", len(not_done))
        return not not_done

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_snapshot(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Return the stored blob for ``key`` or None.

        Raises PersistenceUnavailable when the database cannot be read.
        """
        try:
            with self._session_factory() as s:
                row = s.query(Snapshot).filter_by(key=key).one_or_none()
                return dict(row.blob) if row is not None else None
        except SQLAlchemyError as exc:
            log.error("Snapshot load failed for %s: %s", key, exc)
            raise PersistenceUnavailable("Snapshot store unavailable", key=key) from exc


class MemorySnapshotStore:
    """Dict-backed store for tests and for running without a database."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def save_snapshot(self, key: str, blob: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = blob

    def load_snapshot(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            blob = self._data.get(key)
        return dict(blob) if blob is not None else None

    def flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def close(self) -> None:
        pass
