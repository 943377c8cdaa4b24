"""
Notification history store.

Bounded, newest-first, persisted collection of NotificationRecords shared
by the realtime channel, the background delivery bridge and the presenter.

Persisted layout: one JSON file holding an array of records with ISO 8601
timestamps, capped at the store capacity. The file is rewritten in full
on every mutation (temp file + rename) so a crash never leaves a partial
history behind.

Several processes may share one history file (the daemon and CLI
commands). Every write holds an exclusive lock on a sibling ".lock" file
and first merges what other processes wrote since this store last synced.
Records they added are adopted and records they removed stay removed. A
record read anywhere stays read.
"""

import fcntl
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from pydantic import TypeAdapter, ValidationError

from taskbell.exceptions import PersistenceCorrupt
from taskbell.logging_config import get_logger
from taskbell.models import NotificationRecord

logger = get_logger("store")


DEFAULT_CAPACITY = 20

_records_adapter: TypeAdapter = TypeAdapter(List[NotificationRecord])

Listener = Callable[[], None]


class NotificationStore:
    """
    Single source of truth for the notification history.

    All mutations run under one re-entrant lock, so the duplicate-id
    check, prepend, truncation and persistence of ``append`` are observed
    as a single step by other threads.

    Attributes:
        path: Location of the persisted history (None keeps it in memory)
        capacity: Maximum number of records kept
        last_processed_id: Id of the most recently appended record

    Usage:
        >>> store = NotificationStore(config.history_path)
        >>> store.load()
        >>> store.append(record)
        True
        >>> store.mark_read(record.id)
    """

    def __init__(self, path: Optional[Path] = None, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got: {capacity}")
        self.path = Path(path) if path is not None else None
        self.capacity = capacity
        self.last_processed_id: Optional[str] = None
        self._records: List[NotificationRecord] = []
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []
        # id -> read flag as last seen in the persisted file
        self._synced: Dict[str, bool] = {}

    # -------------------------------------------------------------------------
    # Read Access
    # -------------------------------------------------------------------------

    @property
    def records(self) -> List[NotificationRecord]:
        """Copy of the records, newest first."""
        with self._lock:
            return [r.model_copy() for r in self._records]

    def get(self, record_id: str) -> Optional[NotificationRecord]:
        with self._lock:
            for record in self._records:
                if record.id == record_id:
                    return record.model_copy()
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return any(r.id == record_id for r in self._records)

    def __iter__(self) -> Iterator[NotificationRecord]:
        return iter(self.records)

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked after every change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener failed")

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def append(self, record: NotificationRecord) -> bool:
        """
        Add a record at the front of the history.

        Returns:
            False if a record with the same id already exists (the stored
            version is kept unchanged), True otherwise
        """
        with self._lock:
            if any(r.id == record.id for r in self._records):
                logger.debug(f"Ignoring duplicate notification {record.id}")
                return False

            self._records = [record.model_copy()] + self._records
            evicted = self._records[self.capacity:]
            del self._records[self.capacity:]
            self.last_processed_id = record.id
            self._persist()

        if evicted:
            logger.debug(
                "Evicted oldest notifications",
                extra={"evicted_ids": [r.id for r in evicted]},
            )
        self._notify()
        return True

    def mark_read(self, record_id: str) -> bool:
        """
        Mark one record as read.

        Returns:
            True if the record existed and was unread
        """
        with self._lock:
            for index, record in enumerate(self._records):
                if record.id == record_id:
                    if record.read:
                        return False
                    self._records[index] = record.model_copy(update={"read": True})
                    self._persist()
                    break
            else:
                return False

        self._notify()
        return True

    def mark_all_read(self) -> int:
        """
        Mark every record as read, persisting once.

        Returns:
            Number of records that changed
        """
        with self._lock:
            changed = 0
            updated = []
            for record in self._records:
                if not record.read:
                    record = record.model_copy(update={"read": True})
                    changed += 1
                updated.append(record)
            if not changed:
                return 0
            self._records = updated
            self._persist()

        self._notify()
        return changed

    def clear(self) -> None:
        """Empty the history and remove the persisted file."""
        with self._lock:
            self._records = []
            self.last_processed_id = None
            if self.path is not None:
                try:
                    with self._file_lock():
                        self.path.unlink(missing_ok=True)
                        self._synced = {}
                except OSError as e:
                    logger.error(f"Failed to remove notification history: {e}")

        self._notify()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> List[NotificationRecord]:
        """
        Rebuild the history from disk.

        Malformed or unreadable state is treated as an empty history; this
        method never raises.

        Returns:
            The loaded records, newest first
        """
        with self._lock:
            try:
                records = self._read()
            except PersistenceCorrupt as e:
                logger.warning(f"Resetting notification history: {e}")
                records = []

            # Keep the first occurrence of each id and respect the bound
            seen = set()
            unique = []
            for record in records:
                if record.id not in seen:
                    seen.add(record.id)
                    unique.append(record)
            self._records = unique[: self.capacity]
            self._synced = {r.id: r.read for r in unique}
            self.last_processed_id = self._records[0].id if self._records else None

            logger.debug(f"Loaded {len(self._records)} notifications")
            return [r.model_copy() for r in self._records]

    def sync(self) -> bool:
        """
        Pick up changes other processes made to the history file.

        Never raises; unreadable state leaves the in-memory history as is.

        Returns:
            True if the in-memory history changed
        """
        if self.path is None:
            return False

        with self._lock:
            try:
                with self._file_lock():
                    changed = self._merge_from_disk()
            except OSError as e:
                logger.warning(f"Failed to sync notification history: {e}")
                return False

        if changed:
            self._notify()
        return changed

    def _read(self) -> List[NotificationRecord]:
        if self.path is None or not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise PersistenceCorrupt(f"cannot read {self.path}: {e}")
        if not raw.strip():
            return []
        try:
            return _records_adapter.validate_json(raw)
        except ValidationError as e:
            raise PersistenceCorrupt(
                f"invalid history in {self.path} ({e.error_count()} errors)"
            )

    @contextmanager
    def _file_lock(self):
        """Exclusive advisory lock shared by every process using this path."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        lock_path = self.path.with_name(f"{self.path.name}.lock")
        with open(lock_path, "a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _merge_from_disk(self) -> bool:
        """
        Fold changes written by other processes into memory.

        Must be called with both locks held.

        Returns:
            True if the in-memory records changed
        """
        try:
            on_disk = self._read()
        except PersistenceCorrupt as e:
            logger.warning(f"Ignoring unreadable history during merge: {e}")
            return False

        disk_state = {r.id: r.read for r in on_disk}
        if disk_state == self._synced:
            return False

        removed = set(self._synced) - set(disk_state)
        merged = []
        for record in self._records:
            if record.id in removed:
                continue
            if disk_state.get(record.id) and not record.read:
                record = record.model_copy(update={"read": True})
            merged.append(record)

        known = {r.id for r in merged}
        added = [
            r for r in on_disk
            if r.id not in self._synced and r.id not in known
        ]
        if added:
            merged = sorted(merged + added, key=lambda r: r.created_at, reverse=True)

        merged = merged[: self.capacity]
        changed = merged != self._records
        self._records = merged
        self._synced = disk_state
        if added and self._records:
            self.last_processed_id = self._records[0].id
        if changed:
            logger.debug(
                "Merged notification history from disk",
                extra={"added": len(added), "removed": len(removed)},
            )
        return changed

    def _persist(self) -> None:
        if self.path is None:
            return

        try:
            with self._file_lock():
                self._merge_from_disk()
                data = _records_adapter.dump_json(self._records, indent=2)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "wb") as f:
                        f.write(data)
                    os.replace(tmp_name, self.path)
                except BaseException:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        pass
                    raise
                self._synced = {r.id: r.read for r in self._records}
        except OSError as e:
            # In-memory state stays authoritative; the next mutation retries
            logger.error(f"Failed to persist notification history: {e}")
