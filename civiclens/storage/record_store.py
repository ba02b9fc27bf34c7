"""
Record store.

CRUD-style table storage for complaints, problems, links, agent logs and
analysis runs. Rows are plain JSON-serializable dicts keyed by "id".
"""

import copy
import json
import logging
import os
import shutil
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from filelock import FileLock, Timeout

from civiclens.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

TABLES = ("complaints", "problems", "complaint_problems", "agent_logs", "analysis_runs")

Row = Dict[str, object]
Predicate = Callable[[Row], bool]


class InMemoryRecordStore:
    """
    Table store held in process memory.

    Every write outside a transaction is its own atomic unit: it is committed
    immediately, or the previous state is restored when the commit fails.
    Inside `transaction()` all writes commit together, or the snapshot taken
    on entry is restored when the block raises.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Row]] = {name: {} for name in TABLES}
        self._lock = threading.RLock()
        self._transaction_depth = 0

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def insert(self, table: str, row: Row) -> Row:
        """
        Insert a new row.

        Raises:
            StorageError: If the table is unknown, the row has no id, or the id exists
        """
        with self._write():
            rows = self._table(table)
            record_id = row.get("id")
            if not record_id:
                raise StorageError(f"Cannot insert into {table}: row has no id")
            if record_id in rows:
                raise StorageError(f"Duplicate id in {table}: {record_id}")

            rows[record_id] = copy.deepcopy(row)
            return copy.deepcopy(rows[record_id])

    def get(self, table: str, record_id: str) -> Optional[Row]:
        """Return a copy of the row, or None if absent."""
        with self._read():
            row = self._table(table).get(record_id)
            return copy.deepcopy(row) if row is not None else None

    def update(self, table: str, record_id: str, fields: Row) -> Row:
        """
        Merge fields into an existing row.

        Raises:
            NotFoundError: If record_id is absent
        """
        with self._write():
            rows = self._table(table)
            if record_id not in rows:
                raise NotFoundError(table, record_id)

            if "id" in fields and fields["id"] != record_id:
                raise StorageError(f"Cannot change id of {table} record {record_id}")

            rows[record_id].update(copy.deepcopy(fields))
            return copy.deepcopy(rows[record_id])

    def select(
        self,
        table: str,
        where: Optional[Row] = None,
        predicate: Optional[Predicate] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[Row]:
        """
        Query rows in insertion order.

        Args:
            table: Table name
            where: Field equality filter
            predicate: Arbitrary row filter, applied after `where`
            order_by: Field to sort on (stable sort)
            descending: Reverse sort order
            limit: Maximum rows to return

        Returns:
            List of row copies
        """
        with self._read():
            rows = [
                row for row in self._table(table).values()
                if self._matches(row, where) and (predicate is None or predicate(row))
            ]

            if order_by:
                rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)

            if limit is not None:
                rows = rows[:limit]

            return copy.deepcopy(rows)

    def count(self, table: str, where: Optional[Row] = None, predicate: Optional[Predicate] = None) -> int:
        with self._read():
            return sum(
                1 for row in self._table(table).values()
                if self._matches(row, where) and (predicate is None or predicate(row))
            )

    def delete_where(self, table: str, predicate: Optional[Predicate] = None) -> int:
        """
        Delete rows matching predicate (all rows when predicate is None).

        Returns:
            Number of rows deleted
        """
        with self._write():
            rows = self._table(table)
            doomed = [rid for rid, row in rows.items() if predicate is None or predicate(row)]
            for rid in doomed:
                del rows[rid]
            return len(doomed)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRecordStore"]:
        """
        Group writes into one atomic unit.

        Nested transactions join the outermost one. Other threads (and, for
        file-backed stores, other processes) are blocked from the store until
        the outermost transaction ends.
        """
        with self._write():
            self._transaction_depth += 1
            try:
                yield self
            finally:
                self._transaction_depth -= 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _read(self) -> Iterator[None]:
        """Hold the store for a read against the latest committed state."""
        with self._lock:
            if self._transaction_depth > 0:
                yield
                return

            with self._external_lock():
                self._refresh()
                yield

    @contextmanager
    def _write(self) -> Iterator[None]:
        """
        Hold the store for one atomic write unit.

        Inside a transaction the write joins it. Otherwise the latest
        committed state is loaded, the block runs, and the result is
        committed; any failure restores the state from before the block.
        """
        with self._lock:
            if self._transaction_depth > 0:
                yield
                return

            with self._external_lock():
                self._refresh()
                snapshot = copy.deepcopy(self._tables)
                try:
                    yield
                    self._commit()
                except BaseException:
                    self._tables = snapshot
                    raise

    def _table(self, table: str) -> Dict[str, Row]:
        if table not in self._tables:
            raise StorageError(f"Unknown table: {table}")
        return self._tables[table]

    @staticmethod
    def _matches(row: Row, where: Optional[Row]) -> bool:
        if not where:
            return True
        return all(row.get(key) == value for key, value in where.items())

    def _external_lock(self):
        """Cross-process lock; nothing to share for the in-memory backend."""
        return nullcontext()

    def _refresh(self) -> None:
        """Reload state committed by other writers. No-op in memory."""

    def _commit(self) -> None:
        """Persist committed state. Nothing to do for the in-memory backend."""


class JsonFileRecordStore(InMemoryRecordStore):
    """
    Record store persisted to a single JSON document.

    Every access takes an inter-process lock on `<path>.lock` and reloads the
    document if another process has replaced it since it was last read, so
    several CLI processes can share one store file. Every commit rewrites the
    file with an atomic temp-file + rename, keeping the previous version as
    `<path>.backup`.
    """

    VERSION = "1.0.0"

    def __init__(self, store_path: str, lock_timeout: float = 30.0):
        """
        Initialize store from disk or create a new empty store.

        Args:
            store_path: Path to the JSON document
            lock_timeout: Seconds to wait for another process to release the store
        """
        super().__init__()
        self.store_path = str(store_path)
        self.lock_timeout = lock_timeout
        self._file_signature: Optional[Tuple[int, int, int]] = None

        directory = os.path.dirname(self.store_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self._file_lock = FileLock(f"{self.store_path}.lock", timeout=lock_timeout)

        with self._external_lock():
            if os.path.exists(self.store_path):
                self._load()
            else:
                logger.info(f"No existing store found at {self.store_path}, initializing empty store")

    @contextmanager
    def _external_lock(self) -> Iterator[None]:
        try:
            with self._file_lock:
                yield
        except Timeout as e:
            raise StorageError(
                f"Store {self.store_path} is locked by another process (waited {self.lock_timeout}s)"
            ) from e

    def _signature(self) -> Optional[Tuple[int, int, int]]:
        try:
            stat = os.stat(self.store_path)
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _refresh(self) -> None:
        """Reload the document when another process has committed since our last read."""
        signature = self._signature()
        if signature is None or signature == self._file_signature:
            return

        logger.debug(f"Store {self.store_path} changed on disk, reloading")
        self._load()

    def _load(self) -> None:
        """Load tables from disk."""
        try:
            with open(self.store_path, "r") as f:
                data = json.load(f)

            self._tables = self._parse_tables(data)
            self._file_signature = self._signature()

            logger.info(
                f"Loaded store from {self.store_path}: "
                + ", ".join(f"{name}={len(self._tables[name])}" for name in TABLES)
            )

        except (json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
            logger.error(f"Failed to parse store JSON: {e}")
            self._restore_from_backup()
        except OSError as e:
            raise StorageError(f"Failed to read store {self.store_path}: {e}") from e

    @staticmethod
    def _parse_tables(data: dict) -> Dict[str, Dict[str, Row]]:
        tables = data.get("tables", {})
        return {name: {row["id"]: row for row in tables.get(name, [])} for name in TABLES}

    def _restore_from_backup(self) -> None:
        """Replace a corrupted store file with its backup, if one exists."""
        backup_path = f"{self.store_path}.backup"
        if not os.path.exists(backup_path):
            raise StorageError(f"Store {self.store_path} is corrupted and no backup exists")

        logger.warning(f"Attempting to restore from backup: {backup_path}")
        try:
            with open(backup_path, "r") as f:
                data = json.load(f)
            tables = self._parse_tables(data)
        except (OSError, json.JSONDecodeError, KeyError, AttributeError, TypeError) as e:
            raise StorageError(f"Backup restoration failed: {e}") from e

        self._tables = tables
        shutil.copy(backup_path, self.store_path)
        self._file_signature = self._signature()
        logger.info("Successfully restored from backup")

    def _commit(self) -> None:
        """Persist all tables with the atomic write pattern."""
        data = {
            "version": self.VERSION,
            "last_updated": datetime.now(timezone.utc).isoformat(),
            "tables": {name: list(rows.values()) for name, rows in self._tables.items()},
        }

        temp_path = f"{self.store_path}.tmp"
        try:
            if os.path.exists(self.store_path):
                shutil.copy(self.store_path, f"{self.store_path}.backup")

            with open(temp_path, "w") as f:
                json.dump(data, f, indent=2)

            os.replace(temp_path, self.store_path)
            self._file_signature = self._signature()
            logger.debug(f"Store saved to {self.store_path}")

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save store: {e}")
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise StorageError(f"Failed to save store {self.store_path}: {e}") from e
