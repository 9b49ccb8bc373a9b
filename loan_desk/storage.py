"""
Storage Backend Module

Records are plain JSON-compatible dicts keyed by table and id. Two backends
share one interface: InMemoryStorage for tests and throwaway desks, and
SQLiteStorage for a desk that survives restarts. Money travels as Decimal
strings so nothing is lost to float conversion.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union, Sequence
from decimal import Decimal
from datetime import datetime, timezone
import copy
import sqlite3
import json
import re
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager

from .logging_config import get_logger


logger = get_logger("loan_desk.storage")

_TABLE_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

Record = Dict[str, Any]


@dataclass
class StorageRecord:
    """Base for customers, loans and anything else kept in a table"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Record:
        """Flatten to JSON-safe values: ISO timestamps, Decimal as str"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        for key, value in result.items():
            if isinstance(value, Decimal):
                result[key] = str(value)
        return result

    def touch(self) -> None:
        """Bump updated_at to now"""
        self.updated_at = datetime.now(timezone.utc)


class StorageInterface(ABC):
    """
    Table/record store used by the repositories and the audit trail.

    Writes made inside atomic() land together or not at all. Nested atomic()
    blocks join the outermost one.
    """

    @abstractmethod
    def save(self, table: str, record_id: str, data: Record) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Record]:
        """Record by id, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Record]:
        """Every record of a table in insertion order"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; False when it was not there"""

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        """Records whose top-level fields equal every filter value"""

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of records in a table"""

    @abstractmethod
    def close(self) -> None:
        """Release the backend"""

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """Commit the block's writes on success, undo them on any exception"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _matches(record: Record, filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


class InMemoryStorage(StorageInterface):
    """Dict-backed store; a transaction is a deep snapshot of every table"""

    def __init__(self):
        self._tables: Dict[str, Dict[str, Record]] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Dict[str, Record]]] = None
        self._depth = 0

    def _table(self, table: str) -> Dict[str, Record]:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Record) -> None:
        with self._lock:
            # Stored as JSON would store it, so both backends hand back the same shapes
            self._table(table)[record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._table(table).get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def load_all(self, table: str) -> List[Record]:
        with self._lock:
            return copy.deepcopy(list(self._table(table).values()))

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        with self._lock:
            return copy.deepcopy([
                record for record in self._table(table).values() if _matches(record, filters)
            ])

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._tables)
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0 and self._snapshot is not None:
            self._tables = self._snapshot
            self._snapshot = None
            logger.debug("In-memory transaction rolled back")
        self._lock.release()

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """One SQLite table per record table, each row holding the record as JSON"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._known_tables = set()

        if self.db_path != ":memory:":
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._known_tables:
            return
        if not _TABLE_NAME.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._connection.execute(
            f"CREATE TABLE IF NOT EXISTS {table} "
            f"(id TEXT PRIMARY KEY, data TEXT NOT NULL, created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
        )
        self._known_tables.add(table)

    def _query(self, table: str, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(sql.format(table=table), params).fetchall()

    def _write(self, table: str, sql: str, params: Sequence[Any]) -> int:
        """Run one write; outside a transaction it commits at once. Returns the affected row count."""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(sql.format(table=table), params)
            if self._depth == 0:
                self._connection.commit()
            return cursor.rowcount

    def save(self, table: str, record_id: str, data: Record) -> None:
        now = datetime.now(timezone.utc).isoformat()
        self._write(
            table,
            "INSERT INTO {table} (id, data, created_at, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated_at = excluded.updated_at",
            (record_id, json.dumps(data, default=str), now, now)
        )

    def load(self, table: str, record_id: str) -> Optional[Record]:
        rows = self._query(table, "SELECT data FROM {table} WHERE id = ?", (record_id,))
        return json.loads(rows[0]['data']) if rows else None

    def load_all(self, table: str) -> List[Record]:
        rows = self._query(table, "SELECT data FROM {table} ORDER BY created_at, rowid")
        return [json.loads(row['data']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        return self._write(table, "DELETE FROM {table} WHERE id = ?", (record_id,)) > 0

    def find(self, table: str, filters: Dict[str, Any]) -> List[Record]:
        return [record for record in self.load_all(table) if _matches(record, filters)]

    def count(self, table: str) -> int:
        return self._query(table, "SELECT COUNT(*) AS n FROM {table}")[0]['n']

    def begin_transaction(self) -> None:
        # DEFERRED isolation opens the SQLite transaction on the first write
        self._lock.acquire()
        self._depth += 1

    def commit(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._connection.commit()
        self._lock.release()

    def rollback(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self._connection.rollback()
            # Tables created inside the rolled-back block are gone again
            self._known_tables.clear()
            logger.debug("SQLite transaction rolled back")
        self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
