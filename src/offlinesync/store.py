"""Durable local storage for the offline engine.

This module provides:
- LocalStore: SQLite-based keyed storage with three logical tables
- Table: Names of the logical tables
- StorageUnavailable: Raised when the storage medium cannot be used

Architecture:
    CacheManager ─┐
    SyncQueue ────┼─► LocalStore ─► SQLite (WAL, autocommit)
    OfflineRecordManager ─┘

    Every put/delete is a single statement in autocommit mode, so a record
    is either fully written or not at all. Only clear_many() spans several
    tables and runs inside an explicit transaction.

    Higher-level components are thin typed views: they hand plain dicts to
    the store and convert rows back into dataclasses themselves.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

logger = logging.getLogger(__name__)


class StorageUnavailable(Exception):
    """The local storage medium could not be opened or used."""


class Table(str, Enum):
    """Logical tables owned by the LocalStore."""

    CACHE = "cache"
    SYNC_QUEUE = "sync_queue"
    OFFLINE_DATA = "offline_data"


@dataclass(frozen=True)
class TableSchema:
    """Key, index and ordering columns of a logical table."""

    key_columns: tuple[str, ...]
    index_column: str | None
    order_by: str
    version_column: str | None = None


SCHEMAS: dict[Table, TableSchema] = {
    Table.CACHE: TableSchema(
        key_columns=("key",),
        index_column=None,
        order_by="key",
    ),
    # Queue scans are FIFO: enqueue time first, rowid breaks same-instant ties
    Table.SYNC_QUEUE: TableSchema(
        key_columns=("id",),
        index_column="collection",
        order_by="enqueued_at, id",
    ),
    Table.OFFLINE_DATA: TableSchema(
        key_columns=("collection", "doc_id"),
        index_column="collection",
        order_by="collection, doc_id",
        version_column="version",
    ),
}


class LocalStore:
    """SQLite-based local store for cache, sync queue and offline records.

    Passing db_path=None opens a private in-memory database, which keeps
    the same contract but does not survive the process.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        """Open (or create) the local store.

        Args:
            db_path: Path to SQLite database file, or None for in-memory.

        Raises:
            StorageUnavailable: If the database cannot be opened.
        """
        self._db_path = Path(db_path) if db_path is not None else None

        # Lock for thread-safe database access
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None

        try:
            if self._db_path is not None:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(self._db_path) if self._db_path is not None else ":memory:",
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode
            )
            self._conn.row_factory = sqlite3.Row

            # Enable WAL mode for better concurrency
            if self._db_path is not None:
                self._conn.execute("PRAGMA journal_mode=WAL")

            self._create_tables()
        except (sqlite3.Error, OSError) as e:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            raise StorageUnavailable(f"Cannot open local store at {db_path}: {e}") from e

        logger.debug("Local store opened at %s", self._db_path or ":memory:")

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        assert self._conn is not None
        self._conn.executescript("""
            -- TTL cache
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                data BLOB,
                encoding TEXT NOT NULL,
                created_at REAL NOT NULL,
                expires_at REAL NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_cache_expires_at ON cache (expires_at);

            -- Pending mutations, replayed in insertion order
            CREATE TABLE IF NOT EXISTS sync_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                operation TEXT NOT NULL,
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                payload TEXT,
                enqueued_at REAL NOT NULL,
                retry_count INTEGER NOT NULL DEFAULT 0,
                last_error TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_sync_queue_order ON sync_queue (enqueued_at, id);
            CREATE INDEX IF NOT EXISTS idx_sync_queue_collection ON sync_queue (collection);

            -- Offline snapshots of remote documents
            CREATE TABLE IF NOT EXISTS offline_data (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                payload TEXT,
                timestamp REAL NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0,
                sync_attempts INTEGER NOT NULL DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (collection, doc_id)
            );
            CREATE INDEX IF NOT EXISTS idx_offline_data_synced ON offline_data (synced);

            -- Key-value engine state
            CREATE TABLE IF NOT EXISTS engine_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

        # Stores created before write versions existed
        columns = {row["name"] for row in self._conn.execute("PRAGMA table_info(offline_data)")}
        if "version" not in columns:
            self._conn.execute(
                "ALTER TABLE offline_data ADD COLUMN version INTEGER NOT NULL DEFAULT 0"
            )

    @property
    def path(self) -> Path | None:
        """Database file path (None when in-memory)."""
        return self._db_path

    @property
    def is_persistent(self) -> bool:
        """Check if records survive a process restart."""
        return self._db_path is not None

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection under the lock, wrapping SQLite failures."""
        with self._lock:
            if self._conn is None:
                raise StorageUnavailable("Local store is closed")
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StorageUnavailable(f"Local store operation failed: {e}") from e

    @staticmethod
    def _key_clause(table: Table, key: Any) -> tuple[str, tuple[Any, ...]]:
        """Build the WHERE clause matching a table's primary key."""
        columns = SCHEMAS[table].key_columns
        values = tuple(key) if isinstance(key, tuple) else (key,)
        if len(values) != len(columns):
            raise ValueError(
                f"Key for {table.value} needs {len(columns)} part(s), got {len(values)}"
            )
        clause = " AND ".join(f"{column} = ?" for column in columns)
        return clause, values

    # === Record operations ===

    def put(self, table: Table, record: Mapping[str, Any]) -> int:
        """Insert or replace a record.

        On versioned tables every write without an explicit version gets the
        previous version of the same key plus one, so a reader can tell
        whether the record was rewritten since it was read.

        Args:
            table: Target table.
            record: Column values. Queue records without an id get a new one.

        Returns:
            Row id of the written record.
        """
        schema = SCHEMAS[table]
        columns = list(record)
        placeholders = ["?" for _ in columns]
        values = [record[column] for column in columns]
        if schema.version_column is not None and schema.version_column not in record:
            clause = " AND ".join(f"{column} = ?" for column in schema.key_columns)
            columns.append(schema.version_column)
            placeholders.append(
                f"COALESCE((SELECT {schema.version_column} FROM {table.value} "
                f"WHERE {clause}), 0) + 1"
            )
            values.extend(record[column] for column in schema.key_columns)
        with self._cursor() as conn:
            cursor = conn.execute(
                f"INSERT OR REPLACE INTO {table.value} ({', '.join(columns)}) "
                f"VALUES ({', '.join(placeholders)})",
                values,
            )
        return int(cursor.lastrowid or 0)

    def get(self, table: Table, key: Any) -> dict[str, Any] | None:
        """Get a record by primary key.

        Args:
            table: Table to read.
            key: Key value, or a tuple for composite keys.

        Returns:
            Record as a dict, or None if not found.
        """
        clause, values = self._key_clause(table, key)
        with self._cursor() as conn:
            row = conn.execute(
                f"SELECT * FROM {table.value} WHERE {clause}", values
            ).fetchone()
        return dict(row) if row is not None else None

    def get_all_by_index(self, table: Table, index_value: Any) -> list[dict[str, Any]]:
        """Get all records whose index column equals index_value."""
        schema = SCHEMAS[table]
        if schema.index_column is None:
            raise ValueError(f"Table {table.value} has no secondary index")
        return self.scan(table, {schema.index_column: index_value})

    def scan(
        self,
        table: Table,
        filters: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Get records in table order, optionally filtered by column equality."""
        sql = f"SELECT * FROM {table.value}"
        values: list[Any] = []
        if filters:
            sql += " WHERE " + " AND ".join(f"{column} = ?" for column in filters)
            values.extend(filters.values())
        sql += f" ORDER BY {SCHEMAS[table].order_by}"
        with self._cursor() as conn:
            rows = conn.execute(sql, values).fetchall()
        return [dict(row) for row in rows]

    def update(
        self,
        table: Table,
        key: Any,
        match: Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> bool:
        """Update columns of an existing record.

        Args:
            table: Target table.
            key: Key value, or a tuple for composite keys.
            match: Extra column values the record must still have.
            **changes: Column values to set.

        Returns:
            True if a record was updated.
        """
        if not changes:
            return False
        clause, key_values = self._key_clause(table, key)
        values = list(key_values)
        if match:
            clause += "".join(f" AND {column} = ?" for column in match)
            values.extend(match.values())
        assignments = ", ".join(f"{column} = ?" for column in changes)
        with self._cursor() as conn:
            cursor = conn.execute(
                f"UPDATE {table.value} SET {assignments} WHERE {clause}",
                [*changes.values(), *values],
            )
        return cursor.rowcount > 0

    def delete(self, table: Table, key: Any) -> bool:
        """Delete a record by primary key.

        Returns:
            True if a record was deleted.
        """
        clause, values = self._key_clause(table, key)
        with self._cursor() as conn:
            cursor = conn.execute(f"DELETE FROM {table.value} WHERE {clause}", values)
        return cursor.rowcount > 0

    def delete_before(self, table: Table, column: str, threshold: float) -> int:
        """Delete records whose column value is strictly below threshold.

        Returns:
            Number of records deleted.
        """
        with self._cursor() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table.value} WHERE {column} < ?", (threshold,)
            )
        return cursor.rowcount

    def count(self, table: Table) -> int:
        """Count records in a table."""
        with self._cursor() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {table.value}").fetchone()
        return int(row[0])

    def clear(self, table: Table) -> int:
        """Remove all records from a table.

        Returns:
            Number of records removed.
        """
        return self.clear_many([table])[table]

    def clear_many(self, tables: Iterable[Table]) -> dict[Table, int]:
        """Remove all records from several tables in one transaction.

        Returns:
            Number of records removed per table.
        """
        removed: dict[Table, int] = {}
        with self._cursor() as conn:
            conn.execute("BEGIN")
            try:
                for table in tables:
                    removed[table] = conn.execute(f"DELETE FROM {table.value}").rowcount
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        return removed

    # === Engine state ===

    def get_state(self, key: str) -> str | None:
        """Get an engine state value."""
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT value FROM engine_state WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set an engine state value."""
        with self._cursor() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO engine_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_last_sync_at(self) -> float | None:
        """Get timestamp of last completed sync pass."""
        value = self.get_state("last_sync_at")
        return float(value) if value else None

    def set_last_sync_at(self, timestamp: float) -> None:
        """Set timestamp of last completed sync pass."""
        self.set_state("last_sync_at", str(timestamp))

    def get_exhausted_total(self) -> int:
        """Get the number of queue items ever dropped at the retry limit."""
        value = self.get_state("exhausted_total")
        return int(value) if value else 0

    def add_exhausted(self, count: int) -> None:
        """Add to the persisted count of dropped queue items."""
        if count > 0:
            self.set_state("exhausted_total", str(self.get_exhausted_total() + count))
