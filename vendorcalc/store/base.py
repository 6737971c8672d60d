"""
Local SQLite store.

Provides connection management, the product/history/settings collections,
a change feed for the presentation layer and the reconciliation run log.
"""
from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Iterable, Optional
from loguru import logger

from ..config import VendorCalcConfig
from ..errors import NotFoundError, StorageError
from ..models import SCHEMA_VERSION, get_schema_sql

PRODUCTS = "products"
HISTORY = "history"
SETTINGS = "settings"

# Writable columns per collection (id is managed by SQLite)
COLLECTIONS = {
    PRODUCTS: ("name", "price", "category"),
    HISTORY: (
        "invoice_no",
        "vendor_name",
        "customer_name",
        "items",
        "grand_total",
        "discount",
        "discount_amount",
        "final_total",
        "created_at",
    ),
}

JSON_COLUMNS = {
    HISTORY: {"items"},
}


def utc_now_iso() -> str:
    """ISO 8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ChangeEvent:
    """Notification emitted after a committed write."""
    collection: str
    ids: tuple
    action: str  # insert | update | delete | clear


Listener = Callable[[ChangeEvent], None]


def get_connection(config: Optional[VendorCalcConfig] = None) -> sqlite3.Connection:
    """
    Create a database connection.

    Autocommit mode is used so transactions are always explicit
    (see LocalStore.transaction).
    """
    config = config or VendorCalcConfig.from_env()
    conn = sqlite3.connect(
        config.db_path,
        timeout=30,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


class LocalStore:
    """
    Durable on-device store and system of record.

    Features:
    - Monotonic integer ids per collection (never reused)
    - Explicit IMMEDIATE transactions, serialized across threads
    - Change notifications delivered after commit
    - Reconciliation run log
    """

    def __init__(self, config: Optional[VendorCalcConfig] = None):
        self.config = config or VendorCalcConfig.from_env()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0
        self._pending: list[ChangeEvent] = []
        self._listeners: list[Listener] = []

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        with self._lock:
            if self._conn is None:
                try:
                    self._conn = get_connection(self.config)
                    self.ensure_schema(self._conn)
                except sqlite3.Error as e:
                    self._conn = None
                    raise StorageError(f"Cannot open local store at {self.config.db_path}: {e}") from e
            return self._conn

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def ensure_schema(self, conn: sqlite3.Connection):
        """Create tables if missing and stamp the schema version."""
        conn.executescript(get_schema_sql())
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.debug(f"Local store schema stamped at version {SCHEMA_VERSION}")

    # ------------------------------------------------------------------
    # Transactions and change feed
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for a write transaction.

        Commits on success, rolls back on exception. Nested use joins the
        outer transaction. Change events are only delivered after the
        outermost commit.
        """
        with self._lock:
            conn = self.conn
            if self._depth:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            self._depth = 1
            try:
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise StorageError(f"Local store write failed: {e}") from e
            except BaseException:
                self._rollback(conn)
                raise
            finally:
                self._depth = 0
                events, self._pending = self._pending, []

        for event in events:
            self._notify(event)

    def _rollback(self, conn: sqlite3.Connection):
        self._pending = []
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def _emit(self, collection: str, ids: Iterable, action: str):
        self._pending.append(ChangeEvent(collection, tuple(ids), action))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ChangeEvent):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Change listener failed for {event.collection} {event.action}")

    # ------------------------------------------------------------------
    # Row encoding
    # ------------------------------------------------------------------

    @staticmethod
    def _columns(collection: str) -> tuple:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}. Valid: {list(COLLECTIONS.keys())}")
        return COLLECTIONS[collection]

    def _encode(self, collection: str, record: dict) -> dict:
        columns = self._columns(collection)
        json_cols = JSON_COLUMNS.get(collection, set())
        row = {}
        for col in columns:
            if col not in record:
                continue
            value = record[col]
            if col in json_cols:
                value = json.dumps(value, separators=(",", ":"))
            row[col] = value
        return row

    def _decode(self, collection: str, row: sqlite3.Row) -> dict:
        record = dict(row)
        for col in JSON_COLUMNS.get(collection, set()):
            if record.get(col) is not None:
                record[col] = json.loads(record[col])
        return record

    def _execute(self, sql: str, params: Any = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"Local store query failed: {e}") from e

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def insert(self, collection: str, record: dict) -> int:
        """Insert a record under a freshly allocated id and return the id."""
        row = self._encode(collection, record)
        cols = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        with self.transaction() as conn:
            cur = conn.execute(f"INSERT INTO {collection} ({cols}) VALUES ({placeholders})", row)
            new_id = cur.lastrowid
            self._emit(collection, [new_id], "insert")
        return new_id

    def put(self, collection: str, record: dict) -> int:
        """Insert a record verbatim, keeping its id."""
        if record.get("id") is None:
            raise ValueError("put() requires a record id")
        row = self._encode(collection, record)
        row["id"] = int(record["id"])
        cols = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        with self.transaction() as conn:
            conn.execute(f"INSERT INTO {collection} ({cols}) VALUES ({placeholders})", row)
            self._emit(collection, [row["id"]], "insert")
        return row["id"]

    def update(self, collection: str, record_id: int, fields: dict):
        """Merge fields into an existing record. Raises NotFoundError."""
        row = self._encode(collection, fields)
        with self.transaction() as conn:
            if row:
                assignments = ", ".join(f"{c} = :{c}" for c in row)
                cur = conn.execute(
                    f"UPDATE {collection} SET {assignments} WHERE id = :_id",
                    {**row, "_id": record_id},
                )
                found = cur.rowcount > 0
            else:
                found = conn.execute(
                    f"SELECT 1 FROM {collection} WHERE id = ?", (record_id,)
                ).fetchone() is not None
            if not found:
                raise NotFoundError(collection, record_id)
            self._emit(collection, [record_id], "update")

    def delete(self, collection: str, record_id: int) -> bool:
        """Delete a record. Deleting a missing id is a no-op returning False."""
        self._columns(collection)
        with self.transaction() as conn:
            cur = conn.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
            deleted = cur.rowcount > 0
            if deleted:
                self._emit(collection, [record_id], "delete")
        return deleted

    def get(self, collection: str, record_id: int) -> Optional[dict]:
        self._columns(collection)
        with self._lock:
            row = self._execute(
                f"SELECT * FROM {collection} WHERE id = ?", (record_id,)
            ).fetchone()
        return self._decode(collection, row) if row else None

    def exists(self, collection: str, record_id: int) -> bool:
        self._columns(collection)
        with self._lock:
            row = self._execute(
                f"SELECT 1 FROM {collection} WHERE id = ?", (record_id,)
            ).fetchone()
        return row is not None

    def list(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[dict]:
        """
        List all records of a collection.

        Args:
            collection: 'products' or 'history'
            order_by: Column to sort by (defaults to id)
            descending: Reverse the sort order

        Returns:
            List of record dictionaries
        """
        columns = self._columns(collection)
        order_by = order_by or "id"
        if order_by != "id" and order_by not in columns:
            raise ValueError(f"Cannot order {collection} by {order_by}")
        direction = "DESC" if descending else "ASC"
        # id breaks ties so equal timestamps still list deterministically
        sql = f"SELECT * FROM {collection} ORDER BY {order_by} {direction}, id {direction}"
        with self._lock:
            rows = self._execute(sql).fetchall()
        return [self._decode(collection, row) for row in rows]

    def count(self, collection: str) -> int:
        self._columns(collection)
        with self._lock:
            return self._execute(f"SELECT COUNT(*) FROM {collection}").fetchone()[0]

    def clear(self, collection: str) -> int:
        """Remove every record of a collection. Ids are still never reused."""
        self._columns(collection)
        with self.transaction() as conn:
            cur = conn.execute(f"DELETE FROM {collection}")
            self._emit(collection, [], "clear")
        return cur.rowcount

    def replace_all(self, products: list[dict], history: list[dict]) -> tuple[int, int]:
        """
        Atomically replace both collections.

        Every record gets a fresh id. Either everything is replaced or,
        on failure, nothing is.
        """
        with self.transaction():
            self.clear(PRODUCTS)
            self.clear(HISTORY)
            for record in products:
                self.insert(PRODUCTS, record)
            for record in history:
                self.insert(HISTORY, record)
        logger.info(f"Replaced local data with {len(products)} products and {len(history)} invoices")
        return len(products), len(history)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def settings_get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            row = self._execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else default

    def settings_put(self, key: str, value: Any):
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, str(value)),
            )
            self._emit(SETTINGS, [key], "update")

    def settings_delete(self, key: str):
        with self.transaction() as conn:
            cur = conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            if cur.rowcount:
                self._emit(SETTINGS, [key], "delete")

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    def log_sync(self, uid: Optional[str], status: str = "running") -> int:
        """Log a reconciliation run and return the log ID."""
        with self.transaction() as conn:
            cur = conn.execute(
                "INSERT INTO sync_log (uid, status, started_at) VALUES (?, ?, ?)",
                (uid, status, utc_now_iso()),
            )
            return cur.lastrowid

    def update_sync_log(
        self,
        log_id: int,
        rows_pushed: Optional[int] = None,
        rows_pulled: Optional[int] = None,
        rows_failed: Optional[int] = None,
        status: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        """Update an existing sync log entry."""
        updates = []
        params: list[Any] = []

        if rows_pushed is not None:
            updates.append("rows_pushed = ?")
            params.append(rows_pushed)
        if rows_pulled is not None:
            updates.append("rows_pulled = ?")
            params.append(rows_pulled)
        if rows_failed is not None:
            updates.append("rows_failed = ?")
            params.append(rows_failed)
        if status is not None:
            updates.append("status = ?")
            params.append(status)
            if status in ("completed", "failed"):
                updates.append("completed_at = ?")
                params.append(utc_now_iso())
        if error_message is not None:
            updates.append("error_message = ?")
            params.append(error_message)

        if not updates:
            return

        params.append(log_id)
        with self.transaction() as conn:
            conn.execute(f"UPDATE sync_log SET {', '.join(updates)} WHERE id = ?", params)

    def recent_sync_runs(self, limit: int = 5) -> list[dict]:
        with self._lock:
            rows = self._execute(
                "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]
