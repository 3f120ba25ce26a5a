"""SQLite-backed persistent store for actor state and wake-ups."""

import asyncio
import json
import sqlite3
import time
from pathlib import Path
from typing import Any
import logging

log = logging.getLogger("sequencer.sqlite_store")


class SQLiteStore:
    """Persistent store backed by SQLite."""

    def __init__(self, db_path: str | Path = "state.db") -> None:
        self.db_path = Path(db_path)
        self._lock = asyncio.Lock()

        # Initialize database
        self._init_db()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(
                """
                -- Actor key-value state (nonce watermarks, transaction records, pool cursor)
                CREATE TABLE IF NOT EXISTS kv (
                    namespace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,  -- JSON
                    updated_at REAL NOT NULL,
                    PRIMARY KEY (namespace, key)
                );

                -- At most one pending wake-up per actor
                CREATE TABLE IF NOT EXISTS wakeups (
                    namespace TEXT PRIMARY KEY,
                    due REAL NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_wakeups_due ON wakeups(due);
                """
            )
            conn.commit()
            log.debug(f"SQLite database initialized at {self.db_path}")
        finally:
            conn.close()

    def _write(self, conn: sqlite3.Connection, namespace: str, entries: dict[str, Any]) -> None:
        now = time.time()
        conn.executemany(
            """
            INSERT INTO kv (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            [(namespace, key, json.dumps(value), now) for key, value in entries.items()],
        )

    # =========================================================================
    # Key-value methods (Store protocol)
    # =========================================================================

    async def get(self, namespace: str, key: str) -> Any | None:
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                cursor = conn.execute(
                    "SELECT value FROM kv WHERE namespace = ? AND key = ?", (namespace, key)
                )
                row = cursor.fetchone()
                return json.loads(row[0]) if row else None
            finally:
                conn.close()

    async def put(self, namespace: str, key: str, value: Any) -> None:
        await self.put_batch(namespace, {key: value})

    async def put_batch(self, namespace: str, entries: dict[str, Any]) -> None:
        """Write every entry in one transaction, all or nothing."""
        if not entries:
            return
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                with conn:
                    self._write(conn, namespace, entries)
            finally:
                conn.close()

    # =========================================================================
    # Wake-up methods
    # =========================================================================

    async def get_wakeup(self, namespace: str) -> float | None:
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                cursor = conn.execute("SELECT due FROM wakeups WHERE namespace = ?", (namespace,))
                row = cursor.fetchone()
                return row[0] if row else None
            finally:
                conn.close()

    async def set_wakeup_if_absent(self, namespace: str, due: float) -> bool:
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                with conn:
                    cursor = conn.execute(
                        "INSERT OR IGNORE INTO wakeups (namespace, due) VALUES (?, ?)",
                        (namespace, due),
                    )
                return cursor.rowcount == 1
            finally:
                conn.close()

    async def clear_wakeup(self, namespace: str, due: float | None = None) -> bool:
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                with conn:
                    if due is None:
                        cursor = conn.execute("DELETE FROM wakeups WHERE namespace = ?", (namespace,))
                    else:
                        cursor = conn.execute(
                            "DELETE FROM wakeups WHERE namespace = ? AND due = ?", (namespace, due)
                        )
                return cursor.rowcount == 1
            finally:
                conn.close()

    async def all_wakeups(self) -> list[tuple[str, float]]:
        async with self._lock:
            conn = sqlite3.connect(self.db_path)
            try:
                cursor = conn.execute("SELECT namespace, due FROM wakeups ORDER BY due")
                return [(namespace, due) for namespace, due in cursor.fetchall()]
            finally:
                conn.close()
