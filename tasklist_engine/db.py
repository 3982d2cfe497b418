import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol

from tasklist_engine.errors import NotFound, StoreError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
# default only; the configured path comes from Settings.db_path
DB_PATH = BASE_DIR / "tasks.db"

KV_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class KeyValueStore(Protocol):
    """Ordered string -> string map shared by every worker."""

    def get(self, key: str) -> str: ...

    def put(self, key: str, value: str) -> None: ...

    def put_if_absent(self, key: str, value: str) -> bool: ...

    def replace(self, key: str, value: str) -> None: ...

    def replace_if(self, key: str, expected: str, value: str) -> bool: ...

    def delete(self, key: str) -> None: ...

    def scan_prefix(self, prefix: str) -> list[tuple[str, str]]: ...


def get_connection(path=None, timeout: float = 5.0):
    conn = sqlite3.connect(path or DB_PATH, timeout=timeout)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(path=None):
    conn = get_connection(path)
    try:
        conn.execute(KV_TABLE_SQL)
        conn.commit()
    finally:
        conn.close()


class SqliteStore:
    """KeyValueStore on a single sqlite table.

    Every call opens its own connection, so one instance can be shared by
    concurrent requests. Each operation is a single statement and therefore
    atomic. Scans come back in insertion (rowid) order.
    """

    def __init__(self, path=None, timeout: float = 5.0):
        self.path = Path(path) if path else DB_PATH
        self.timeout = timeout

    def init(self):
        try:
            init_db(self.path)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot initialise store at {self.path}: {exc}") from exc

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self.path, self.timeout)
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open store at {self.path}: {exc}") from exc
        try:
            # commits on success, rolls back on any exception
            with conn:
                yield conn
        except sqlite3.Error as exc:
            logger.error("sqlite operation failed path=%s error=%s", self.path, exc)
            raise StoreError(f"store operation failed: {exc}") from exc
        finally:
            conn.close()

    def get(self, key: str) -> str:
        with self._connection() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            raise NotFound(key)
        return row["value"]

    def put(self, key: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def put_if_absent(self, key: str, value: str) -> bool:
        with self._connection() as conn:
            cur = conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) ON CONFLICT(key) DO NOTHING",
                (key, value),
            )
            return cur.rowcount == 1

    def replace(self, key: str, value: str) -> None:
        with self._connection() as conn:
            cur = conn.execute("UPDATE kv SET value = ? WHERE key = ?", (value, key))
            if cur.rowcount == 0:
                raise NotFound(key)

    def replace_if(self, key: str, expected: str, value: str) -> bool:
        """Overwrite ``key`` only while it still holds ``expected``."""
        with self._connection() as conn:
            cur = conn.execute(
                "UPDATE kv SET value = ? WHERE key = ? AND value = ?",
                (value, key, expected),
            )
            return cur.rowcount == 1

    def delete(self, key: str) -> None:
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            if cur.rowcount == 0:
                raise NotFound(key)

    def scan_prefix(self, prefix: str) -> list[tuple[str, str]]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT key, value FROM kv
                WHERE substr(key, 1, ?) = ?
                ORDER BY rowid ASC
                """,
                (len(prefix), prefix),
            ).fetchall()
        return [(row["key"], row["value"]) for row in rows]


class InMemoryStore:
    """Dict-backed KeyValueStore. Python dicts keep insertion order."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def init(self):
        return None

    def get(self, key: str) -> str:
        with self._lock:
            if key not in self._data:
                raise NotFound(key)
            return self._data[key]

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def put_if_absent(self, key: str, value: str) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def replace(self, key: str, value: str) -> None:
        with self._lock:
            if key not in self._data:
                raise NotFound(key)
            self._data[key] = value

    def replace_if(self, key: str, expected: str, value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is None:
                raise NotFound(key)

    def scan_prefix(self, prefix: str) -> list[tuple[str, str]]:
        with self._lock:
            return [(k, v) for k, v in self._data.items() if k.startswith(prefix)]
