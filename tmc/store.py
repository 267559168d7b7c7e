"""SQLite-backed key/value store: get/has/set/delete and prefix iteration."""

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from tmc.errors import StoreFailure

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_SCHEMA_V1 = """\
CREATE TABLE IF NOT EXISTS kv (
    key    BLOB PRIMARY KEY,
    value  BLOB NOT NULL
) WITHOUT ROWID;
"""


class KVStore:
    """Durable key/value map addressed by namespaced byte keys.

    One connection is shared between the crawler thread (the only writer)
    and the query API threads (readers).  Every operation runs under a lock
    as a single transaction, so readers never observe a partial write.

    Args:
        db_path: Filesystem path for the database, or ``":memory:"`` for
            an in-memory database (useful in tests).  Missing parent
            directories are created.

    Raises:
        StoreFailure: If the database cannot be opened or migrated.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = threading.RLock()
        try:
            if db_path != ":memory:":
                path = Path(db_path).expanduser()
                path.parent.mkdir(parents=True, exist_ok=True)
                db_path = str(path)
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.execute("PRAGMA journal_mode = WAL")
            _migrate(self._conn)
        except (sqlite3.Error, OSError) as exc:
            raise StoreFailure(f"Failed to open store at {db_path}: {exc}") from exc

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "KVStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, key: bytes) -> bytes | None:
        """Return the value stored under *key*, or ``None`` if absent."""
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT value FROM kv WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreFailure(f"Failed to get {key!r}: {exc}") from exc
        return bytes(row[0]) if row is not None else None

    def has(self, key: bytes) -> bool:
        """Return whether *key* is present."""
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT 1 FROM kv WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreFailure(f"Failed to look up {key!r}: {exc}") from exc
        return row is not None

    def set(self, key: bytes, value: bytes) -> None:
        """Insert or overwrite *key*."""
        self.apply({key: value})

    def delete(self, key: bytes) -> None:
        """Remove *key*; deleting an absent key is a no-op."""
        self.apply({}, [key])

    def apply(
        self,
        puts: Mapping[bytes, bytes],
        deletes: Iterable[bytes] = (),
    ) -> None:
        """Apply deletes then puts atomically in one transaction."""
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(
                        "DELETE FROM kv WHERE key = ?", [(k,) for k in deletes]
                    )
                    self._conn.executemany(
                        "INSERT INTO kv (key, value) VALUES (?, ?) "
                        "ON CONFLICT (key) DO UPDATE SET value = excluded.value",
                        list(puts.items()),
                    )
            except sqlite3.Error as exc:
                raise StoreFailure(f"Failed to write to store: {exc}") from exc

    def iterate_prefix(
        self,
        prefix: bytes,
        callback: Callable[[bytes, bytes], bool],
    ) -> None:
        """Invoke ``callback(key, value)`` for every key starting with *prefix*.

        Keys are visited in byte order.  Iteration stops early when the
        callback returns ``True``.
        """
        with self._lock:
            try:
                cursor = self._conn.execute(
                    "SELECT key, value FROM kv WHERE key >= ? ORDER BY key",
                    (prefix,),
                )
                for key, value in cursor:
                    key = bytes(key)
                    if not key.startswith(prefix):
                        break
                    if callback(key, bytes(value)):
                        break
            except sqlite3.Error as exc:
                raise StoreFailure(f"Failed to iterate {prefix!r}: {exc}") from exc


def _migrate(conn: sqlite3.Connection) -> None:
    """Apply database migrations up to ``_SCHEMA_VERSION``.

    Uses the SQLite ``user_version`` pragma to track the current schema
    version.
    """
    (current,) = conn.execute("PRAGMA user_version").fetchone()

    if current >= _SCHEMA_VERSION:
        return

    if current < 1:
        logger.debug("Applying schema migration v0 → v1")
        conn.executescript(_SCHEMA_V1)

    conn.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
    conn.commit()
    logger.debug("Store schema at version %d", _SCHEMA_VERSION)
