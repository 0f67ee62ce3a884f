"""SQLite-based cache of encoded package export data.

Loading a dependency from source means parsing every one of its files. The
cache stores the encoded exports of each package together with the source
directory and its newest file modification time, so unchanged dependencies
are decoded instead of re-parsed.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class CachedPackage:
    """A cached package: where it was loaded from and its encoded exports."""
    import_path: str
    name: str
    directory: str
    mtime: float
    payload: str


class PackageCache:
    """SQLite database of package export data keyed by import path.

    Uses WAL mode so several processes may share one cache directory.
    """

    def __init__(self, cache_dir: Path):
        """Initialize the cache database.

        Args:
            cache_dir: Directory to store the cache database (typically .gometa-cache)
        """
        self.cache_dir = cache_dir
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.cache_dir / "packages.db"
        self.conn: sqlite3.Connection | None = None
        self._in_transaction = False
        self._lock = threading.RLock()
        self._open()

    def _open(self) -> None:
        """Open database connection and initialize schema.

        Raises:
            sqlite3.Error: If database cannot be opened or initialized.
        """
        try:
            self.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=10.0
            )
            self.conn.execute("PRAGMA journal_mode = WAL")
            self.conn.execute("PRAGMA busy_timeout = 10000")
            self.create_tables()
        except sqlite3.Error as e:
            logger.error(f"Failed to open package cache at {self.db_path}: {e}")
            if self.conn:
                self.conn.close()
                self.conn = None
            raise

    def create_tables(self) -> None:
        """Create database schema if it doesn't exist."""
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS packages (
                import_path TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                directory TEXT NOT NULL,
                mtime REAL NOT NULL,
                payload TEXT NOT NULL
            )
        """)
        self.conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "PackageCache":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @contextmanager
    def transaction(self):
        """Group several operations into one transaction.

        Rolled back if the block raises, committed otherwise. Nested
        transactions commit only when the outermost one exits.

        Raises:
            RuntimeError: If database connection not initialized.
            sqlite3.Error: If transaction fails.
        """
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        with self._lock:
            was_in_transaction = self._in_transaction
            self._in_transaction = True

            try:
                yield
                if not was_in_transaction:
                    self.conn.commit()
            except Exception as e:
                logger.error(f"Transaction failed, rolling back: {e}")
                self.conn.rollback()
                raise
            finally:
                self._in_transaction = was_in_transaction

    def get(self, import_path: str) -> CachedPackage | None:
        """Look up a package by import path.

        Raises:
            RuntimeError: If database connection not initialized.
            sqlite3.Error: If database operation fails.
        """
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        with self._lock:
            try:
                cursor = self.conn.execute(
                    "SELECT import_path, name, directory, mtime, payload FROM packages WHERE import_path = ?",
                    (import_path,)
                )
                row = cursor.fetchone()
                return CachedPackage(*row) if row else None
            except sqlite3.Error as e:
                logger.error(f"Failed to get package {import_path}: {e}")
                raise

    def put(self, package: CachedPackage) -> None:
        """Insert or replace a package entry.

        Raises:
            RuntimeError: If database connection not initialized.
            sqlite3.Error: If database operation fails.
        """
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        with self._lock:
            try:
                self.conn.execute(
                    """
                    INSERT OR REPLACE INTO packages (import_path, name, directory, mtime, payload)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (package.import_path, package.name, package.directory, package.mtime, package.payload)
                )
                if not self._in_transaction:
                    self.conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to store package {package.import_path}: {e}")
                if not self._in_transaction:
                    self.conn.rollback()
                raise

    def delete(self, import_path: str) -> None:
        """Remove a package entry if present.

        Raises:
            RuntimeError: If database connection not initialized.
            sqlite3.Error: If database operation fails.
        """
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        with self._lock:
            try:
                self.conn.execute("DELETE FROM packages WHERE import_path = ?", (import_path,))
                if not self._in_transaction:
                    self.conn.commit()
            except sqlite3.Error as e:
                logger.error(f"Failed to delete package {import_path}: {e}")
                if not self._in_transaction:
                    self.conn.rollback()
                raise

    def clear(self) -> int:
        """Remove every entry.

        Returns:
            Number of entries removed

        Raises:
            RuntimeError: If database connection not initialized.
            sqlite3.Error: If database operation fails.
        """
        if self.conn is None:
            raise RuntimeError("Database connection not initialized")

        with self._lock:
            try:
                cursor = self.conn.execute("DELETE FROM packages")
                if not self._in_transaction:
                    self.conn.commit()
                return cursor.rowcount
            except sqlite3.Error as e:
                logger.error(f"Failed to clear package cache: {e}")
                if not self._in_transaction:
                    self.conn.rollback()
                raise
