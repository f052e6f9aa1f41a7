"""
Database operations for ExcelVC Agent.
Manages the SQLite store of tracked files, their versions, and activity.
"""

import sqlite3
import time
from pathlib import Path
from typing import Optional, List, Dict, Any
from contextlib import contextmanager
from .logger import get_logger

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path TEXT NOT NULL UNIQUE,
    file_name TEXT NOT NULL,
    last_hash TEXT,
    latest_version INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS versions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    version_number INTEGER NOT NULL,
    created_at REAL NOT NULL,
    original_size INTEGER NOT NULL DEFAULT 0,
    payload BLOB NOT NULL,
    UNIQUE (file_id, version_number)
);

CREATE INDEX IF NOT EXISTS idx_versions_created_at ON versions(created_at);

CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_type TEXT NOT NULL,
    message TEXT NOT NULL,
    file_id INTEGER,
    created_at INTEGER NOT NULL
);
"""


class Database:
    """SQLite database manager for the ExcelVC agent."""

    def __init__(self, db_path: str = "~/.excelvc/excelvc.db"):
        """Initialize database location.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self, **kwargs) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            check_same_thread=False,
            **kwargs
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def get_connection(self):
        """Get database connection context manager for single statements.

        Yields:
            sqlite3.Connection
        """
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}", exc_info=True)
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Open one atomic unit of work.

        The write lock is taken up front (``BEGIN IMMEDIATE``) so read-then-write
        sequences cannot interleave with another writer. Commits on normal exit,
        rolls back on any exception. A caller may call ``conn.rollback()`` to
        abandon the unit of work without raising.

        Yields:
            sqlite3.Connection
        """
        conn = self._connect(isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            if conn.in_transaction:
                conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def init(self) -> None:
        """Create tables if they don't exist."""
        logger.info(f"Initializing database at: {self.db_path}")

        with self.get_connection() as conn:
            conn.executescript(SCHEMA)

    # ========================================
    # Tracked Files
    # ========================================

    @staticmethod
    def find_file_for_update(conn: sqlite3.Connection, file_path: str) -> Optional[sqlite3.Row]:
        """Look up a tracked file inside an open unit of work."""
        return conn.execute(
            "SELECT id, last_hash, latest_version FROM files WHERE file_path = ?",
            (file_path,)
        ).fetchone()

    @staticmethod
    def insert_file(conn: sqlite3.Connection, file_path: str, file_name: str, file_hash: str) -> int:
        cursor = conn.execute("""
            INSERT INTO files (file_path, file_name, last_hash, latest_version, created_at)
            VALUES (?, ?, ?, 0, ?)
        """, (file_path, file_name, file_hash, int(time.time())))
        return cursor.lastrowid

    @staticmethod
    def next_version_number(conn: sqlite3.Connection, file_id: int) -> int:
        """Next version number for a file.

        Never reuses a number, even when retention has purged every version.
        """
        row = conn.execute("""
            SELECT MAX(
                (SELECT latest_version FROM files WHERE id = ?),
                COALESCE((SELECT MAX(version_number) FROM versions WHERE file_id = ?), 0)
            ) + 1 AS next_version
        """, (file_id, file_id)).fetchone()
        return row['next_version']

    @staticmethod
    def insert_version(conn: sqlite3.Connection, file_id: int, version_number: int,
                       payload: bytes, original_size: int, created_at: float) -> int:
        cursor = conn.execute("""
            INSERT INTO versions (file_id, version_number, created_at, original_size, payload)
            VALUES (?, ?, ?, ?, ?)
        """, (file_id, version_number, created_at, original_size, payload))
        return cursor.lastrowid

    @staticmethod
    def record_capture(conn: sqlite3.Connection, file_id: int, file_hash: str, version_number: int) -> None:
        conn.execute("""
            UPDATE files SET last_hash = ?, latest_version = ?
            WHERE id = ?
        """, (file_hash, version_number, file_id))

    @staticmethod
    def set_file_hash(conn: sqlite3.Connection, file_id: int, file_hash: str) -> None:
        conn.execute("UPDATE files SET last_hash = ? WHERE id = ?", (file_hash, file_id))

    def get_file(self, file_id: int) -> Optional[Dict[str, Any]]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM files WHERE id = ?", (file_id,)).fetchone()
            return dict(row) if row else None

    def get_file_by_path(self, file_path: str) -> Optional[Dict[str, Any]]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT * FROM files WHERE file_path = ?", (file_path,)).fetchone()
            return dict(row) if row else None

    def get_file_path(self, file_id: int) -> Optional[str]:
        """Get the absolute path of a tracked file.

        Returns:
            Path or None if the id is unknown
        """
        with self.get_connection() as conn:
            row = conn.execute("SELECT file_path FROM files WHERE id = ?", (file_id,)).fetchone()
            return row['file_path'] if row else None

    def list_files(self) -> List[Dict[str, Any]]:
        """List tracked files with their version counts."""
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT f.id, f.file_path, f.file_name, f.last_hash, f.latest_version,
                       COUNT(v.id) AS version_count
                FROM files f
                LEFT JOIN versions v ON v.file_id = f.id
                GROUP BY f.id
                ORDER BY f.file_name ASC
            """).fetchall()
            return [dict(row) for row in rows]

    # ========================================
    # Versions
    # ========================================

    def list_versions(self, file_id: int) -> List[Dict[str, Any]]:
        """List versions of a file, newest first, without payloads."""
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT version_number, created_at, original_size,
                       LENGTH(payload) AS stored_size
                FROM versions
                WHERE file_id = ?
                ORDER BY version_number DESC
            """, (file_id,)).fetchall()
            return [dict(row) for row in rows]

    def get_version_payload(self, file_id: int, version_number: int) -> Optional[bytes]:
        """Fetch the encrypted-compressed payload of one version."""
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT payload FROM versions
                WHERE file_id = ? AND version_number = ?
            """, (file_id, version_number)).fetchone()
            return bytes(row['payload']) if row else None

    def count_versions(self, file_id: int) -> int:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM versions WHERE file_id = ?",
                (file_id,)
            ).fetchone()
            return row['n']

    def delete_versions_older_than(self, cutoff: float) -> int:
        """Delete every version created before ``cutoff`` in one statement.

        Returns:
            Number of versions deleted
        """
        with self.get_connection() as conn:
            result = conn.execute("DELETE FROM versions WHERE created_at < ?", (cutoff,))
            return result.rowcount

    def get_stats(self) -> Dict[str, Any]:
        with self.get_connection() as conn:
            row = conn.execute("""
                SELECT
                    (SELECT COUNT(*) FROM files) AS files_tracked,
                    (SELECT COUNT(*) FROM versions) AS versions_stored,
                    (SELECT COALESCE(SUM(LENGTH(payload)), 0) FROM versions) AS bytes_stored,
                    (SELECT COALESCE(SUM(original_size), 0) FROM versions) AS bytes_original
            """).fetchone()
            return dict(row)

    # ========================================
    # Activity Log
    # ========================================

    def log_activity(self, activity_type: str, message: str,
                     file_id: Optional[int] = None) -> int:
        """Log activity.

        Args:
            activity_type: Activity type
            message: Activity message
            file_id: Optional related file ID

        Returns:
            Activity ID
        """
        with self.get_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO activity_log (activity_type, message, file_id, created_at)
                VALUES (?, ?, ?, ?)
            """, (activity_type, message, file_id, int(time.time())))

            return cursor.lastrowid

    def get_recent_activity(self, limit: int = 50) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM activity_log
                ORDER BY id DESC
                LIMIT ?
            """, (limit,)).fetchall()

            return [dict(row) for row in rows]
