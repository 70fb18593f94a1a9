"""SQLite connection handling for the contract and decision stores."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from arbiter.config import get_settings
from arbiter.database.models import ALL_TABLES

IN_MEMORY = ":memory:"


class Database:
    """Lazily opened SQLite connection shared by the repositories.

    Tests pass ``":memory:"``; everything else uses a file whose parent
    directory is created on construction.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Args:
            db_path: SQLite file or ":memory:". Defaults to ``database_path`` from settings.
        """
        if db_path is None:
            settings = get_settings()
            settings.ensure_database_dir()
            db_path = settings.database_path
        elif db_path != IN_MEMORY:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path

        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor whose writes commit together or not at all."""
        cursor = self.conn.cursor()
        try:
            yield cursor
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()

    def initialize_schema(self) -> None:
        """Create the contracts and decisions tables if missing."""
        with self.transaction() as cursor:
            for sql in ALL_TABLES:
                cursor.execute(sql)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


_db: Optional[Database] = None


def get_db() -> Database:
    """Return the process-wide database, creating the schema on first use."""
    global _db
    if _db is None:
        _db = Database()
        _db.initialize_schema()
    return _db


def close_db() -> None:
    global _db
    if _db is not None:
        _db.close()
        _db = None
