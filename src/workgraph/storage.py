"""SQLite-backed record storage used by the repositories."""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Storage:
    """
    Thin record store over SQLite.

    Every call opens its own short-lived connection and commits on success,
    so each statement is atomic on its own. Inside ``transaction()`` all calls
    share one connection and are committed (or rolled back) together.
    """

    def __init__(self, db_path: Path, clock: Optional[Clock] = None):
        """Initialize storage at ``db_path``, creating the schema if needed."""
        self.db_path = Path(db_path)
        self.clock: Clock = clock or utc_now
        self._tx_conn: Optional[sqlite3.Connection] = None

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.debug("Storage ready at %s", self.db_path)

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self) -> None:
        """Initialize SQLite database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS child_of (
                    child TEXT PRIMARY KEY,
                    parent TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS depends_on (
                    task TEXT NOT NULL,
                    blocker TEXT NOT NULL,
                    PRIMARY KEY (task, blocker)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_child_of_parent ON child_of(parent)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_depends_on_blocker ON depends_on(blocker)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_updated ON tasks(updated_at DESC)")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        if self._tx_conn is not None:
            yield self._tx_conn
            return

        conn = self._open()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group every storage call made inside the block into one transaction.

        Nested use joins the outer transaction.
        """
        if self._tx_conn is not None:
            yield
            return

        conn = self._open()
        self._tx_conn = conn
        try:
            with conn:
                yield
        finally:
            self._tx_conn = None
            conn.close()

    def now(self) -> datetime:
        """Current time from the configured clock."""
        return self.clock()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        """Run a query expected to return zero or one row."""
        with self._connect() as conn:
            return conn.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a query returning any number of rows."""
        with self._connect() as conn:
            return conn.execute(sql, tuple(params)).fetchall()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a single write statement and return the affected row count."""
        with self._connect() as conn:
            return conn.execute(sql, tuple(params)).rowcount
