"""Local store handle.

LocalStore owns the single SQLite connection used by a sync or push run.
The connection is opened lazily on first use: the containing directory is
created, a legacy database file is copied over once if present, WAL is
enabled and the schema is created or migrated.

Usage:
    from local_store.db import LocalStore

    store = LocalStore(Path("data/content_sync.db"))
    with store.transaction() as conn:
        conn.execute("UPDATE posts SET is_dirty = 0 WHERE id = ?", (101,))
    store.close()
"""

import shutil
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

from core.config import DEFAULT_DB_PATH, LEGACY_DB_PATH
from core.observability.logging import get_logger
from local_store.migrations import ensure_schema

logger = get_logger(__name__)

MEMORY_PATH = ":memory:"


class LocalStore:
    """Explicitly owned, lazily opened handle to the local database."""

    def __init__(
        self,
        db_path: Union[str, Path] = DEFAULT_DB_PATH,
        legacy_path: Optional[Union[str, Path]] = LEGACY_DB_PATH,
    ):
        self.db_path = db_path if db_path == MEMORY_PATH else Path(db_path)
        self.legacy_path = Path(legacy_path) if legacy_path else None
        self.schema_version: Optional[int] = None
        self._conn: Optional[sqlite3.Connection] = None

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = self._open()
        return self._conn

    def _prepare_file(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if (
            not self.db_path.exists()
            and self.legacy_path is not None
            and self.legacy_path.exists()
        ):
            logger.info(f"Found legacy database {self.legacy_path}, copying to {self.db_path}")
            shutil.copyfile(self.legacy_path, self.db_path)

    def _open(self) -> sqlite3.Connection:
        if self.db_path != MEMORY_PATH:
            self._prepare_file()

        # Autocommit; compound writes use explicit BEGIN/COMMIT via transaction()
        conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            self.schema_version = ensure_schema(conn)
            # Enabled after migrations so table rebuilds never cascade
            conn.execute("PRAGMA foreign_keys = ON")
        except Exception:
            conn.close()
            raise
        return conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "LocalStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # Statement helpers
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a compound write atomically.

        Nested use joins the outer transaction.
        """
        conn = self.conn
        if conn.in_transaction:
            yield conn
            return
        conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchone()
