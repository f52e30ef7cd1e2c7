"""
SQLite-backed collection.

Owns the connection and the transaction boundary; the individual stores
issue their queries through `execute`, which turns driver failures into
StorageError.
"""

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from cardsched.domain.errors import StorageConflictError, StorageError
from cardsched.domain.ports import Collection
from cardsched.infrastructure.sqlite.schema import SCHEMA, SCHEMA_VERSION
from cardsched.infrastructure.sqlite.stores import (
    SqliteCardStore,
    SqliteDeckStore,
    SqliteNoteStore,
    SqliteReviewLogStore,
)

logger = logging.getLogger(__name__)

DEFAULT_DECK_ID = 1
DEFAULT_CONF_ID = 1

# Configuration group every fresh collection starts with
DEFAULT_DECK_CONFIG: dict[str, Any] = {
    "id": DEFAULT_CONF_ID,
    "name": "Default",
    "new": {"delays": [1, 10], "ints": [1, 4], "initial_factor": 2500, "per_day": 20},
    "lapse": {"delays": [10], "mult": 0.0, "leech_fails": 8, "leech_action": "suspend"},
    "rev": {"per_day": 100, "ease4": 1.3, "fuzz": 0.05, "min_space": 1, "fi": [10, 10]},
    "max_taken": 60,
}


class SqliteCollection(Collection):
    """
    A collection stored in one SQLite file.

    Usage:
        with SqliteCollection(path) as col:
            scheduler = Scheduler(col, clock, settings)
    """

    def __init__(self, path: Path | str, crt: int | None = None):
        self.path = path
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open collection at {path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._depth = 0

        self.cards = SqliteCardStore(self)
        self.decks = SqliteDeckStore(self)
        self.notes = SqliteNoteStore(self)
        self.revlog = SqliteReviewLogStore(self)

        self._setup(crt)
        self._crt = int(self.execute("SELECT crt FROM col").fetchone()["crt"])

    def _setup(self, crt: int | None) -> None:
        try:
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Could not create schema: {e}") from e
        if self.execute("SELECT 1 FROM col").fetchone():
            return

        created = int(time.time()) if crt is None else crt
        with self.transaction():
            self.execute(
                "INSERT INTO col (id, ver, crt, mod, usn, cur_deck) VALUES (1, ?, ?, ?, 0, ?)",
                (SCHEMA_VERSION, created, created, DEFAULT_DECK_ID),
            )
            self.decks.add_config(DEFAULT_DECK_CONFIG)
            self.decks.add("Default", DEFAULT_CONF_ID, did=DEFAULT_DECK_ID)
        logger.info(f"Created new collection at {self.path}")

    def __enter__(self) -> "SqliteCollection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---------- Collection port ----------

    @property
    def crt(self) -> int:
        return self._crt

    def usn(self) -> int:
        return int(self.execute("SELECT usn FROM col").fetchone()["usn"])

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group writes atomically. Nested calls join the outermost transaction.
        """
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        self.execute("BEGIN")
        self._depth = 1
        try:
            yield
        except BaseException:
            self._depth = 0
            self.execute("ROLLBACK")
            raise
        self._depth = 0
        try:
            self.execute("COMMIT")
        except StorageError:
            self.conn.rollback()
            raise

    def close(self) -> None:
        self.conn.close()

    # ---------- Helpers ----------

    def execute(self, sql: str, params: tuple | list = ()) -> sqlite3.Cursor:
        """Run one parameterized statement."""
        try:
            return self.conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise StorageConflictError(str(e)) from e
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
