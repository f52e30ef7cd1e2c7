# Infrastructure SQLite Package
from .collection import DEFAULT_DECK_CONFIG, SqliteCollection
from .stores import SqliteCardStore, SqliteDeckStore, SqliteNoteStore, SqliteReviewLogStore

__all__ = [
    "DEFAULT_DECK_CONFIG",
    "SqliteCollection",
    "SqliteCardStore",
    "SqliteDeckStore",
    "SqliteNoteStore",
    "SqliteReviewLogStore",
]
