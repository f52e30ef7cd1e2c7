import random
from typing import Any

import pytest

from cardsched.application.config import AppConfig
from cardsched.application.scheduler import Scheduler
from cardsched.domain.models import Card, CardType, Deck, Note, Queue
from cardsched.domain.ports import Clock
from cardsched.infrastructure.sqlite import SqliteCollection

DAY = 86400
CRT = 1_700_000_000  # collection creation instant used by every test collection
TODAY = 10
NOW = CRT + TODAY * DAY + 3600  # an hour into day 10


class FakeClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, now: float = NOW):
        self.current = now
        self.slept: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.slept.append(seconds)
        self.current += seconds

    def advance(self, seconds: float) -> None:
        self.current += seconds


def deck_config(conf_id: int = 1, **sections: dict[str, Any]) -> dict[str, Any]:
    """Raw configuration group; each keyword overrides keys of one section."""
    base: dict[str, Any] = {
        "id": conf_id,
        "name": f"Conf {conf_id}",
        "new": {"delays": [1, 10], "ints": [1, 4], "initial_factor": 2500, "per_day": 20},
        "lapse": {"delays": [10], "mult": 0.5, "leech_fails": 8, "leech_action": "suspend"},
        "rev": {"per_day": 100, "ease4": 1.3, "fuzz": 0.05, "min_space": 1, "fi": [10, 10]},
        "max_taken": 60,
    }
    for key, value in sections.items():
        if isinstance(value, dict):
            base[key] = {**base[key], **value}
        else:
            base[key] = value
    return base


class CollectionBuilder:
    """Seeds a collection with decks, notes and cards in a known state."""

    def __init__(self, col: SqliteCollection):
        self.col = col

    def config(self, conf_id: int = 1, **sections: dict[str, Any]) -> int:
        return self.col.decks.add_config(deck_config(conf_id, **sections))

    def deck(self, name: str, conf_id: int = 1) -> Deck:
        return self.col.decks.add(name, conf_id)

    def note(self, tags: list[str] | None = None) -> Note:
        return self.col.notes.add(tags)

    def new_card(self, did: int = 1, note: Note | None = None, **fields: Any) -> Card:
        note = note or self.note()
        return self.col.cards.add(note.id, did, **fields)

    def review_card(
        self, did: int = 1, due: int = TODAY, ivl: int = 10, note: Note | None = None, **fields: Any
    ) -> Card:
        note = note or self.note()
        fields.setdefault("factor", 2500)
        fields.setdefault("queue", Queue.REVIEW)
        fields.setdefault("type", CardType.REVIEW)
        return self.col.cards.add(note.id, did, due=due, ivl=ivl, **fields)

    def learning_card(
        self, did: int = 1, due: int = NOW, left: int = 2, note: Note | None = None, **fields: Any
    ) -> Card:
        note = note or self.note()
        fields.setdefault("queue", Queue.LEARNING)
        fields.setdefault("type", CardType.LEARNING)
        return self.col.cards.add(note.id, did, due=due, left=left, **fields)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return AppConfig(collection_path=tmp_path / "collection.db")


@pytest.fixture
def col(tmp_path):
    collection = SqliteCollection(tmp_path / "collection.db", crt=CRT)
    yield collection
    collection.close()


@pytest.fixture
def build(col):
    return CollectionBuilder(col)


@pytest.fixture
def make_scheduler(col, clock, settings):
    """Start a session once the collection has been seeded."""

    def _make(**overrides: Any) -> Scheduler:
        conf = settings.model_copy(update=overrides) if overrides else settings
        return Scheduler(col, clock, conf, rng=random.Random(42))

    return _make
