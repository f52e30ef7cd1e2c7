"""
Domain models for cards, decks, notes and the review log.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum


class Queue(IntEnum):
    """Queue a card currently sits in. Negative values keep it out of study."""

    USER_BURIED = -3
    SCHED_BURIED = -2
    SUSPENDED = -1
    NEW = 0
    LEARNING = 1
    REVIEW = 2


class CardType(IntEnum):
    """Phase of a card's life. REVIEW also covers relearning (queue=LEARNING)."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2


class ReviewType(IntEnum):
    """Review log entry kind."""

    LEARN = 0
    REVIEW = 1
    RELEARN = 2


class LearnGrade(IntEnum):
    """Buttons available while a card is in (re)learning."""

    FAIL = 1
    PASS = 2
    REMOVE = 3  # graduate immediately with the early interval


class ReviewGrade(IntEnum):
    """Buttons available for a review card."""

    FAIL = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class CounterKind(str, Enum):
    """Per-deck daily counters."""

    NEW = "new"
    REVIEW = "rev"
    LEARNING = "lrn"
    TIME = "time"


@dataclass
class Card:
    """
    Scheduling state of a single card.

    Attributes:
        due: Meaning depends on queue. NEW: insertion position shared by the
            note's cards. LEARNING: epoch seconds. REVIEW: day index.
        ivl: Interval in days. Negative values are learning delays in seconds.
        factor: Ease factor in permille (2500 = 250%).
        left: Learning/relearning steps still to go.
        edue: Review due stashed while the card is relearning.
    """

    id: int
    nid: int
    did: int
    queue: Queue = Queue.NEW
    type: CardType = CardType.NEW
    due: int = 0
    ivl: int = 0
    factor: int = 0
    reps: int = 0
    lapses: int = 0
    left: int = 0
    last_ivl: int = 0
    edue: int = 0
    mod: int = 0
    usn: int = 0

    # Session-only, never persisted
    timer_started: float | None = field(default=None, compare=False, repr=False)

    def start_timer(self, now: float) -> None:
        self.timer_started = now

    def time_taken(self, now: float, max_taken: int) -> int:
        """Milliseconds spent on the card, capped at max_taken seconds."""
        if self.timer_started is None:
            return 0
        elapsed = int((now - self.timer_started) * 1000)
        return max(0, min(elapsed, max_taken * 1000))

    @property
    def is_relearning(self) -> bool:
        return self.type == CardType.REVIEW and self.queue == Queue.LEARNING


@dataclass(frozen=True)
class DeckCounters:
    """A daily counter tagged with the day index it belongs to."""

    day: int = 0
    count: int = 0

    def current(self, today: int) -> int:
        """Count for today; a counter from another day reads as zero."""
        return self.count if self.day == today else 0

    def refreshed(self, today: int) -> "DeckCounters":
        if self.day == today:
            return self
        return DeckCounters(day=today, count=0)

    def added(self, today: int, amount: int) -> "DeckCounters":
        return DeckCounters(day=today, count=self.current(today) + amount)


@dataclass(frozen=True)
class Deck:
    """
    A deck in the `::`-separated hierarchy, with its daily counters.
    """

    id: int
    name: str
    conf_id: int = 1
    new_today: DeckCounters = DeckCounters()
    rev_today: DeckCounters = DeckCounters()
    lrn_today: DeckCounters = DeckCounters()
    time_today: DeckCounters = DeckCounters()

    @property
    def path(self) -> list[str]:
        return self.name.split("::")

    def counter(self, kind: CounterKind) -> DeckCounters:
        return getattr(self, f"{kind.value}_today")

    def with_counter(self, kind: CounterKind, value: DeckCounters) -> "Deck":
        return replace(self, **{f"{kind.value}_today": value})

    def is_stale(self, today: int) -> bool:
        return any(self.counter(kind).day != today for kind in CounterKind)

    def refreshed(self, today: int) -> "Deck":
        """Copy with every counter from a previous day zeroed for today."""
        deck = self
        for kind in CounterKind:
            deck = deck.with_counter(kind, deck.counter(kind).refreshed(today))
        return deck


@dataclass
class Note:
    id: int
    tags: list[str] = field(default_factory=list)
    mod: int = 0
    usn: int = 0

    def has_tag(self, tag: str) -> bool:
        return tag.lower() in (t.lower() for t in self.tags)

    def add_tag(self, tag: str) -> None:
        if not self.has_tag(tag):
            self.tags.append(tag)


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    A single, append-only review log entry.

    Attributes:
        id: Millisecond timestamp of the answer; unique.
        ease: Button pressed.
        ivl: Interval after the answer (days, or negative seconds in learning).
        last_ivl: Interval before the answer, same convention.
        time: Milliseconds spent answering.
    """

    id: int
    cid: int
    usn: int
    ease: int
    ivl: int
    last_ivl: int
    factor: int
    time: int
    type: ReviewType
