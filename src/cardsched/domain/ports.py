"""
Ports (interfaces) for persistence and time.

These define the contract that infrastructure adapters must implement.
The scheduler depends on these abstractions, never on a concrete store.
All queries are parameterized by deck set, queue and due bound; no adapter
may build executable query text from caller-supplied values.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from .config import DeckConfig, RevOrder
from .models import Card, CardType, Deck, Note, Queue, ReviewLogEntry


class Clock(ABC):
    """Wall-clock seconds, monotonic enough for "now" comparisons."""

    @abstractmethod
    def now(self) -> float:
        pass

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        pass


class CardStore(ABC):
    """Port for checking out and updating cards."""

    @abstractmethod
    def get(self, cid: int) -> Card:
        """
        Fetch a card by id.

        Raises:
            CardNotFoundError: if no such card exists.
        """
        pass

    @abstractmethod
    def update(self, card: Card) -> None:
        """Persist the scheduling fields of a card (including mod and usn)."""
        pass

    @abstractmethod
    def count_new(self, did: int, limit: int) -> int:
        """Number of New-queue cards in a deck, capped at `limit`."""
        pass

    @abstractmethod
    def count_review(self, did: int, today: int, limit: int) -> int:
        """Number of Review-queue cards in a deck due by `today`, capped at `limit`."""
        pass

    @abstractmethod
    def sum_learning_left(self, dids: list[int], cutoff: int, limit: int) -> int:
        """Sum of remaining steps of learning cards due by `cutoff`."""
        pass

    @abstractmethod
    def fetch_new(self, did: int, limit: int) -> list[tuple[int, int]]:
        """(due, id) of New-queue cards in a deck, in insertion order."""
        pass

    @abstractmethod
    def fetch_learning(self, dids: list[int], cutoff: int, limit: int) -> list[tuple[int, int]]:
        """(due, id) of learning cards in the decks due by `cutoff`."""
        pass

    @abstractmethod
    def fetch_review(self, did: int, today: int, limit: int, order: RevOrder) -> list[int]:
        """Ids of Review-queue cards in a deck due by `today`, in `order`."""
        pass

    @abstractmethod
    def sibling_review_dues(self, nid: int, exclude_cid: int) -> set[int]:
        """Due days of the note's other cards that are in the Review queue."""
        pass

    @abstractmethod
    def count_in(
        self, dids: list[int], card_type: CardType | None = None, min_ivl: int = 0
    ) -> int:
        """Number of cards in the decks, optionally filtered by type and interval."""
        pass

    @abstractmethod
    def ids_for_note(self, nid: int) -> list[int]:
        pass

    @abstractmethod
    def set_queue(self, cids: list[int], queue: Queue, mod: int, usn: int) -> None:
        pass

    @abstractmethod
    def restore_queue_from_type(
        self, queues: list[Queue], mod: int, usn: int, cids: list[int] | None = None
    ) -> int:
        """
        Send cards sitting in one of `queues` back to `queue = type`.

        Args:
            cids: Restrict to these cards; None means every card.

        Returns:
            Number of cards changed.
        """
        pass

    @abstractmethod
    def restore_failed(self, cids: list[int] | None, mod: int, usn: int) -> None:
        """Return relearning cards to Review with their stashed due."""
        pass

    @abstractmethod
    def reset_to_new(self, cids: list[int], mod: int, usn: int) -> None:
        """Turn cards back into New cards with no interval."""
        pass

    @abstractmethod
    def max_new_position(self) -> int:
        """Highest insertion position among New cards, 0 if there are none."""
        pass

    @abstractmethod
    def new_note_ids(self, cids: list[int]) -> list[int]:
        """Distinct note ids of the given cards that are of type New, ascending."""
        pass

    @abstractmethod
    def min_new_position_from(self, start: int, exclude: list[int]) -> int | None:
        pass

    @abstractmethod
    def shift_new_positions(self, low: int, by: int, exclude: list[int], mod: int, usn: int) -> None:
        pass

    @abstractmethod
    def set_new_positions(self, positions: dict[int, int], cids: list[int], mod: int, usn: int) -> None:
        """Give each New card in `cids` the position assigned to its note."""
        pass


class DeckStore(ABC):
    """Port for the deck tree, deck counters and configuration groups."""

    @abstractmethod
    def get(self, did: int) -> Deck:
        pass

    @abstractmethod
    def all(self) -> list[Deck]:
        pass

    @abstractmethod
    def parents(self, did: int) -> list[Deck]:
        """Ancestors of a deck, nearest to the root first."""
        pass

    @abstractmethod
    def children(self, did: int) -> list[Deck]:
        """All descendants of a deck, ordered by name."""
        pass

    @abstractmethod
    def selected(self) -> int:
        """Id of the current deck."""
        pass

    @abstractmethod
    def active(self) -> list[int]:
        """Current deck followed by its descendants."""
        pass

    @abstractmethod
    def config_for(self, did: int) -> DeckConfig:
        """
        Typed configuration of the deck's group.

        Raises:
            ConfigError: if the stored configuration is invalid.
        """
        pass

    @abstractmethod
    def save(self, deck: Deck) -> None:
        pass


class NoteStore(ABC):
    @abstractmethod
    def get(self, nid: int) -> Note:
        pass

    @abstractmethod
    def save(self, note: Note) -> None:
        pass


class ReviewLogStore(ABC):
    @abstractmethod
    def append(self, entry: ReviewLogEntry) -> None:
        """
        Insert an entry.

        Raises:
            StorageConflictError: if an entry with the same id already exists.
        """
        pass


class Collection(ABC):
    """
    The aggregate of every store the scheduler talks to.

    `transaction()` groups writes: everything done inside it is committed
    together or rolled back together.
    """

    cards: CardStore
    decks: DeckStore
    notes: NoteStore
    revlog: ReviewLogStore

    @property
    @abstractmethod
    def crt(self) -> int:
        """Creation time of the collection, epoch seconds."""
        pass

    @abstractmethod
    def usn(self) -> int:
        """Current sync sequence number."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass
