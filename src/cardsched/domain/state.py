"""
Runtime state of one study session.

The state is owned by the caller and handed to every scheduler component.
It is rebuilt in full on a day rollover or an explicit reset; the queues are
consumed destructively and refilled lazily from the store.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import NamedTuple


class NewEntry(NamedTuple):
    due: int  # insertion position, shared by cards of the same note
    card_id: int


class LearningEntry(NamedTuple):
    due: int  # epoch seconds
    card_id: int


@dataclass
class SchedulerRuntimeState:
    today: int = 0
    day_cutoff: int = 0

    new_queue: deque[NewEntry] = field(default_factory=deque)
    lrn_queue: list[LearningEntry] = field(default_factory=list)  # heap ordered by due
    rev_queue: deque[int] = field(default_factory=deque)

    new_count: int = 0
    lrn_count: int = 0
    rev_count: int = 0

    # Decks still to be drained by the new/review fills, current deck first
    new_dids: deque[int] = field(default_factory=deque)
    rev_dids: deque[int] = field(default_factory=deque)

    new_card_modulus: int = 0
    reps: int = 0  # answers given this session

    def counts(self) -> tuple[int, int, int]:
        return self.new_count, self.lrn_count, self.rev_count

    def snapshot(self) -> "SchedulerRuntimeState":
        """Independent copy, used to undo an answer that failed half-way."""
        return SchedulerRuntimeState(
            today=self.today,
            day_cutoff=self.day_cutoff,
            new_queue=deque(self.new_queue),
            lrn_queue=list(self.lrn_queue),
            rev_queue=deque(self.rev_queue),
            new_count=self.new_count,
            lrn_count=self.lrn_count,
            rev_count=self.rev_count,
            new_dids=deque(self.new_dids),
            rev_dids=deque(self.rev_dids),
            new_card_modulus=self.new_card_modulus,
            reps=self.reps,
        )

    def restore(self, other: "SchedulerRuntimeState") -> None:
        """Overwrite this state in place with the contents of `other`."""
        self.__dict__.update(other.snapshot().__dict__)
