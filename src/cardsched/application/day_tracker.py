"""
Day index and cutoff bookkeeping.

Days are counted from the collection's creation instant, so a "day" ends at
the same wall-clock time the collection was created.
"""

import logging

from cardsched.domain.constants import SECONDS_PER_DAY
from cardsched.domain.models import Deck
from cardsched.domain.ports import Clock, Collection
from cardsched.domain.state import SchedulerRuntimeState

logger = logging.getLogger(__name__)


class DayTracker:
    def __init__(self, col: Collection, clock: Clock):
        self.col = col
        self.clock = clock

    def today(self) -> int:
        """Whole days elapsed since the collection was created."""
        return int((self.clock.now() - self.col.crt) // SECONDS_PER_DAY)

    def day_cutoff(self, today: int) -> int:
        """Epoch second at which `today` ends."""
        return self.col.crt + (today + 1) * SECONDS_PER_DAY

    def update_cutoff(self, state: SchedulerRuntimeState) -> None:
        """
        Recompute today/cutoff and zero yesterday's counters.

        Covers every active deck plus the ancestors of the current deck.
        """
        state.today = self.today()
        state.day_cutoff = self.day_cutoff(state.today)

        for did in self.col.decks.active():
            self.refresh_counters(self.col.decks.get(did), state.today)
        for parent in self.col.decks.parents(self.col.decks.selected()):
            self.refresh_counters(parent, state.today)

    def refresh_counters(self, deck: Deck, today: int) -> Deck:
        """Persist a copy of `deck` whose stale counters are reset to (today, 0)."""
        if not deck.is_stale(today):
            return deck
        fresh = deck.refreshed(today)
        self.col.decks.save(fresh)
        logger.debug(f"Reset daily counters of deck '{deck.name}' for day {today}")
        return fresh

    def has_rolled_over(self, state: SchedulerRuntimeState) -> bool:
        return self.clock.now() > state.day_cutoff
