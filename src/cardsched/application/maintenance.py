"""
Bulk card maintenance: suspending, burying, forgetting and repositioning.

These operations only touch the store. A running session does not notice
them until its queues are rebuilt with `Scheduler.reset()`.
"""

import logging
import random

from cardsched.domain.models import Queue
from cardsched.domain.ports import Clock, Collection

logger = logging.getLogger(__name__)

BURIED_QUEUES = [Queue.SCHED_BURIED, Queue.USER_BURIED]


class CardMaintenance:
    def __init__(self, col: Collection, clock: Clock, rng: random.Random | None = None):
        self.col = col
        self.clock = clock
        self.rng = rng or random.Random()

    def _stamp(self) -> tuple[int, int]:
        return int(self.clock.now()), self.col.usn()

    # ---------- Suspension ----------

    def suspend_cards(self, ids: list[int]) -> None:
        """Suspend cards. Relearning cards get their review due back first."""
        mod, usn = self._stamp()
        with self.col.transaction():
            self.col.cards.restore_failed(ids, mod, usn)
            self.col.cards.set_queue(ids, Queue.SUSPENDED, mod, usn)
        logger.info(f"Suspended {len(ids)} card(s)")

    def unsuspend_cards(self, ids: list[int]) -> None:
        mod, usn = self._stamp()
        with self.col.transaction():
            changed = self.col.cards.restore_queue_from_type([Queue.SUSPENDED], mod, usn, ids)
        logger.info(f"Unsuspended {changed} card(s)")

    def remove_failed(self, ids: list[int] | None = None) -> None:
        """Send relearning cards straight back to review, on their stashed due."""
        mod, usn = self._stamp()
        with self.col.transaction():
            self.col.cards.restore_failed(ids, mod, usn)

    # ---------- Burying ----------

    def bury_note(self, nid: int) -> None:
        """Bury every card of a note until the session is closed."""
        ids = self.col.cards.ids_for_note(nid)
        mod, usn = self._stamp()
        with self.col.transaction():
            self.col.cards.restore_failed(ids, mod, usn)
            self.col.cards.set_queue(ids, Queue.USER_BURIED, mod, usn)
        logger.debug(f"Buried note {nid} ({len(ids)} card(s))")

    def bury_cards(self, ids: list[int]) -> None:
        mod, usn = self._stamp()
        with self.col.transaction():
            self.col.cards.set_queue(ids, Queue.SCHED_BURIED, mod, usn)
        logger.debug(f"Buried {len(ids)} card(s)")

    def on_close(self) -> int:
        """
        Lift every bury, whoever put it there.

        Returns:
            Number of cards returned to their queue.
        """
        mod, usn = self._stamp()
        with self.col.transaction():
            changed = self.col.cards.restore_queue_from_type(BURIED_QUEUES, mod, usn)
        if changed:
            logger.info(f"Unburied {changed} card(s)")
        return changed

    # ---------- Repositioning ----------

    def forget_cards(self, ids: list[int]) -> None:
        """Turn cards back into new cards placed after every existing new card."""
        mod, usn = self._stamp()
        with self.col.transaction():
            self.col.cards.reset_to_new(ids, mod, usn)
            start = self.col.cards.max_new_position() + 1
            self._sort(ids, start, 1, False, False, mod, usn)
        logger.info(f"Forgot {len(ids)} card(s)")

    def sort_cards(
        self,
        cids: list[int],
        start: int = 1,
        step: int = 1,
        shuffle: bool = False,
        shift: bool = False,
    ) -> None:
        """
        Assign new-card positions note by note.

        Args:
            cids: Cards to reposition; cards that are not new are ignored.
            start: Position of the first note.
            step: Gap between consecutive notes.
            shuffle: Randomize the note order first.
            shift: Push other new cards at or after `start` out of the way.
        """
        mod, usn = self._stamp()
        with self.col.transaction():
            self._sort(cids, start, step, shuffle, shift, mod, usn)

    def _sort(
        self, cids: list[int], start: int, step: int, shuffle: bool, shift: bool, mod: int, usn: int
    ) -> None:
        nids = self.col.cards.new_note_ids(cids)
        if not nids:
            return
        if shuffle:
            self.rng.shuffle(nids)
        positions = {nid: start + i * step for i, nid in enumerate(nids)}
        high = start + step * len(nids)
        if shift:
            low = self.col.cards.min_new_position_from(start, cids)
            if low is not None:
                self.col.cards.shift_new_positions(low, high - low + 1, cids, mod, usn)
        self.col.cards.set_new_positions(positions, cids, mod, usn)
