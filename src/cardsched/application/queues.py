"""
The three study queues and the order they are drawn from.

Queues are filled lazily: each fill pulls at most `queue_limit` cards from
one deck at a time, draining the active decks in order. Counts are the
authoritative budget; a queue is never drawn from once its count is spent.
"""

import heapq
import logging
import random

from cardsched.application.config import AppConfig
from cardsched.application.walking_count import (
    NewCardLimits,
    ReviewCardLimits,
    cascading_limit,
    walking_count,
)
from cardsched.domain.config import NewSpread, RevOrder
from cardsched.domain.models import Card, Queue
from cardsched.domain.ports import Clock, Collection
from cardsched.domain.state import LearningEntry, NewEntry, SchedulerRuntimeState

logger = logging.getLogger(__name__)


class QueueManager:
    def __init__(self, col: Collection, clock: Clock, settings: AppConfig):
        self.col = col
        self.clock = clock
        self.settings = settings

    def reset(self, state: SchedulerRuntimeState) -> None:
        """Recount and empty all three queues. The day must already be current."""
        self.reset_lrn(state)
        self.reset_rev(state)
        self.reset_new(state)
        logger.debug(f"Queues reset for day {state.today}: counts {state.counts()}")

    # ---------- New cards ----------

    def reset_new_count(self, state: SchedulerRuntimeState) -> None:
        state.new_count = walking_count(
            self.col, self.col.decks.active(), NewCardLimits(self.col, state.today)
        )

    def reset_new(self, state: SchedulerRuntimeState) -> None:
        self.reset_new_count(state)
        state.new_dids.clear()
        state.new_dids.extend(self.col.decks.active())
        state.new_queue.clear()
        self.update_new_card_ratio(state)

    def fill_new(self, state: SchedulerRuntimeState) -> bool:
        if state.new_count <= 0:
            return False
        if state.new_queue:
            return True
        strategy = NewCardLimits(self.col, state.today)
        while state.new_dids:
            did = state.new_dids[0]
            lim = min(self.settings.queue_limit, cascading_limit(self.col, did, strategy))
            if lim:
                entries = self.col.cards.fetch_new(did, lim)
                if entries:
                    state.new_queue.extend(NewEntry(due, cid) for due, cid in entries)
                    logger.debug(f"Filled new queue from deck {did}: {len(entries)} cards")
                    return True
            # Nothing left in this deck
            state.new_dids.popleft()
        return False

    def get_new_card(self, state: SchedulerRuntimeState) -> Card | None:
        if not self.fill_new(state):
            return None
        entry = state.new_queue.popleft()
        conf = self.col.decks.config_for(state.new_dids[0])
        if conf.new.separate:
            # Push the rest of the note to the back so siblings don't follow each other
            n = len(state.new_queue)
            while state.new_queue and state.new_queue[0].due == entry.due:
                state.new_queue.append(state.new_queue.popleft())
                n -= 1
                if not n:
                    break
        state.new_count -= 1
        return self.col.cards.get(entry.card_id)

    def update_new_card_ratio(self, state: SchedulerRuntimeState) -> None:
        """Spread new cards evenly through the reviews: one every N answers."""
        if self.settings.new_spread == NewSpread.DISTRIBUTE and state.new_count:
            modulus = (state.new_count + state.rev_count) // state.new_count
            if state.rev_count:
                # Make sure at least one review comes between new cards
                modulus = max(2, modulus)
            state.new_card_modulus = modulus
            return
        state.new_card_modulus = 0

    def time_for_new_card(self, state: SchedulerRuntimeState) -> bool:
        """True if it's time to show a new card."""
        if not state.new_count:
            return False
        if self.settings.new_spread == NewSpread.LAST:
            return False
        if self.settings.new_spread == NewSpread.FIRST:
            return True
        if state.new_card_modulus:
            return state.reps != 0 and state.reps % state.new_card_modulus == 0
        return False

    # ---------- Learning ----------

    def reset_lrn_count(self, state: SchedulerRuntimeState) -> None:
        state.lrn_count = self.col.cards.sum_learning_left(
            self.col.decks.active(), state.day_cutoff, self.settings.report_limit
        )

    def reset_lrn(self, state: SchedulerRuntimeState) -> None:
        self.reset_lrn_count(state)
        state.lrn_queue.clear()

    def fill_lrn(self, state: SchedulerRuntimeState) -> bool:
        if state.lrn_count <= 0:
            return False
        if state.lrn_queue:
            return True
        entries = self.col.cards.fetch_learning(
            self.col.decks.active(), state.day_cutoff, self.settings.report_limit
        )
        state.lrn_queue[:] = [LearningEntry(due, cid) for due, cid in entries]
        heapq.heapify(state.lrn_queue)
        logger.debug(f"Filled learning queue: {len(state.lrn_queue)} cards")
        return bool(state.lrn_queue)

    def get_lrn_card(self, state: SchedulerRuntimeState, collapse: bool = False) -> Card | None:
        """
        Pop the earliest learning card if it is due.

        With `collapse`, cards due within the collapse window count as due so
        the session can finish instead of idling.
        """
        if not self.fill_lrn(state):
            return None
        cutoff = self.clock.now()
        if collapse:
            cutoff += self.settings.collapse_time
        if state.lrn_queue[0].due > cutoff:
            return None
        entry = heapq.heappop(state.lrn_queue)
        card = self.col.cards.get(entry.card_id)
        state.lrn_count -= card.left
        return card

    def sort_into_lrn(self, state: SchedulerRuntimeState, due: int, cid: int) -> None:
        heapq.heappush(state.lrn_queue, LearningEntry(due, cid))

    # ---------- Reviews ----------

    def reset_rev_count(self, state: SchedulerRuntimeState) -> None:
        state.rev_count = walking_count(
            self.col, self.col.decks.active(), ReviewCardLimits(self.col, state.today)
        )

    def reset_rev(self, state: SchedulerRuntimeState) -> None:
        self.reset_rev_count(state)
        state.rev_queue.clear()
        state.rev_dids.clear()
        state.rev_dids.extend(self.col.decks.active())

    def fill_rev(self, state: SchedulerRuntimeState) -> bool:
        if state.rev_count <= 0:
            return False
        if state.rev_queue:
            return True
        strategy = ReviewCardLimits(self.col, state.today)
        while state.rev_dids:
            did = state.rev_dids[0]
            lim = min(self.settings.queue_limit, cascading_limit(self.col, did, strategy))
            if lim:
                order = self.col.decks.config_for(did).rev.order
                ids = self.col.cards.fetch_review(did, state.today, lim, order)
                if ids:
                    if order == RevOrder.DUE:
                        # Same shuffle for the whole day
                        random.Random(state.today).shuffle(ids)
                    state.rev_queue.extend(ids)
                    logger.debug(f"Filled review queue from deck {did}: {len(ids)} cards")
                    return True
            state.rev_dids.popleft()
        return False

    def get_rev_card(self, state: SchedulerRuntimeState) -> Card | None:
        if not self.fill_rev(state):
            return None
        state.rev_count -= 1
        return self.col.cards.get(state.rev_queue.popleft())

    # ---------- Selection ----------

    def next_card(self, state: SchedulerRuntimeState) -> Card | None:
        """
        Pick the next card to show.

        Order: a due learning card, a new card if one is due by the spread,
        a review card, any new card, and finally a learning card due within
        the collapse window.
        """
        card = self.get_lrn_card(state)
        if card:
            return card
        if self.time_for_new_card(state):
            card = self.get_new_card(state)
            if card:
                return card
        card = self.get_rev_card(state)
        if card:
            return card
        card = self.get_new_card(state)
        if card:
            return card
        return self.get_lrn_card(state, collapse=True)

    def remove_card(self, state: SchedulerRuntimeState, card: Card) -> bool:
        """
        Drop a card from whichever in-memory queue holds it.

        Returns:
            Whether the card was found in a queue.
        """
        if card.queue == Queue.NEW:
            for entry in state.new_queue:
                if entry.card_id == card.id:
                    state.new_queue.remove(entry)
                    state.new_count -= 1
                    return True
        elif card.queue == Queue.LEARNING:
            for entry in state.lrn_queue:
                if entry.card_id == card.id:
                    state.lrn_queue.remove(entry)
                    heapq.heapify(state.lrn_queue)
                    state.lrn_count -= card.left
                    return True
        elif card.queue == Queue.REVIEW:
            if card.id in state.rev_queue:
                state.rev_queue.remove(card.id)
                state.rev_count -= 1
                return True
        return False
