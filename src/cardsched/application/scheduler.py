"""
The Scheduler: one study session over a collection.

Wires the day tracker, queue manager, interval calculator, leech detector
and answer processor around a single SchedulerRuntimeState.
"""

import logging
import random
from dataclasses import dataclass

from cardsched.application.answering import ANSWERABLE_QUEUES, AnswerProcessor
from cardsched.application.config import AppConfig
from cardsched.application.day_tracker import DayTracker
from cardsched.application.intervals import IntervalCalculator
from cardsched.application.leech import LeechDetector
from cardsched.application.maintenance import CardMaintenance
from cardsched.application.queues import QueueManager
from cardsched.application.walking_count import NewCardLimits, ReviewCardLimits, walking_count
from cardsched.domain.config import DeckConfig
from cardsched.domain.constants import MATURE_INTERVAL, SECONDS_PER_DAY
from cardsched.domain.errors import ConfigError, InvalidStateError
from cardsched.domain.models import Card, CardType, LearnGrade, Queue, ReviewGrade
from cardsched.domain.ports import Clock, Collection
from cardsched.domain.state import SchedulerRuntimeState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeckDue:
    """Due counts of one deck, children included."""

    did: int
    name: str
    new: int
    lrn: int
    rev: int


class Scheduler:
    def __init__(
        self,
        col: Collection,
        clock: Clock,
        settings: AppConfig,
        state: SchedulerRuntimeState | None = None,
        rng: random.Random | None = None,
    ):
        self.col = col
        self.clock = clock
        self.settings = settings
        rng = rng or random.Random()

        self.days = DayTracker(col, clock)
        self.queues = QueueManager(col, clock, settings)
        self.intervals = IntervalCalculator(col, rng)
        self.leeches = LeechDetector(col)
        self.answers = AnswerProcessor(
            col, clock, settings, self.queues, self.intervals, self.leeches
        )
        self.maintenance = CardMaintenance(col, clock, rng)

        if state is None:
            self.state = SchedulerRuntimeState()
            self.reset()
        else:
            self.state = state

    # ---------- Session ----------

    def reset(self) -> None:
        """Bring the day up to date and rebuild all queues from the store."""
        self.days.update_cutoff(self.state)
        self.queues.reset(self.state)
        new, lrn, rev = self.state.counts()
        logger.info(f"Session reset: {new} new, {lrn} learning, {rev} review")

    def check_rollover(self) -> bool:
        """Reset if the day has ended since the last reset."""
        if not self.days.has_rolled_over(self.state):
            return False
        logger.info(f"Day {self.state.today} is over, rebuilding queues")
        self.reset()
        return True

    def get_card(self) -> Card | None:
        """Next card to study, or None when nothing is due."""
        self.check_rollover()
        card = self.queues.next_card(self.state)
        if card:
            card.start_timer(self.clock.now())
        return card

    def answer_card(self, card: Card, ease: int) -> bool:
        """Grade a card. Returns True if it turned out to be a leech."""
        return self.answers.answer(self.state, card, ease)

    def remove_card_from_queues(self, card: Card) -> bool:
        return self.queues.remove_card(self.state, card)

    # ---------- Counts ----------

    def counts(self, card: Card | None = None) -> tuple[int, int, int]:
        """
        Remaining (new, learning, review) counts.

        Args:
            card: A card currently on screen; it is counted back in since it
                has already been taken off its queue.
        """
        new, lrn, rev = self.state.counts()
        if card is not None:
            if card.queue == Queue.NEW:
                new += 1
            elif card.queue == Queue.LEARNING:
                lrn += card.left
            elif card.queue == Queue.REVIEW:
                rev += 1
        return new, lrn, rev

    def deck_due_list(self) -> list[DeckDue]:
        """Due counts for every deck, each including its children."""
        today = self.state.today
        result = []
        for deck in self.col.decks.all():
            dids = [deck.id] + [child.id for child in self.col.decks.children(deck.id)]
            result.append(
                DeckDue(
                    did=deck.id,
                    name=deck.name,
                    new=walking_count(self.col, dids, NewCardLimits(self.col, today)),
                    lrn=self.col.cards.sum_learning_left(
                        dids, self.state.day_cutoff, self.settings.report_limit
                    ),
                    rev=walking_count(self.col, dids, ReviewCardLimits(self.col, today)),
                )
            )
        return result

    def rev_due(self) -> bool:
        """True if there are any review cards due in the active decks."""
        return any(
            self.col.cards.count_review(did, self.state.today, 1) for did in self.col.decks.active()
        )

    def new_due(self) -> bool:
        """True if there are any new cards in the active decks."""
        return any(self.col.cards.count_new(did, 1) for did in self.col.decks.active())

    def card_count(self) -> int:
        return self.col.cards.count_in(self.col.decks.active())

    def new_count(self) -> int:
        return self.col.cards.count_in(self.col.decks.active(), card_type=CardType.NEW)

    def mature_count(self) -> int:
        return self.col.cards.count_in(
            self.col.decks.active(), card_type=CardType.REVIEW, min_ivl=MATURE_INTERVAL
        )

    # ---------- Preview ----------

    def next_ivl(self, card: Card, ease: int) -> int:
        """Seconds until the card would next be shown after answering `ease`. Changes nothing."""
        if card.queue not in ANSWERABLE_QUEUES:
            raise InvalidStateError(f"Card {card.id} is not in a study queue")
        conf = self.col.decks.config_for(card.did)
        if card.queue in (Queue.NEW, Queue.LEARNING):
            return self._next_lrn_ivl(card, ease, conf)
        if ease == ReviewGrade.FAIL:
            if conf.lapse.delays:
                return int(conf.lapse.delays[0] * 60)
            return self.intervals.next_lapse_ivl(card, conf.lapse) * SECONDS_PER_DAY
        ivl = self.intervals.next_rev_ivl(card, ease, self.state.today, conf.rev)
        return ivl * SECONDS_PER_DAY

    def _next_lrn_ivl(self, card: Card, ease: int, conf: DeckConfig) -> int:
        relearning = card.queue == Queue.LEARNING and card.type == CardType.REVIEW
        lconf = conf.learning_config(relearning)
        if not lconf.delays:
            raise ConfigError(self.col.decks.get(card.did).name, "lapse.delays", "no steps for a relearning card")
        left = len(conf.new.delays) if card.queue == Queue.NEW else card.left
        today = self.state.today

        if ease == LearnGrade.FAIL:
            return self.intervals.delay_for_grade(lconf.delays, len(lconf.delays))
        if ease == LearnGrade.REMOVE:
            return self.intervals.graduating_ivl(card, conf, True, today, adj=False) * SECONDS_PER_DAY
        if left - 1 <= 0:
            return self.intervals.graduating_ivl(card, conf, False, today, adj=False) * SECONDS_PER_DAY
        return self.intervals.delay_for_grade(lconf.delays, left - 1)

    # ---------- Maintenance ----------

    def suspend_cards(self, ids: list[int]) -> None:
        self.maintenance.suspend_cards(ids)

    def unsuspend_cards(self, ids: list[int]) -> None:
        self.maintenance.unsuspend_cards(ids)

    def bury_note(self, nid: int) -> None:
        self.maintenance.bury_note(nid)

    def bury_cards(self, ids: list[int]) -> None:
        self.maintenance.bury_cards(ids)

    def remove_failed(self, ids: list[int] | None = None) -> None:
        self.maintenance.remove_failed(ids)

    def forget_cards(self, ids: list[int]) -> None:
        self.maintenance.forget_cards(ids)

    def sort_cards(
        self,
        cids: list[int],
        start: int = 1,
        step: int = 1,
        shuffle: bool = False,
        shift: bool = False,
    ) -> None:
        self.maintenance.sort_cards(cids, start, step, shuffle, shift)

    def on_close(self) -> int:
        """Unbury everything buried during the session."""
        return self.maintenance.on_close()
