"""
Processing of a single answer.

One answer mutates the card, appends a review log entry and bumps the daily
counters of the card's deck and every ancestor. All of that happens inside
one store transaction; if anything fails the in-memory card and session
state are put back the way they were before the error propagates.
"""

import logging
from dataclasses import replace

from cardsched.application.config import AppConfig
from cardsched.application.intervals import IntervalCalculator
from cardsched.application.leech import LeechDetector
from cardsched.application.queues import QueueManager
from cardsched.domain.config import DeckConfig
from cardsched.domain.errors import ConfigError, InvalidStateError, StorageConflictError
from cardsched.domain.models import (
    Card,
    CardType,
    CounterKind,
    LearnGrade,
    Queue,
    ReviewGrade,
    ReviewLogEntry,
    ReviewType,
)
from cardsched.domain.ports import Clock, Collection
from cardsched.domain.state import SchedulerRuntimeState

logger = logging.getLogger(__name__)

ANSWERABLE_QUEUES = (Queue.NEW, Queue.LEARNING, Queue.REVIEW)


class AnswerProcessor:
    def __init__(
        self,
        col: Collection,
        clock: Clock,
        settings: AppConfig,
        queues: QueueManager,
        intervals: IntervalCalculator,
        leeches: LeechDetector,
    ):
        self.col = col
        self.clock = clock
        self.settings = settings
        self.queues = queues
        self.intervals = intervals
        self.leeches = leeches

    def answer(self, state: SchedulerRuntimeState, card: Card, ease: int) -> bool:
        """
        Grade a card and persist the outcome.

        Args:
            state: The session the card was handed out by.
            card: Card to grade; updated in place.
            ease: 1..3 for new and learning cards, 1..4 for review cards.

        Returns:
            True if this answer made the card a leech.

        Raises:
            InvalidStateError: if the card is not in a study queue or the
                grade is out of range for its phase.
            ConfigError: if the deck's configuration cannot be used.
            StorageError: if the store fails; nothing is committed.
        """
        self._check_answerable(card, ease)

        saved_card = replace(card)
        saved_state = state.snapshot()
        try:
            with self.col.transaction():
                return self._answer(state, card, ease)
        except Exception:
            card.__dict__.update(saved_card.__dict__)
            state.restore(saved_state)
            raise

    @staticmethod
    def _check_answerable(card: Card, ease: int) -> None:
        if card.queue not in ANSWERABLE_QUEUES:
            raise InvalidStateError(
                f"Card {card.id} is not in a study queue (queue={Queue(card.queue).name})"
            )
        top = ReviewGrade.EASY if card.queue == Queue.REVIEW else LearnGrade.REMOVE
        if not 1 <= ease <= top:
            raise InvalidStateError(f"Ease {ease} is out of range 1..{int(top)} for card {card.id}")

    def _answer(self, state: SchedulerRuntimeState, card: Card, ease: int) -> bool:
        now = self.clock.now()
        deck = self.col.decks.get(card.did)
        conf = self.col.decks.config_for(card.did)
        taken = card.time_taken(now, conf.max_taken)

        state.reps += 1
        card.reps += 1

        was_new = card.queue == Queue.NEW
        if was_new:
            card.queue = Queue.LEARNING
            card.type = CardType.LEARNING
            card.left = len(conf.new.delays)
            self._update_stats(card, CounterKind.NEW, state.today)

        leech = False
        if card.queue == Queue.LEARNING:
            relearning = card.type == CardType.REVIEW
            if relearning and not conf.lapse.delays:
                logger.warning(f"Card {card.id} is relearning but deck '{deck.name}' has no lapse steps")
                raise ConfigError(deck.name, "lapse.delays", "no steps for a relearning card")
            self._answer_learning(state, card, ease, conf, now, taken)
            if not was_new:
                self._update_stats(card, CounterKind.LEARNING, state.today)
        else:
            leech = self._answer_review(state, card, ease, conf, now, taken)
            self._update_stats(card, CounterKind.REVIEW, state.today)

        self._update_stats(card, CounterKind.TIME, state.today, taken)
        card.mod = int(now)
        card.usn = self.col.usn()
        self.col.cards.update(card)
        return leech

    # ---------- Learning ----------

    def _answer_learning(
        self,
        state: SchedulerRuntimeState,
        card: Card,
        ease: int,
        conf: DeckConfig,
        now: float,
        taken: int,
    ) -> None:
        lconf = conf.learning_config(card.type == CardType.REVIEW)
        log_type = ReviewType.RELEARN if card.type == CardType.REVIEW else ReviewType.LEARN
        last_left = card.left
        leaving = False

        if ease == LearnGrade.REMOVE:
            self._reschedule_as_rev(card, conf, early=True, today=state.today)
            leaving = True
        elif ease == LearnGrade.PASS and card.left - 1 <= 0:
            self._reschedule_as_rev(card, conf, early=False, today=state.today)
            leaving = True
        else:
            if ease == LearnGrade.PASS:
                card.left -= 1
            else:
                card.left = len(lconf.delays)
            state.lrn_count += card.left

            delay = self.intervals.delay_for_grade(lconf.delays, card.left)
            if card.due < now:
                # Not collapsed in early: spread repeated failures a little
                delay = self.intervals.jittered(delay)
            card.due = int(now + delay)
            if state.lrn_queue and not state.rev_count and not state.new_count:
                # Nothing else to study: never show the same card twice in a row
                card.due = max(card.due, state.lrn_queue[0].due + 1)
            self.queues.sort_into_lrn(state, card.due, card.id)

        if leaving:
            ivl = card.ivl
        else:
            ivl = -self.intervals.delay_for_grade(lconf.delays, card.left)
        last_ivl = -self.intervals.delay_for_grade(lconf.delays, last_left)
        self._log(card, ease, ivl, last_ivl, taken, log_type)

    def _reschedule_as_rev(self, card: Card, conf: DeckConfig, early: bool, today: int) -> None:
        if card.type == CardType.REVIEW:
            # Relearning done: back to the review due stashed at the lapse
            card.due = card.edue
            card.edue = 0
        else:
            card.ivl = self.intervals.graduating_ivl(card, conf, early, today)
            card.due = today + card.ivl
            card.factor = conf.new.initial_factor
        card.left = 0
        card.queue = Queue.REVIEW
        card.type = CardType.REVIEW

    # ---------- Reviews ----------

    def _answer_review(
        self,
        state: SchedulerRuntimeState,
        card: Card,
        ease: int,
        conf: DeckConfig,
        now: float,
        taken: int,
    ) -> bool:
        leech = False
        if ease == ReviewGrade.FAIL:
            leech = self._reschedule_lapse(state, card, conf, now)
        else:
            self._reschedule_rev(card, ease, conf, state.today)
        self._log(card, ease, card.ivl, card.last_ivl, taken, ReviewType.REVIEW)
        return leech

    def _reschedule_lapse(
        self, state: SchedulerRuntimeState, card: Card, conf: DeckConfig, now: float
    ) -> bool:
        card.lapses += 1
        card.last_ivl = card.ivl
        card.ivl = self.intervals.next_lapse_ivl(card, conf.lapse)
        card.factor = self.intervals.lapse_factor(card.factor)
        card.due = state.today + card.ivl

        if conf.lapse.delays:
            card.edue = card.due
            card.due = int(now + self.intervals.delay_for_grade(conf.lapse.delays, 0))
            card.left = len(conf.lapse.delays)
            card.queue = Queue.LEARNING

        leech = self.leeches.check(card, conf.lapse, int(now))

        # Suspension cancels the relearning step
        if card.queue == Queue.LEARNING:
            state.lrn_count += card.left
            self.queues.sort_into_lrn(state, card.due, card.id)
        return leech

    def _reschedule_rev(self, card: Card, ease: int, conf: DeckConfig, today: int) -> None:
        minimum = self.intervals.minimum_ivl(card, ease)
        ideal = self.intervals.next_rev_ivl(card, ease, today, conf.rev)
        card.last_ivl = card.ivl
        card.ivl = self.intervals.adjust_for_siblings(card, ideal, today, conf.rev, minimum)
        card.factor = self.intervals.review_factor(card.factor, ease)
        card.due = today + card.ivl

    # ---------- Bookkeeping ----------

    def _update_stats(self, card: Card, kind: CounterKind, today: int, amount: int = 1) -> None:
        for deck in self.col.decks.parents(card.did) + [self.col.decks.get(card.did)]:
            counter = deck.counter(kind).added(today, amount)
            self.col.decks.save(deck.with_counter(kind, counter))

    def _log(
        self, card: Card, ease: int, ivl: int, last_ivl: int, taken: int, log_type: ReviewType
    ) -> None:
        """Append a review log entry, retrying with a fresh id on collisions."""
        delay = self.settings.log_retry_delay
        attempts = self.settings.log_retry_attempts
        for attempt in range(1, attempts + 1):
            entry = ReviewLogEntry(
                id=int(self.clock.now() * 1000),
                cid=card.id,
                usn=self.col.usn(),
                ease=ease,
                ivl=ivl,
                last_ivl=last_ivl,
                factor=card.factor,
                time=taken,
                type=log_type,
            )
            try:
                self.col.revlog.append(entry)
                return
            except StorageConflictError:
                if attempt == attempts:
                    logger.warning(
                        f"Review log id for card {card.id} still taken after {attempts} attempts"
                    )
                    raise
                logger.debug(f"Review log id {entry.id} taken, retrying in {delay:.3f}s")
                self.clock.sleep(delay)
                delay *= 2
