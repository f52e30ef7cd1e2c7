"""Answering cards: state transitions, counters, the review log and rollback."""

import pytest

from cardsched.domain.errors import (
    ConfigError,
    InvalidStateError,
    StorageConflictError,
    StorageError,
)
from cardsched.domain.models import CardType, Queue, ReviewType

from ..conftest import NOW, TODAY


@pytest.fixture
def conf(build):
    build.config(1)


def stored(col, card):
    return col.cards.get(card.id)


class TestNewAndLearning:
    def test_first_pass_enters_learning(self, conf, make_scheduler, build, col, clock):
        build.new_card()
        sched = make_scheduler()
        card = sched.get_card()
        clock.advance(5)

        assert sched.answer_card(card, 2) is False

        assert card.queue == Queue.LEARNING
        assert card.type == CardType.LEARNING
        assert card.left == 1
        assert card.reps == 1
        # Second step is 10 minutes, stretched by up to a quarter
        assert NOW + 5 + 600 <= card.due <= NOW + 5 + 750
        assert stored(col, card) == card
        assert sched.state.lrn_count == 1
        assert sched.state.reps == 1

        [entry] = col.revlog.for_card(card.id)
        assert (entry.ease, entry.ivl, entry.last_ivl) == (2, -600, -60)
        assert entry.type == ReviewType.LEARN
        assert entry.time == 5000

        deck = col.decks.get(1)
        assert deck.new_today.current(TODAY) == 1
        assert deck.lrn_today.current(TODAY) == 0
        assert deck.time_today.current(TODAY) == 5000

    def test_fail_restarts_steps(self, conf, make_scheduler, build):
        card = build.learning_card(due=NOW - 60, left=1)
        sched = make_scheduler()
        sched.answer_card(card, 1)
        assert card.left == 2
        assert NOW + 60 <= card.due <= NOW + 75

    def test_fail_of_collapsed_card_is_not_jittered(self, conf, make_scheduler, build):
        card = build.learning_card(due=NOW + 600, left=2)
        sched = make_scheduler()
        assert sched.get_card().id == card.id

        sched.answer_card(card, 1)
        assert card.left == 2
        assert card.due == NOW + 60

    def test_graduates_after_last_step(self, conf, make_scheduler, build, col):
        card = build.learning_card(due=NOW - 60, left=1)
        sched = make_scheduler()
        sched.answer_card(card, 2)

        assert (card.queue, card.type) == (Queue.REVIEW, CardType.REVIEW)
        assert card.ivl == 1
        assert card.due == TODAY + 1
        assert card.factor == 2500
        assert card.left == 0
        [entry] = col.revlog.for_card(card.id)
        assert (entry.ivl, entry.last_ivl) == (1, -600)
        assert col.decks.get(1).lrn_today.current(TODAY) == 1

    def test_early_removal_uses_easy_interval(self, conf, make_scheduler, build):
        card = build.learning_card(due=NOW - 60, left=2)
        make_scheduler().answer_card(card, 3)
        assert card.queue == Queue.REVIEW
        assert card.ivl == 4
        assert card.due == TODAY + 4

    def test_graduating_interval_avoids_siblings(self, conf, make_scheduler, build):
        note = build.note()
        build.review_card(due=TODAY + 1, note=note)
        card = build.learning_card(due=NOW - 60, left=1, note=note)
        make_scheduler().answer_card(card, 2)
        # One day is the floor, so the card moves later
        assert card.ivl == 2

    def test_not_repeated_back_to_back(self, conf, make_scheduler, build):
        build.learning_card(due=NOW - 100)
        later = build.learning_card(due=NOW + 1000)
        sched = make_scheduler()
        card = sched.get_card()
        assert card.id != later.id

        sched.answer_card(card, 1)
        assert card.due == NOW + 1001

    def test_daily_new_limit_end_to_end(self, make_scheduler, build, col, clock):
        build.config(1, new={"delays": [1, 10, 20], "ints": [3, 7], "per_day": 2})
        cards = [build.new_card() for _ in range(3)]
        sched = make_scheduler()

        seen = []
        while (card := sched.get_card()) is not None:
            seen.append(card.id)
            sched.answer_card(card, 2)
            clock.advance(7200)

        assert set(seen) == {cards[0].id, cards[1].id}
        assert len(seen) == 6  # three steps each
        for card in cards[:2]:
            card = stored(col, card)
            assert (card.queue, card.ivl, card.due) == (Queue.REVIEW, 3, TODAY + 3)
        assert stored(col, cards[2]).queue == Queue.NEW
        assert col.decks.get(1).new_today.current(TODAY) == 2

    def test_parent_counters_bumped(self, conf, make_scheduler, build, col):
        parent = build.deck("Parent")
        child = build.deck("Parent::Child")
        build.new_card(child.id)
        col.decks.select(parent.id)
        sched = make_scheduler()

        sched.answer_card(sched.get_card(), 2)
        assert col.decks.get(parent.id).new_today.current(TODAY) == 1
        assert col.decks.get(child.id).new_today.current(TODAY) == 1


class TestReviews:
    @pytest.mark.parametrize(
        "ease, ivl, factor",
        [
            (2, 12, 2350),
            (3, 25, 2500),
            (4, 32, 2650),
        ],
    )
    def test_passing_grades(self, conf, make_scheduler, build, col, ease, ivl, factor):
        card = build.review_card(ivl=10, due=TODAY)
        sched = make_scheduler()
        sched.answer_card(card, ease)

        assert (card.ivl, card.factor, card.due, card.last_ivl) == (ivl, factor, TODAY + ivl, 10)
        assert card.queue == Queue.REVIEW
        [entry] = col.revlog.for_card(card.id)
        assert (entry.ivl, entry.last_ivl, entry.type) == (ivl, 10, ReviewType.REVIEW)
        assert col.decks.get(1).rev_today.current(TODAY) == 1

    def test_late_review_credits_delay(self, conf, make_scheduler, build):
        card = build.review_card(ivl=10, due=TODAY - 4)
        make_scheduler().answer_card(card, 3)
        assert card.ivl == 30

    def test_factor_floor(self, conf, make_scheduler, build):
        card = build.review_card(factor=1300)
        make_scheduler().answer_card(card, 2)
        assert card.factor == 1300


class TestLapses:
    def test_lapse_enters_relearning(self, conf, make_scheduler, build, col):
        card = build.review_card(ivl=10, due=TODAY)
        sched = make_scheduler()
        assert sched.answer_card(card, 1) is False

        assert card.lapses == 1
        assert (card.ivl, card.last_ivl, card.factor) == (6, 10, 2300)
        assert card.queue == Queue.LEARNING
        assert card.type == CardType.REVIEW
        assert card.edue == TODAY + 6
        assert card.due == NOW + 600
        assert card.left == 1
        assert sched.state.lrn_count == 1
        assert stored(col, card) == card

    def test_relearning_returns_to_stashed_due(self, conf, make_scheduler, build, col, clock):
        card = build.review_card(ivl=10, due=TODAY)
        sched = make_scheduler()
        sched.answer_card(card, 1)
        clock.advance(600)

        card = sched.get_card()
        sched.answer_card(card, 2)

        assert (card.queue, card.type) == (Queue.REVIEW, CardType.REVIEW)
        assert card.due == TODAY + 6
        assert (card.edue, card.left, card.ivl) == (0, 0, 6)
        relearn = col.revlog.for_card(card.id)[-1]
        assert relearn.type == ReviewType.RELEARN
        assert (relearn.ivl, relearn.last_ivl) == (6, -600)

    def test_lapse_without_steps_stays_in_review(self, make_scheduler, build):
        build.config(1, lapse={"delays": []})
        card = build.review_card(ivl=10, due=TODAY)
        make_scheduler().answer_card(card, 1)
        assert card.queue == Queue.REVIEW
        assert card.due == TODAY + 6
        assert card.edue == 0

    def test_relearning_without_steps_is_a_config_error(self, make_scheduler, build, col):
        build.config(1, lapse={"delays": []})
        card = build.learning_card(type=CardType.REVIEW, due=NOW - 10, left=1, ivl=5, edue=TODAY + 5)
        sched = make_scheduler()

        with pytest.raises(ConfigError) as exc:
            sched.answer_card(card, 2)
        assert exc.value.field == "lapse.delays"
        assert card.reps == 0
        assert stored(col, card) == card

    def test_leech_suspends(self, make_scheduler, build, col):
        build.config(1, lapse={"leech_fails": 4})
        card = build.review_card(ivl=10, due=TODAY, lapses=3)
        sched = make_scheduler()

        assert sched.answer_card(card, 1) is True
        assert card.lapses == 4
        assert card.queue == Queue.SUSPENDED
        assert card.due == TODAY + 6
        assert card.left == 0
        assert sched.state.lrn_count == 0
        assert col.notes.get(card.nid).has_tag("leech")
        assert stored(col, card).queue == Queue.SUSPENDED

    def test_leech_tag_only_keeps_relearning(self, make_scheduler, build, col):
        build.config(1, lapse={"leech_fails": 4, "leech_action": "tag_only"})
        card = build.review_card(ivl=10, due=TODAY, lapses=3)

        assert make_scheduler().answer_card(card, 1) is True
        assert card.queue == Queue.LEARNING
        assert col.notes.get(card.nid).has_tag("leech")


class TestInvalidAnswers:
    def test_suspended_card(self, conf, make_scheduler, build):
        card = build.review_card(queue=Queue.SUSPENDED)
        with pytest.raises(InvalidStateError):
            make_scheduler().answer_card(card, 3)

    @pytest.mark.parametrize("ease", [0, 5])
    def test_review_grade_out_of_range(self, conf, make_scheduler, build, ease):
        card = build.review_card()
        with pytest.raises(InvalidStateError):
            make_scheduler().answer_card(card, ease)

    def test_learning_has_three_buttons(self, conf, make_scheduler, build, col):
        card = build.learning_card()
        with pytest.raises(InvalidStateError):
            make_scheduler().answer_card(card, 4)
        assert col.revlog.for_card(card.id) == []


class TestPersistence:
    def test_storage_failure_rolls_back(self, conf, make_scheduler, build, col, monkeypatch):
        build.new_card()
        sched = make_scheduler()
        card = sched.get_card()
        before = stored(col, card)

        def broken(entry):
            raise StorageError("disk full")

        monkeypatch.setattr(col.revlog, "append", broken)
        with pytest.raises(StorageError):
            sched.answer_card(card, 2)

        assert card == before
        assert stored(col, card) == before
        assert col.decks.get(1).new_today.current(TODAY) == 0
        assert sched.state.reps == 0
        assert not sched.state.lrn_queue

    def test_log_id_collision_is_retried(self, conf, make_scheduler, build, col, clock):
        first = build.review_card()
        second = build.review_card()
        sched = make_scheduler()

        sched.answer_card(first, 3)
        sched.answer_card(second, 3)  # same millisecond

        assert clock.slept == [0.01]
        assert len(col.revlog.for_card(second.id)) == 1

    def test_log_retries_are_bounded(self, conf, make_scheduler, build, col, clock, monkeypatch):
        card = build.review_card()
        sched = make_scheduler(log_retry_attempts=3)
        attempts = []

        def conflicting(entry):
            attempts.append(entry.id)
            raise StorageConflictError("UNIQUE constraint failed: revlog.id")

        monkeypatch.setattr(col.revlog, "append", conflicting)
        with pytest.raises(StorageConflictError):
            sched.answer_card(card, 3)

        assert len(attempts) == 3
        assert clock.slept == [0.01, 0.02]
        assert stored(col, card).ivl == 10

    def test_time_taken_is_capped(self, conf, make_scheduler, build, col, clock):
        build.review_card()
        sched = make_scheduler()
        card = sched.get_card()
        clock.advance(120)
        sched.answer_card(card, 3)
        assert col.revlog.for_card(card.id)[0].time == 60000
        assert col.decks.get(1).time_today.current(TODAY) == 60000
