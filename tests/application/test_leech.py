import pytest

from cardsched.application.leech import LeechDetector, is_leech
from cardsched.domain.config import LapseConfig, LeechAction
from cardsched.domain.models import Card, CardType, Queue


@pytest.mark.parametrize(
    "lapses,expected",
    [(3, False), (4, True), (5, False), (6, True), (7, False), (8, True)],
)
def test_threshold_four_fires_every_second_lapse(lapses, expected):
    assert is_leech(lapses, 4) is expected


@pytest.mark.parametrize(
    "lapses,expected",
    [(7, False), (8, True), (10, False), (12, True), (16, True)],
)
def test_threshold_eight_fires_every_fourth_lapse(lapses, expected):
    assert is_leech(lapses, 8) is expected


def test_threshold_one_fires_on_every_lapse():
    assert all(is_leech(n, 1) for n in range(1, 6))


def test_zero_threshold_disables_detection():
    assert not any(is_leech(n, 0) for n in range(0, 20))


class TestLeechDetector:
    def _card(self, build, lapses, queue=Queue.LEARNING):
        note = build.note()
        card = build.review_card(note=note, lapses=lapses, edue=25)
        card.queue = queue
        card.type = CardType.REVIEW
        return card, note

    def test_not_a_leech_changes_nothing(self, col, build):
        card, note = self._card(build, lapses=3)
        conf = LapseConfig(delays=[10], mult=0.5, leech_fails=4)

        assert LeechDetector(col).check(card, conf, mod=123) is False
        assert card.queue == Queue.LEARNING
        assert not col.notes.get(note.id).has_tag("leech")

    def test_suspends_and_cancels_relearning(self, col, build):
        card, note = self._card(build, lapses=4)
        conf = LapseConfig(delays=[10], mult=0.5, leech_fails=4)

        assert LeechDetector(col).check(card, conf, mod=123) is True
        assert card.queue == Queue.SUSPENDED
        assert card.due == 25
        assert card.left == 0

        saved = col.notes.get(note.id)
        assert saved.has_tag("leech")
        assert saved.mod == 123

    def test_tag_only_keeps_card_in_queue(self, col, build):
        card, note = self._card(build, lapses=4)
        conf = LapseConfig(delays=[10], mult=0.5, leech_fails=4, leech_action=LeechAction.TAG_ONLY)

        assert LeechDetector(col).check(card, conf, mod=123) is True
        assert card.queue == Queue.LEARNING
        assert col.notes.get(note.id).has_tag("leech")

    def test_review_queue_card_suspended_directly(self, col, build):
        card, _ = self._card(build, lapses=4, queue=Queue.REVIEW)
        card.due = 40
        conf = LapseConfig(delays=[], mult=0.5, leech_fails=4)

        assert LeechDetector(col).check(card, conf, mod=123) is True
        assert card.queue == Queue.SUSPENDED
        assert card.due == 40
