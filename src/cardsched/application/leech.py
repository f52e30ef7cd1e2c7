"""Leech detection: chronic lapses get tagged and, optionally, suspended."""

import logging

from cardsched.domain.config import LapseConfig, LeechAction
from cardsched.domain.constants import LEECH_TAG
from cardsched.domain.models import Card, Queue
from cardsched.domain.ports import Collection

logger = logging.getLogger(__name__)


def is_leech(lapses: int, threshold: int) -> bool:
    """
    True at the threshold and again every half-threshold lapses after it.

    A threshold of 0 disables detection.
    """
    if threshold == 0 or lapses < threshold:
        return False
    return (lapses - threshold) % max(threshold // 2, 1) == 0


class LeechDetector:
    def __init__(self, col: Collection):
        self.col = col

    def check(self, card: Card, conf: LapseConfig, mod: int) -> bool:
        """
        Run after a lapse. Tags the note and applies the configured action.

        The card itself is only changed in memory; the caller persists it.

        Returns:
            Whether the card was found to be a leech.
        """
        if not is_leech(card.lapses, conf.leech_fails):
            return False

        note = self.col.notes.get(card.nid)
        note.add_tag(LEECH_TAG)
        note.mod = mod
        note.usn = self.col.usn()
        self.col.notes.save(note)
        logger.info(f"Card {card.id} is a leech ({card.lapses} lapses)")

        if conf.leech_action == LeechAction.SUSPEND:
            if card.queue == Queue.LEARNING:
                # Drop the pending relearning step, keep the review due
                card.due = card.edue
                card.left = 0
            card.queue = Queue.SUSPENDED
        return True
