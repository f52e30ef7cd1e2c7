"""
Interval, ease and learning-step arithmetic.

The order of operations here is load-bearing: late days are added before
the multiplier, the forgetting-index transform is applied to the raw
interval, truncation happens once after the transform, and only then is
the minimum-growth floor enforced.
"""

import logging
import math
import random

from cardsched.domain.config import DeckConfig, LapseConfig, ReviewConfig
from cardsched.domain.constants import (
    FACTOR_ADDITION_VALUES,
    HARD_INTERVAL_MULTIPLIER,
    LAPSE_FACTOR_PENALTY,
    MAX_LEARN_JITTER,
    MIN_FACTOR,
)
from cardsched.domain.models import Card, CardType, ReviewGrade
from cardsched.domain.ports import Collection

logger = logging.getLogger(__name__)


class IntervalCalculator:
    def __init__(self, col: Collection, rng: random.Random | None = None):
        self.col = col
        self.rng = rng or random.Random()

    # ---------- Learning steps ----------

    @staticmethod
    def delay_for_grade(delays: list[float], left: int) -> int:
        """
        Delay in seconds for the step with `left` steps remaining.

        Counting from the end of the list; anything out of range maps to the
        first step.
        """
        idx = len(delays) - left
        if not 0 <= idx < len(delays):
            idx = 0
        return int(delays[idx] * 60)

    def jittered(self, delay: int) -> int:
        """Stretch a delay by a random 0-25% so repeated failures spread out."""
        return int(delay * (1 + self.rng.randint(0, MAX_LEARN_JITTER) / 100))

    def graduating_ivl(self, card: Card, conf: DeckConfig, early: bool, today: int, adj: bool = True) -> int:
        """Interval a card leaves learning with. Relearning cards keep their lapse interval."""
        if card.type == CardType.REVIEW:
            return card.ivl
        ideal = conf.new.ints[1] if early else conf.new.ints[0]
        if not adj:
            return ideal
        return self.adjust_for_siblings(card, ideal, today, conf.rev)

    # ---------- Reviews ----------

    @staticmethod
    def days_late(card: Card, today: int) -> int:
        return max(0, today - card.due)

    @staticmethod
    def ivl_for_fi(conf: ReviewConfig, ivl: float) -> int:
        """Rescale an interval tuned for one forgetting index to the configured target."""
        target, reference = conf.fi
        # Ratio first: equal indices must leave the interval exactly as is
        return int(ivl * (math.log(1 - target / 100) / math.log(1 - reference / 100)))

    @staticmethod
    def minimum_ivl(card: Card, ease: int) -> int:
        """Every successful review grows the interval by at least a day, two if easy."""
        return card.ivl + (2 if ease == ReviewGrade.EASY else 1)

    def next_rev_ivl(self, card: Card, ease: int, today: int, conf: ReviewConfig) -> int:
        """Ideal next interval for a review card answered with `ease` (2..4)."""
        delay = self.days_late(card, today)
        fct = card.factor / 1000
        if ease == ReviewGrade.HARD:
            interval = (card.ivl + delay // 4) * HARD_INTERVAL_MULTIPLIER
        elif ease == ReviewGrade.GOOD:
            interval = (card.ivl + delay // 2) * fct
        elif ease == ReviewGrade.EASY:
            interval = (card.ivl + delay) * fct * conf.ease4
        else:
            raise ValueError(f"ease {ease} is not a passing review grade")
        return max(self.minimum_ivl(card, ease), self.ivl_for_fi(conf, interval))

    @staticmethod
    def review_factor(factor: int, ease: int) -> int:
        return max(MIN_FACTOR, factor + FACTOR_ADDITION_VALUES[ease - 2])

    # ---------- Lapses ----------

    @staticmethod
    def next_lapse_ivl(card: Card, conf: LapseConfig) -> int:
        return int(card.ivl * conf.mult) + 1

    @staticmethod
    def lapse_factor(factor: int) -> int:
        return max(MIN_FACTOR, factor - LAPSE_FACTOR_PENALTY)

    # ---------- Siblings ----------

    def adjust_for_siblings(
        self, card: Card, ideal_ivl: int, today: int, conf: ReviewConfig, minimum: int = 1
    ) -> int:
        """
        Move an interval off a day already taken by a sibling review card.

        Searches outwards from the ideal due day, preferring earlier days, up
        to max(min_space, ideal * fuzz) + 1 days away. Earlier days are only
        taken while the interval stays at or above `minimum`. A collision is
        accepted when there is no leeway or no free day within reach.
        """
        ideal_due = today + ideal_ivl
        dues = self.col.cards.sibling_review_dues(card.nid, card.id)
        if ideal_due not in dues:
            return ideal_ivl

        leeway = max(conf.min_space, int(ideal_ivl * conf.fuzz))
        fudge = 0
        if leeway:
            for diff in range(1, leeway + 2):
                if ideal_ivl - diff >= minimum and (ideal_due - diff) not in dues:
                    fudge = -diff
                    break
                if (ideal_due + diff) not in dues:
                    fudge = diff
                    break
        logger.debug(
            f"Card {card.id}: sibling on day {ideal_due}, interval {ideal_ivl} -> {ideal_ivl + fudge}"
        )
        return ideal_ivl + fudge
