"""
Hierarchical daily-limit accounting.

A deck's daily quota is capped by every ancestor's quota, and a shared
ancestor quota must be consumed exactly once even though each deck beneath
it is counted independently. The same walk serves new and review cards;
what differs is the pair of functions supplied by a LimitStrategy.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from cardsched.domain.models import CounterKind, Deck
from cardsched.domain.ports import Collection

logger = logging.getLogger(__name__)


class LimitStrategy(ABC):
    """
    The two pure functions the walking count is parameterized by.

    Implementations:
        - NewCardLimits: new cards, capped by `new.per_day`.
        - ReviewCardLimits: due review cards, capped by `rev.per_day`.
    """

    def __init__(self, col: Collection, today: int):
        self.col = col
        self.today = today

    @abstractmethod
    def per_deck_limit(self, deck: Deck) -> int:
        """The deck's own quota left for today, never negative."""
        pass

    @abstractmethod
    def count_available(self, did: int, cap: int) -> int:
        """Eligible cards present in the deck itself, capped at `cap`."""
        pass


class NewCardLimits(LimitStrategy):
    def per_deck_limit(self, deck: Deck) -> int:
        conf = self.col.decks.config_for(deck.id)
        done = deck.counter(CounterKind.NEW).current(self.today)
        return max(0, conf.new.per_day - done)

    def count_available(self, did: int, cap: int) -> int:
        return self.col.cards.count_new(did, cap)


class ReviewCardLimits(LimitStrategy):
    def per_deck_limit(self, deck: Deck) -> int:
        conf = self.col.decks.config_for(deck.id)
        done = deck.counter(CounterKind.REVIEW).current(self.today)
        return max(0, conf.rev.per_day - done)

    def count_available(self, did: int, cap: int) -> int:
        return self.col.cards.count_review(did, self.today, cap)


def walking_count(col: Collection, dids: Iterable[int], strategy: LimitStrategy) -> int:
    """
    Count the cards that may still be studied today across `dids`.

    Args:
        col: The collection whose deck tree is walked.
        dids: Decks to count, current deck first, then its descendants.
        strategy: Supplies the per-deck quota and the availability count.

    Returns:
        Total cards available without exceeding any deck's or ancestor's quota.
    """
    total = 0
    remaining: dict[int, int] = {}

    for did in dids:
        # 1. The deck's own quota; an exhausted deck is left out entirely
        limit = strategy.per_deck_limit(col.decks.get(did))
        if limit == 0:
            continue

        # 2. Cap by every ancestor, registering ancestors on first sight
        parents = col.decks.parents(did)
        for parent in parents:
            if parent.id not in remaining:
                remaining[parent.id] = strategy.per_deck_limit(parent)
            limit = min(limit, remaining[parent.id])

        # 3. How many cards are actually there
        count = strategy.count_available(did, limit)

        # 4. Consume from every ancestor; the deck may itself be a later deck's parent
        for parent in parents:
            remaining[parent.id] -= count
        remaining[did] = limit - count

        total += count

    logger.debug(f"Walking count ({type(strategy).__name__}): {total}")
    return total


def cascading_limit(col: Collection, did: int, strategy: LimitStrategy) -> int:
    """Smallest quota along the path from the root down to `did`."""
    decks = col.decks.parents(did) + [col.decks.get(did)]
    return min(strategy.per_deck_limit(deck) for deck in decks)
