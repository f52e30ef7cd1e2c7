"""cardsched: spaced-repetition scheduling engine."""

from cardsched.consts import VERSION

__version__ = VERSION
