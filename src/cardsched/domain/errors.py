"""Errors raised by the scheduling core."""


class SchedulerError(Exception):
    """Base class for every scheduler failure."""


class ConfigError(SchedulerError):
    """A deck configuration is missing a field or holds an invalid value."""

    def __init__(self, deck: str, field: str, message: str = "invalid value"):
        self.deck = deck
        self.field = field
        self.message = message
        super().__init__(f"Deck '{deck}': config field '{field}': {message}")


class InvalidStateError(SchedulerError):
    """The requested transition is not valid for the card's current state."""


class StorageError(SchedulerError):
    """The persistent store failed or is unavailable."""


class CardNotFoundError(StorageError):
    def __init__(self, card_id: int):
        self.card_id = card_id
        super().__init__(f"Card {card_id} not found")


class StorageConflictError(StorageError):
    """A uniqueness conflict persisted after every retry."""
