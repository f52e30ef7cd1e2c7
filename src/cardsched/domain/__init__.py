# Domain Package
from .config import (
    DeckConfig,
    LapseConfig,
    LeechAction,
    NewCardConfig,
    NewSpread,
    ReviewConfig,
    RevOrder,
)
from .errors import (
    CardNotFoundError,
    ConfigError,
    InvalidStateError,
    SchedulerError,
    StorageConflictError,
    StorageError,
)
from .models import (
    Card,
    CardType,
    CounterKind,
    Deck,
    DeckCounters,
    LearnGrade,
    Note,
    Queue,
    ReviewGrade,
    ReviewLogEntry,
    ReviewType,
)
from .state import SchedulerRuntimeState

__all__ = [
    "Card",
    "CardNotFoundError",
    "CardType",
    "ConfigError",
    "CounterKind",
    "Deck",
    "DeckConfig",
    "DeckCounters",
    "InvalidStateError",
    "LapseConfig",
    "LearnGrade",
    "LeechAction",
    "NewCardConfig",
    "NewSpread",
    "Note",
    "Queue",
    "RevOrder",
    "ReviewConfig",
    "ReviewGrade",
    "ReviewLogEntry",
    "ReviewType",
    "SchedulerError",
    "SchedulerRuntimeState",
    "StorageConflictError",
    "StorageError",
]
