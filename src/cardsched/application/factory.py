"""
Scheduler Factory
Centralizes how a collection and a study session are opened from settings.
"""

import logging
import random

from cardsched.application.config import AppConfig
from cardsched.application.scheduler import Scheduler
from cardsched.domain.ports import Clock
from cardsched.infrastructure.adapters.system_clock import SystemClock
from cardsched.infrastructure.sqlite.collection import SqliteCollection

logger = logging.getLogger(__name__)


def open_collection(config: AppConfig) -> SqliteCollection:
    """Open (creating if needed) the collection named by the settings."""
    logger.debug(f"Opening collection {config.collection_path}")
    return SqliteCollection(config.collection_path)


def create_scheduler(
    config: AppConfig,
    col: SqliteCollection | None = None,
    clock: Clock | None = None,
    rng: random.Random | None = None,
) -> Scheduler:
    """
    Returns a Scheduler with a fresh session over the configured collection.
    """
    return Scheduler(
        col or open_collection(config),
        clock or SystemClock(),
        config,
        rng=rng,
    )
