"""
Typed, immutable deck configuration.

A deck configuration group is validated once when it is loaded from the
store. Core thresholds (step delays, leech threshold, lapse multiplier) have
no defaults: a group missing one of them is rejected with a ConfigError that
names the deck and the field.
"""

import json
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    ValidationError,
    field_validator,
)

from .errors import ConfigError


class NewSpread(str, Enum):
    """Where new cards go relative to reviews."""

    DISTRIBUTE = "distribute"
    LAST = "last"
    FIRST = "first"


class RevOrder(str, Enum):
    """Review batch ordering. DUE batches are shuffled with a per-day seed."""

    DUE = "due"
    OLD_FIRST = "old_first"  # longest interval first
    NEW_FIRST = "new_first"  # shortest interval first


class LeechAction(str, Enum):
    SUSPEND = "suspend"
    TAG_ONLY = "tag_only"


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class NewCardConfig(_FrozenModel):
    delays: list[PositiveFloat] = Field(min_length=1)  # minutes
    ints: tuple[int, int] = (1, 4)  # graduating interval: normal, early
    initial_factor: int = Field(default=2500, ge=1300)
    per_day: int = Field(default=20, ge=0)
    separate: bool = True

    @field_validator("ints")
    @classmethod
    def positive_intervals(cls, v: tuple[int, int]) -> tuple[int, int]:
        if min(v) < 1:
            raise ValueError("graduating intervals must be at least one day")
        return v


class LapseConfig(_FrozenModel):
    delays: list[PositiveFloat]  # minutes, may be empty
    mult: float = Field(ge=0, le=1)
    leech_fails: int = Field(ge=0)
    leech_action: LeechAction = LeechAction.SUSPEND


class ReviewConfig(_FrozenModel):
    per_day: int = Field(default=100, ge=0)
    ease4: float = Field(default=1.3, ge=1.0)
    fuzz: float = Field(default=0.05, ge=0, le=1)
    min_space: int = Field(default=1, ge=0)
    fi: tuple[int, int] = (10, 10)  # forgetting index: target, reference
    order: RevOrder = RevOrder.DUE

    @field_validator("fi")
    @classmethod
    def valid_percentages(cls, v: tuple[int, int]) -> tuple[int, int]:
        if not all(1 <= p <= 99 for p in v):
            raise ValueError("forgetting index percentages must be within 1..99")
        return v


class DeckConfig(_FrozenModel):
    """A configuration group shared by one or more decks."""

    id: int
    name: str = "Default"
    new: NewCardConfig
    lapse: LapseConfig
    rev: ReviewConfig = ReviewConfig()
    max_taken: int = Field(default=60, ge=1)

    @classmethod
    def load(cls, data: dict[str, Any] | str, deck_name: str) -> "DeckConfig":
        """
        Validate raw configuration data for the deck named `deck_name`.

        Args:
            data: A mapping, or its JSON text.
            deck_name: Used only to make errors point at the right deck.

        Raises:
            ConfigError: naming the first invalid or missing field.
        """
        try:
            if isinstance(data, str):
                data = json.loads(data)
            return cls.model_validate(data)
        except json.JSONDecodeError as e:
            raise ConfigError(deck_name, "<root>", f"not valid JSON: {e.msg}") from e
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"]) or "<root>"
            raise ConfigError(deck_name, field, first["msg"]) from e

    def learning_config(self, relearning: bool) -> NewCardConfig | LapseConfig:
        return self.lapse if relearning else self.new
