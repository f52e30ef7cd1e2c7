from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cardsched.domain.config import NewSpread
from cardsched.domain.constants import (
    COLLAPSE_TIME,
    LOG_RETRY_ATTEMPTS,
    LOG_RETRY_DELAY,
    QUEUE_LIMIT,
    REPORT_LIMIT,
)

CONFIG_FILES = [
    Path.home() / ".config/cardsched/config.toml",
    Path.home() / ".cardsched.toml",
]


class AppConfig(BaseSettings):
    """
    Scheduler settings.
    Supports loading from:
    1. Config file (~/.config/cardsched/config.toml)
    2. Environment variables (CARDSCHED_*)
    3. Manual overrides (CLI, server)
    """

    model_config = SettingsConfigDict(
        env_prefix="CARDSCHED_",
        extra="ignore",
    )

    # Paths
    collection_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/cardsched/collection.db"
    )

    # Queues
    queue_limit: int = Field(default=QUEUE_LIMIT, ge=1)
    report_limit: int = Field(default=REPORT_LIMIT, ge=1)
    collapse_time: int = Field(default=COLLAPSE_TIME, ge=0)
    new_spread: NewSpread = NewSpread.DISTRIBUTE

    # Review log
    log_retry_attempts: int = Field(default=LOG_RETRY_ATTEMPTS, ge=1)
    log_retry_delay: float = Field(default=LOG_RETRY_DELAY, ge=0)

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        # First existing file wins
        toml_file = next((f for f in CONFIG_FILES if f.exists()), None)

        # Earlier sources take priority
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (
            init_settings,
            env_settings,
        )

    @field_validator("collection_path", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path:
        return Path(v).expanduser()


def resolve_config(overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/cardsched/config.toml (if exists)
    3. Environment variables (CARDSCHED_*)
    4. overrides (passed from Typer or the server)
    """
    # Typer hands us every option; unset ones arrive as None
    cleaned = {k: v for k, v in (overrides or {}).items() if v is not None}
    return AppConfig(**cleaned)
