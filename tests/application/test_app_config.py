from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from cardsched.application.config import AppConfig, resolve_config
from cardsched.domain.config import NewSpread


@pytest.fixture
def config_file(mock_home):
    path = mock_home / ".config/cardsched/config.toml"
    path.parent.mkdir(parents=True)
    with patch("cardsched.application.config.CONFIG_FILES", [path]):
        yield path


def test_defaults(config_file):
    config = resolve_config()
    assert config.queue_limit == 50
    assert config.report_limit == 1000
    assert config.collapse_time == 1200
    assert config.new_spread == NewSpread.DISTRIBUTE
    assert config.log_retry_attempts == 5


def test_toml_file(config_file):
    config_file.write_text('queue_limit = 10\nnew_spread = "last"\n')
    config = resolve_config()
    assert config.queue_limit == 10
    assert config.new_spread == NewSpread.LAST


def test_env_beats_file(config_file, monkeypatch):
    config_file.write_text("queue_limit = 10\n")
    monkeypatch.setenv("CARDSCHED_QUEUE_LIMIT", "20")
    assert resolve_config().queue_limit == 20


def test_overrides_beat_env_and_skip_none(config_file, monkeypatch):
    monkeypatch.setenv("CARDSCHED_QUEUE_LIMIT", "20")
    config = resolve_config({"queue_limit": 30, "collection_path": None})
    assert config.queue_limit == 30
    assert config.collection_path == AppConfig().collection_path


def test_collection_path_expanded(config_file, mock_home):
    config = resolve_config({"collection_path": "~/decks/main.db"})
    assert config.collection_path == Path(mock_home) / "decks/main.db"


def test_invalid_setting(config_file):
    with pytest.raises(ValidationError):
        resolve_config({"queue_limit": 0})


def test_no_settings_warning_without_file(config_file, recwarn):
    resolve_config()
    assert not [w for w in recwarn if "toml_file" in str(w.message)]
