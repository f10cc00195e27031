from pathlib import Path

import pytest
from pydantic import ValidationError

from kotoba.application.config import AppConfig, resolve_config
from kotoba.application.factory import build_services, difficulty_params_from_config
from kotoba.infrastructure.adapters.mastery.memory_store import MemoryMasteryStore
from kotoba.infrastructure.adapters.mastery.sqlite_store import SqliteMasteryStore


@pytest.fixture
def no_config_files(monkeypatch):
    monkeypatch.setattr("kotoba.application.config.CONFIG_FILES", [])


def test_defaults(mock_home, no_config_files):
    config = resolve_config()
    assert config.backend == "sqlite"
    assert config.score_threshold == -5
    assert config.min_attempts == 5
    assert config.fail_rate_threshold == 0.4
    assert config.db_path.name == "kotoba.sqlite"


def test_env_overrides(mock_home, no_config_files, monkeypatch):
    monkeypatch.setenv("KOTOBA_BACKEND", "memory")
    monkeypatch.setenv("KOTOBA_SCORE_THRESHOLD", "-8")

    config = resolve_config()

    assert config.backend == "memory"
    assert config.score_threshold == -8


def test_cli_overrides_beat_env_and_drop_none(mock_home, no_config_files, monkeypatch):
    monkeypatch.setenv("KOTOBA_SCORE_THRESHOLD", "-8")

    config = resolve_config({"score_threshold": -2, "min_attempts": None})

    assert config.score_threshold == -2
    assert config.min_attempts == 5


def test_toml_file_is_lowest_priority(mock_home, monkeypatch, tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text('backend = "memory"\nmin_attempts = 9\nscore_threshold = -7\n')
    monkeypatch.setattr("kotoba.application.config.CONFIG_FILES", [cfg])
    monkeypatch.setenv("KOTOBA_SCORE_THRESHOLD", "-3")

    config = resolve_config()

    assert config.backend == "memory"
    assert config.min_attempts == 9
    assert config.score_threshold == -3


def test_paths_are_resolved(mock_home, no_config_files):
    config = resolve_config({"db_path": "~/data/words.sqlite"})
    assert config.db_path == (mock_home / "data/words.sqlite").resolve()
    assert resolve_config({"db_path": ":memory:"}).db_path == Path(":memory:")


def test_invalid_threshold_rejected(mock_home, no_config_files):
    with pytest.raises(ValidationError):
        resolve_config({"fail_rate_threshold": 2.0})


def test_factory_selects_backend(mock_home, no_config_files, tmp_path):
    memory = build_services(resolve_config({"backend": "memory"}))
    assert isinstance(memory.store, MemoryMasteryStore)
    assert memory.database is None

    sqlite = build_services(resolve_config({"db_path": tmp_path / "k.sqlite"}))
    try:
        assert isinstance(sqlite.store, SqliteMasteryStore)
        assert (tmp_path / "k.sqlite").exists()
    finally:
        sqlite.close()


def test_difficulty_params_follow_config():
    config = AppConfig.model_construct(score_threshold=-9, min_attempts=2, fail_rate_threshold=0.5)
    params = difficulty_params_from_config(config)
    assert (params.score_threshold, params.min_attempts, params.fail_rate_threshold) == (-9, 2, 0.5)
