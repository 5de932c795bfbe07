"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from heptabase_archive.config import (
    DEFAULT_CACHE_TTL,
    DEFAULT_EXTRACTION_DIR,
    DEFAULT_MAX_BACKUPS,
    HeptabaseConfig,
    load_config,
)
from heptabase_archive.errors import ConfigurationError


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("heptabase_archive.config.BACKUP_DIRECTORIES", [])
    config = load_config({})

    assert config.backup_path is None
    assert config.auto_extract is True
    assert config.watch_directory is False
    assert config.keep_extracted is True
    assert config.extraction_path == DEFAULT_EXTRACTION_DIR
    assert config.max_backups == DEFAULT_MAX_BACKUPS
    assert config.cache_enabled is True
    assert config.cache_ttl == DEFAULT_CACHE_TTL


def test_environment_overrides(tmp_path: Path) -> None:
    config = load_config(
        {
            "HEPTABASE_BACKUP_PATH": str(tmp_path),
            "HEPTABASE_EXTRACTION_PATH": str(tmp_path / "x"),
            "HEPTABASE_AUTO_EXTRACT": "false",
            "HEPTABASE_WATCH_DIRECTORY": "TRUE",
            "HEPTABASE_KEEP_EXTRACTED": "no",
            "HEPTABASE_MAX_BACKUPS": "3",
            "HEPTABASE_CACHE_ENABLED": "false",
            "HEPTABASE_CACHE_TTL": "60",
        }
    )
    assert config.backup_path == tmp_path
    assert config.extraction_path == tmp_path / "x"
    assert config.auto_extract is False
    assert config.watch_directory is True
    assert config.keep_extracted is False
    assert config.max_backups == 3
    assert config.cache_enabled is False
    assert config.cache_ttl == 60


def test_bad_integer_keeps_default() -> None:
    config = load_config({"HEPTABASE_MAX_BACKUPS": "lots", "HEPTABASE_CACHE_TTL": ""})
    assert config.max_backups == DEFAULT_MAX_BACKUPS
    assert config.cache_ttl == DEFAULT_CACHE_TTL


def test_first_existing_default_directory_is_used(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    existing = tmp_path / "second"
    existing.mkdir()
    monkeypatch.setattr(
        "heptabase_archive.config.BACKUP_DIRECTORIES", [tmp_path / "first", existing]
    )
    assert load_config({}).backup_path == existing


def test_manager_config_mapping(tmp_path: Path) -> None:
    config = HeptabaseConfig(
        backup_path=tmp_path, extraction_path=tmp_path / "x", max_backups=2, keep_extracted=False
    )
    manager_config = config.manager_config()
    assert manager_config.source_dir == tmp_path
    assert manager_config.unpack_root == tmp_path / "x"
    assert manager_config.max_archives == 2
    assert manager_config.keep_unpacked is False


def test_manager_config_requires_backup_path() -> None:
    with pytest.raises(ConfigurationError):
        HeptabaseConfig().manager_config()
