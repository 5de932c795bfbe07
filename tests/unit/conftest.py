"""Shared test fixtures."""

import json
from collections.abc import Iterator
from pathlib import Path

import pytest

from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.store.store import EntityStore
from tests.unit.fakes import write_zip
from tests.unit.samples import EXPORT_DATA, NEWER_BACKUP, OLDER_BACKUP, OLDER_EXPORT_DATA


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep tests away from the real HEPTABASE_* settings and home directory."""
    for name in (
        "HEPTABASE_BACKUP_PATH",
        "HEPTABASE_AUTO_EXTRACT",
        "HEPTABASE_WATCH_DIRECTORY",
        "HEPTABASE_KEEP_EXTRACTED",
        "HEPTABASE_MAX_BACKUPS",
        "HEPTABASE_CACHE_ENABLED",
        "HEPTABASE_CACHE_TTL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HEPTABASE_EXTRACTION_PATH", str(tmp_path / "extracted"))
    yield


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    """An unpacked export directory holding All-Data.json."""
    directory = tmp_path / "export"
    directory.mkdir()
    (directory / "All-Data.json").write_text(json.dumps(EXPORT_DATA))
    return directory


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    """A backup directory with an older and a newer zip backup."""
    directory = tmp_path / "backups"
    directory.mkdir()
    write_zip(directory / f"{OLDER_BACKUP}.zip", {"All-Data.json": OLDER_EXPORT_DATA})
    write_zip(directory / f"{NEWER_BACKUP}.zip", {"All-Data.json": EXPORT_DATA})
    (directory / "notes.txt").write_text("not a backup")
    return directory


@pytest.fixture
def store(export_dir: Path) -> EntityStore:
    store = EntityStore()
    store.load(export_dir)
    return store


@pytest.fixture
def engine(store: EntityStore) -> QueryEngine:
    return QueryEngine(store)
