"""Tests for archive filename parsing and discovery."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from heptabase_archive.core.archive import catalog
from heptabase_archive.core.archive.catalog import (
    UNKNOWN_VERSION,
    archive_id_for,
    describe_archive,
    is_archive_name,
    list_archives,
    parse_archive_filename,
)
from heptabase_archive.models.entities import ArchiveMetadata

NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)


def test_parse_full_timestamp_with_millis() -> None:
    info = parse_archive_filename("Heptabase-Data-Backup-2025-05-18T14-49-23-577Z.zip")
    assert info.created_date == datetime(2025, 5, 18, 14, 49, 23, tzinfo=UTC)
    assert info.version == "2025-05-18T14:49:23Z"


def test_parse_timestamp_round_trips_through_version() -> None:
    info = parse_archive_filename("backup-2024-02-29T00-00-01Z.json")
    assert datetime.strptime(info.version, "%Y-%m-%dT%H:%M:%SZ").replace(
        tzinfo=UTC
    ) == info.created_date


def test_parse_bare_date() -> None:
    info = parse_archive_filename("heptabase-2024-03-05.json")
    assert info.created_date == datetime(2024, 3, 5, tzinfo=UTC)
    assert info.version == "2024-03-05"


def test_parse_semantic_version_uses_now() -> None:
    info = parse_archive_filename("heptabase-v1.2.3.zip", now=NOW)
    assert info.created_date == NOW
    assert info.version == "v1.2.3"


def test_parse_unrecognized_name_defaults_to_now() -> None:
    info = parse_archive_filename("my-backup.zip", now=NOW)
    assert info.created_date == NOW
    assert info.version == UNKNOWN_VERSION


def test_invalid_date_digits_fall_through() -> None:
    info = parse_archive_filename("backup-2024-13-45T00-00-00Z.zip", now=NOW)
    assert info.created_date == NOW
    assert info.version == UNKNOWN_VERSION


def test_archive_names_and_ids() -> None:
    assert is_archive_name("a.zip")
    assert is_archive_name("a.json")
    assert not is_archive_name("a.txt")
    assert archive_id_for(Path("/x/Heptabase-2024-01-01.zip")) == "Heptabase-2024-01-01"


def test_describe_archive(tmp_path: Path) -> None:
    path = tmp_path / "Heptabase-2024-01-01.zip"
    path.write_bytes(b"12345")
    meta = describe_archive(path)
    assert meta.archive_id == "Heptabase-2024-01-01"
    assert meta.file_size == 5
    assert meta.is_compressed
    assert meta.unpacked_path is None
    assert meta.path.is_absolute()


def test_list_archives_newest_first_and_filtered(tmp_path: Path) -> None:
    (tmp_path / "b-2024-01-01.zip").write_bytes(b"x")
    (tmp_path / "a-2024-06-01.json").write_text("{}")
    (tmp_path / "c-2024-03-01.zip").write_bytes(b"x")
    (tmp_path / "readme.txt").write_text("ignore me")
    (tmp_path / "folder.zip").mkdir()

    archives = list_archives(tmp_path)
    assert [a.archive_id for a in archives] == ["a-2024-06-01", "c-2024-03-01", "b-2024-01-01"]
    assert [a.is_compressed for a in archives] == [False, True, True]


def test_list_archives_equal_dates_keep_name_order(tmp_path: Path) -> None:
    (tmp_path / "b.zip").write_bytes(b"x")
    (tmp_path / "a.zip").write_bytes(b"x")
    archives = list_archives(tmp_path, now=NOW)
    assert [a.archive_id for a in archives] == ["a", "b"]
    assert all(a.created_date == NOW for a in archives)


def test_list_archives_empty_directory(tmp_path: Path) -> None:
    assert list_archives(tmp_path) == []


def test_list_archives_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        list_archives(tmp_path / "missing")


def test_list_archives_skips_files_that_cannot_be_described(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "a-2024-01-01.zip").write_bytes(b"x")
    (tmp_path / "b-2024-02-01.zip").write_bytes(b"x")
    (tmp_path / "c-2024-03-01.zip").write_bytes(b"x")

    def describe(path: Path, *, now: datetime | None = None) -> ArchiveMetadata:
        if path.name == "b-2024-02-01.zip":
            raise PermissionError(f"cannot stat {path}")
        return describe_archive(path, now=now)

    monkeypatch.setattr(catalog, "describe_archive", describe)

    archives = list_archives(tmp_path)
    assert [a.archive_id for a in archives] == ["c-2024-03-01", "a-2024-01-01"]
