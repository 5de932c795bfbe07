"""Discover archive files and derive their metadata from filenames."""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from heptabase_archive.models.entities import ArchiveMetadata

COMPRESSED_SUFFIX = ".zip"
PLAIN_SUFFIX = ".json"
ARCHIVE_SUFFIXES = (COMPRESSED_SUFFIX, PLAIN_SUFFIX)

UNKNOWN_VERSION = "unknown"

# Heptabase-Data-Backup-2025-05-18T14-49-23-577Z
_DATETIME_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})(?:-\d{3})?Z?")
_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_VERSION_RE = re.compile(r"v(\d+\.\d+\.\d+)")


@dataclass(frozen=True)
class FilenameInfo:
    created_date: datetime
    version: str


def is_archive_name(name: str) -> bool:
    return name.endswith(ARCHIVE_SUFFIXES)


def archive_id_for(path: Path) -> str:
    """The archive id is the filename without its final extension."""
    return path.stem


def parse_archive_filename(file_name: str, *, now: datetime | None = None) -> FilenameInfo:
    """Derive a creation date and version string from an archive filename.

    Tries a full date-time stamp, then a bare date, then a semantic version.
    Digits that do not form a valid date fall through to the next pattern.
    Without any match the date is ``now`` and the version is "unknown".
    """
    match = _DATETIME_RE.search(file_name)
    if match:
        year, month, day, hour, minute, second = (int(g) for g in match.groups())
        try:
            created = datetime(year, month, day, hour, minute, second, tzinfo=UTC)
        except ValueError:
            pass
        else:
            return FilenameInfo(created, created.strftime("%Y-%m-%dT%H:%M:%SZ"))

    match = _DATE_RE.search(file_name)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            created = datetime(year, month, day, tzinfo=UTC)
        except ValueError:
            pass
        else:
            return FilenameInfo(created, created.strftime("%Y-%m-%d"))

    current = now or datetime.now(tz=UTC)
    match = _VERSION_RE.search(file_name)
    if match:
        return FilenameInfo(current, match.group(0))

    return FilenameInfo(current, UNKNOWN_VERSION)


def describe_archive(path: Path, *, now: datetime | None = None) -> ArchiveMetadata:
    """Build metadata for a single archive file. Raises OSError if it cannot be stat'ed."""
    size = path.stat().st_size
    info = parse_archive_filename(path.name, now=now)
    return ArchiveMetadata(
        archive_id=archive_id_for(path),
        path=path.resolve(),
        created_date=info.created_date,
        file_size=size,
        is_compressed=path.name.endswith(COMPRESSED_SUFFIX),
        version=info.version,
    )


def list_archives(directory: Path, *, now: datetime | None = None) -> list[ArchiveMetadata]:
    """List archives in ``directory`` (non-recursive), newest first.

    Raises OSError when the directory itself cannot be read. Files whose
    size probe fails are skipped.
    """
    current = now or datetime.now(tz=UTC)
    entries = sorted(directory.iterdir(), key=lambda p: p.name)

    archives: list[ArchiveMetadata] = []
    for path in entries:
        if not is_archive_name(path.name):
            continue
        try:
            if not path.is_file():
                continue
            archives.append(describe_archive(path, now=current))
        except OSError as e:
            logger.debug("Skipping {}: {}", path.name, e)

    # sorted() is stable, so equal dates keep filename order.
    return sorted(archives, key=lambda a: a.created_date, reverse=True)
