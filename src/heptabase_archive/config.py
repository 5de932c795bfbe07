"""Configuration for the Heptabase archive, read from the environment."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from heptabase_archive.errors import ConfigurationError

# Where unpacked archives live unless HEPTABASE_EXTRACTION_PATH says otherwise.
DEFAULT_EXTRACTION_DIR: Path = Path("~/.local/share/heptabase-archive/extracted").expanduser()

# Candidate backup directories, first existing one is used when nothing is configured.
BACKUP_DIRECTORIES: list[Path] = [
    Path("~/Documents/Heptabase-Backup").expanduser(),
    Path("~/Heptabase-Backup").expanduser(),
    Path("~/.local/share/heptabase-archive/backups").expanduser(),
]

DEFAULT_MAX_BACKUPS: int = 10
DEFAULT_CACHE_TTL: int = 3600

# Radius used by the area lookup when the caller gives none.
DEFAULT_AREA_RADIUS: float = 100.0


@dataclass
class ArchiveManagerConfig:
    """Settings for discovering, unpacking and retiring archives."""

    source_dir: Path
    unpack_root: Path = field(default_factory=lambda: DEFAULT_EXTRACTION_DIR)
    auto_unpack: bool = True
    watch: bool = False
    keep_unpacked: bool = True
    max_archives: int | None = None


@dataclass
class HeptabaseConfig:
    """Process-wide settings for the CLI and the MCP server."""

    backup_path: Path | None = None
    auto_extract: bool = True
    watch_directory: bool = False
    extraction_path: Path = field(default_factory=lambda: DEFAULT_EXTRACTION_DIR)
    keep_extracted: bool = True
    max_backups: int | None = DEFAULT_MAX_BACKUPS
    cache_enabled: bool = True
    cache_ttl: int = DEFAULT_CACHE_TTL

    def manager_config(self) -> ArchiveManagerConfig:
        if self.backup_path is None:
            msg = "Backup path is not configured. Set HEPTABASE_BACKUP_PATH."
            raise ConfigurationError(msg)
        return ArchiveManagerConfig(
            source_dir=self.backup_path,
            unpack_root=self.extraction_path,
            auto_unpack=self.auto_extract,
            watch=self.watch_directory,
            keep_unpacked=self.keep_extracted,
            max_archives=self.max_backups,
        )


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring {}={!r}: not an integer", name, value)
        return default


def resolve_backup_directory() -> Path | None:
    """Return the first existing default backup directory, if any."""
    for candidate in BACKUP_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return None


def load_config(environ: Mapping[str, str] | None = None) -> HeptabaseConfig:
    """Build the configuration from HEPTABASE_* environment variables."""
    env = os.environ if environ is None else environ

    backup_env = env.get("HEPTABASE_BACKUP_PATH")
    backup_path = Path(backup_env).expanduser() if backup_env else resolve_backup_directory()
    extraction_env = env.get("HEPTABASE_EXTRACTION_PATH")

    return HeptabaseConfig(
        backup_path=backup_path,
        auto_extract=_env_bool(env, "HEPTABASE_AUTO_EXTRACT", True),
        watch_directory=_env_bool(env, "HEPTABASE_WATCH_DIRECTORY", False),
        extraction_path=(
            Path(extraction_env).expanduser() if extraction_env else DEFAULT_EXTRACTION_DIR
        ),
        keep_extracted=_env_bool(env, "HEPTABASE_KEEP_EXTRACTED", True),
        max_backups=_env_int(env, "HEPTABASE_MAX_BACKUPS", DEFAULT_MAX_BACKUPS),
        cache_enabled=_env_bool(env, "HEPTABASE_CACHE_ENABLED", True),
        cache_ttl=_env_int(env, "HEPTABASE_CACHE_TTL", DEFAULT_CACHE_TTL),
    )
