"""Heptabase backup archive manager and in-memory graph queries."""

from heptabase_archive.config import ArchiveManagerConfig, HeptabaseConfig, load_config
from heptabase_archive.core.archive.manager import ArchiveManager
from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.store.store import EntityStore

__all__ = [
    "ArchiveManager",
    "ArchiveManagerConfig",
    "EntityStore",
    "HeptabaseConfig",
    "QueryEngine",
    "load_config",
]
