"""Archive lifecycle: listing, loading, watching and retention cleanup."""

import shutil
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from heptabase_archive.config import ArchiveManagerConfig
from heptabase_archive.core.archive.catalog import (
    archive_id_for,
    describe_archive,
    is_archive_name,
    list_archives,
)
from heptabase_archive.core.archive.events import (
    ArchiveEvent,
    ArchiveEventKind,
    ArchiveListener,
    EventBus,
)
from heptabase_archive.core.archive.unpacker import ensure_unpacked
from heptabase_archive.errors import ConfigurationError, NotFoundError
from heptabase_archive.models.entities import ArchiveMetadata


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


class ArchiveEventHandler(FileSystemEventHandler):
    """Translate watchdog events on the source directory into archive events."""

    def __init__(self, bus: EventBus) -> None:
        super().__init__()
        self.bus = bus

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, ArchiveEventKind.ARCHIVE_NEW, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event.dest_path, ArchiveEventKind.ARCHIVE_NEW, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, ArchiveEventKind.ARCHIVE_CHANGED, event.is_directory)

    def _handle(self, raw_path: str | bytes, kind: ArchiveEventKind, is_directory: bool) -> None:
        if is_directory:
            return
        path = Path(raw_path.decode() if isinstance(raw_path, bytes) else raw_path)
        if _is_hidden(Path(path.name)) or not is_archive_name(path.name):
            return
        self.bus.emit(ArchiveEvent(kind=kind, path=path))


class ArchiveManager:
    """Discover, unpack, watch and retire archives in one source directory.

    Keeps a registry of the archives loaded by this process. Registered
    metadata is only dropped when retention cleanup deletes the archive.
    """

    def __init__(self, config: ArchiveManagerConfig, *, bus: EventBus | None = None) -> None:
        self.config = config
        self.bus = bus or EventBus()
        self._registry: dict[str, ArchiveMetadata] = {}
        self._observer: BaseObserver | None = None
        self._watch_lock = threading.Lock()

    # --- Notifications ---

    def subscribe(self, listener: ArchiveListener) -> Callable[[], None]:
        """Register a lifecycle listener; returns an unsubscribe callable."""
        return self.bus.subscribe(listener)

    def _emit(
        self,
        kind: ArchiveEventKind,
        *,
        path: Path | None = None,
        metadata: ArchiveMetadata | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.bus.emit(ArchiveEvent(kind=kind, path=path, metadata=metadata, error=error))

    # --- Listing and lookup ---

    def unpack_target(self, archive_path: Path) -> Path:
        """Deterministic unpack directory: the archive name without extension."""
        return self.config.unpack_root / archive_id_for(archive_path)

    def list_archives(
        self, directory: Path | None = None, *, now: datetime | None = None
    ) -> list[ArchiveMetadata]:
        """List archives newest first, noting unpacked copies that already exist."""
        archives = list_archives(directory or self.config.source_dir, now=now)
        result = []
        for archive in archives:
            if archive.is_compressed:
                target = self.unpack_target(archive.path)
                if target.is_dir():
                    archive = replace(archive, unpacked_path=target)
            result.append(archive)
        return result

    @property
    def loaded(self) -> dict[str, ArchiveMetadata]:
        return dict(self._registry)

    def get_metadata(self, archive_id: str) -> ArchiveMetadata | None:
        """Return registered metadata, falling back to one catalog scan."""
        if archive_id in self._registry:
            return self._registry[archive_id]
        for archive in self.list_archives():
            if archive.archive_id == archive_id:
                return archive
        return None

    def resolve_archive(
        self, *, archive_path: Path | str | None = None, archive_id: str | None = None
    ) -> Path:
        """Turn a load request (by path or by id) into an archive path."""
        if archive_id:
            metadata = self.get_metadata(archive_id)
            if metadata is None:
                raise NotFoundError("Archive", archive_id)
            return metadata.path
        if archive_path:
            return Path(archive_path)
        msg = "Either an archive path or an archive id must be provided."
        raise ConfigurationError(msg)

    def latest(self) -> ArchiveMetadata | None:
        archives = self.list_archives()
        return archives[0] if archives else None

    # --- Loading ---

    def load(self, archive_path: Path | str) -> ArchiveMetadata:
        """Describe an archive, unpack it when configured, and register it.

        Emits LOAD_STARTED, then LOAD_COMPLETED or LOAD_FAILED. On failure
        the registry is left unchanged and the error propagates.
        """
        path = Path(archive_path)
        self._emit(ArchiveEventKind.LOAD_STARTED, path=path)
        try:
            metadata = describe_archive(path)
            if metadata.is_compressed:
                target = self.unpack_target(path)
                if self.config.auto_unpack:
                    ensure_unpacked(metadata.path, target)
                if target.is_dir():
                    metadata = replace(metadata, unpacked_path=target)
        except Exception as e:
            logger.warning("Failed to load archive {}: {}", path, e)
            self._emit(ArchiveEventKind.LOAD_FAILED, path=path, error=e)
            raise

        self._registry[metadata.archive_id] = metadata
        logger.info("Loaded archive {}", metadata.archive_id)
        self._emit(ArchiveEventKind.LOAD_COMPLETED, path=path, metadata=metadata)
        return metadata

    def data_location(self, metadata: ArchiveMetadata) -> Path:
        """Where the entity store should read this archive from."""
        if metadata.unpacked_path is not None:
            return metadata.unpacked_path
        if not metadata.is_compressed:
            return metadata.path
        msg = (
            f"Archive '{metadata.archive_id}' is not unpacked and auto-unpack is disabled."
        )
        raise ConfigurationError(msg)

    # --- Watching ---

    @property
    def watching(self) -> bool:
        return self._observer is not None

    def watch(self) -> None:
        """Start watching the source directory. A second call is a no-op."""
        with self._watch_lock:
            if self._observer is not None:
                return
            observer = Observer()
            try:
                observer.schedule(
                    ArchiveEventHandler(self.bus), str(self.config.source_dir), recursive=False
                )
                observer.start()
            except Exception as e:
                logger.warning("Cannot watch {}: {}", self.config.source_dir, e)
                self._emit(ArchiveEventKind.WATCH_ERROR, path=self.config.source_dir, error=e)
                raise
            self._observer = observer
        logger.info("Watching {} for new archives", self.config.source_dir)
        self._emit(ArchiveEventKind.WATCH_STARTED, path=self.config.source_dir)

    def unwatch(self) -> None:
        """Stop watching and release the observer thread."""
        with self._watch_lock:
            observer = self._observer
            if observer is None:
                return
            self._observer = None
            observer.stop()
            observer.join(timeout=5)
        self._emit(ArchiveEventKind.WATCH_STOPPED, path=self.config.source_dir)

    # --- Retention ---

    def cleanup_old_archives(self) -> list[ArchiveMetadata]:
        """Delete the oldest archives beyond the configured retention count.

        Each deletion is isolated: a failure emits ARCHIVE_REMOVE_FAILED and
        the remaining archives are still processed.

        Returns:
            Metadata of the archives that were removed.
        """
        limit = self.config.max_archives
        if not limit:
            return []

        archives = self.list_archives()
        if len(archives) <= limit:
            return []

        removed: list[ArchiveMetadata] = []
        for archive in archives[limit:]:
            try:
                archive.path.unlink(missing_ok=True)
                if archive.unpacked_path is not None and not self.config.keep_unpacked:
                    shutil.rmtree(archive.unpacked_path)
            except OSError as e:
                logger.warning("Failed to remove archive {}: {}", archive.archive_id, e)
                self._emit(
                    ArchiveEventKind.ARCHIVE_REMOVE_FAILED,
                    path=archive.path,
                    metadata=archive,
                    error=e,
                )
                continue
            self._registry.pop(archive.archive_id, None)
            removed.append(archive)
            logger.info("Removed old archive {}", archive.archive_id)
            self._emit(ArchiveEventKind.ARCHIVE_REMOVED, path=archive.path, metadata=archive)
        return removed

