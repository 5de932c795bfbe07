"""Lifecycle notifications emitted by the archive manager."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from loguru import logger

from heptabase_archive.models.entities import ArchiveMetadata


class ArchiveEventKind(Enum):
    LOAD_STARTED = "load_started"
    LOAD_COMPLETED = "load_completed"
    LOAD_FAILED = "load_failed"
    WATCH_STARTED = "watch_started"
    WATCH_STOPPED = "watch_stopped"
    WATCH_ERROR = "watch_error"
    ARCHIVE_NEW = "archive_new"
    ARCHIVE_CHANGED = "archive_changed"
    ARCHIVE_REMOVED = "archive_removed"
    ARCHIVE_REMOVE_FAILED = "archive_remove_failed"


@dataclass(frozen=True)
class ArchiveEvent:
    """A single notification. Which fields are set depends on ``kind``."""

    kind: ArchiveEventKind
    path: Path | None = None
    metadata: ArchiveMetadata | None = None
    error: BaseException | None = None


ArchiveListener = Callable[[ArchiveEvent], None]


class EventBus:
    """Synchronous fan-out of archive events to registered listeners.

    Listeners may be called from the watch thread. They must return quickly
    and hand heavy work (such as loading a new archive) to another thread or
    task instead of doing it inline.
    """

    def __init__(self) -> None:
        self._listeners: list[ArchiveListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ArchiveListener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ArchiveEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("Archive event {} path={}", event.kind.value, event.path)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on {} event", event.kind.value)
