"""Tests for the archive manager: loading, events, retention and watching."""

from pathlib import Path

import pytest
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from heptabase_archive.config import ArchiveManagerConfig
from heptabase_archive.core.archive.events import ArchiveEvent, ArchiveEventKind, EventBus
from heptabase_archive.core.archive.manager import ArchiveEventHandler, ArchiveManager
from heptabase_archive.errors import ConfigurationError, ExtractionError, NotFoundError
from tests.unit.fakes import EventRecorder, write_zip
from tests.unit.samples import NEWER_BACKUP, OLDER_BACKUP


def _manager(source: Path, tmp_path: Path, **overrides: object) -> ArchiveManager:
    config = ArchiveManagerConfig(source_dir=source, unpack_root=tmp_path / "unpacked")
    for key, value in overrides.items():
        setattr(config, key, value)
    return ArchiveManager(config)


def test_load_unpacks_registers_and_notifies(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path)
    recorder = EventRecorder()
    manager.subscribe(recorder)

    meta = manager.load(backup_dir / f"{NEWER_BACKUP}.zip")

    assert meta.archive_id == NEWER_BACKUP
    assert meta.unpacked_path == tmp_path / "unpacked" / NEWER_BACKUP
    assert (meta.unpacked_path / "All-Data.json").is_file()
    assert manager.loaded == {NEWER_BACKUP: meta}
    assert recorder.kinds == [ArchiveEventKind.LOAD_STARTED, ArchiveEventKind.LOAD_COMPLETED]
    assert recorder.events[-1].metadata == meta
    assert manager.data_location(meta) == meta.unpacked_path


def test_failed_load_emits_failure_and_leaves_registry(backup_dir: Path, tmp_path: Path) -> None:
    broken = backup_dir / "broken-2024-07-01.zip"
    broken.write_bytes(b"not a zip")
    manager = _manager(backup_dir, tmp_path)
    recorder = EventRecorder()
    manager.subscribe(recorder)

    with pytest.raises(ExtractionError):
        manager.load(broken)

    assert manager.loaded == {}
    assert recorder.kinds == [ArchiveEventKind.LOAD_STARTED, ArchiveEventKind.LOAD_FAILED]
    assert isinstance(recorder.events[-1].error, ExtractionError)


def test_load_missing_file_fails(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path)
    with pytest.raises(FileNotFoundError):
        manager.load(backup_dir / "nope.zip")


def test_load_without_auto_unpack(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path, auto_unpack=False)
    meta = manager.load(backup_dir / f"{NEWER_BACKUP}.zip")

    assert meta.unpacked_path is None
    assert not (tmp_path / "unpacked").exists()
    with pytest.raises(ConfigurationError):
        manager.data_location(meta)


def test_plain_json_archive_is_its_own_data_location(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    plain = source / "export-2024-01-01.json"
    plain.write_text("{}")
    manager = _manager(source, tmp_path)

    meta = manager.load(plain)
    assert not meta.is_compressed
    assert manager.data_location(meta) == plain.resolve()


def test_list_archives_notes_existing_unpacked_copies(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path)
    (tmp_path / "unpacked" / OLDER_BACKUP).mkdir(parents=True)

    archives = manager.list_archives()
    assert [a.archive_id for a in archives] == [NEWER_BACKUP, OLDER_BACKUP]
    assert archives[0].unpacked_path is None
    assert archives[1].unpacked_path == tmp_path / "unpacked" / OLDER_BACKUP


def test_resolve_archive(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path)

    assert manager.resolve_archive(archive_id=OLDER_BACKUP).name == f"{OLDER_BACKUP}.zip"
    assert manager.resolve_archive(archive_path="x/y.zip") == Path("x/y.zip")
    with pytest.raises(NotFoundError):
        manager.resolve_archive(archive_id="does-not-exist")
    with pytest.raises(ConfigurationError):
        manager.resolve_archive()


def test_latest(backup_dir: Path, tmp_path: Path) -> None:
    manager = _manager(backup_dir, tmp_path)
    latest = manager.latest()
    assert latest is not None
    assert latest.archive_id == NEWER_BACKUP


def _populate(source: Path, count: int) -> list[str]:
    names = []
    for day in range(1, count + 1):
        name = f"backup-2024-01-{day:02d}"
        write_zip(source / f"{name}.zip", {"All-Data.json": {}})
        names.append(name)
    return names


def test_cleanup_removes_oldest_beyond_limit(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    names = _populate(source, 5)
    manager = _manager(source, tmp_path, max_archives=2, keep_unpacked=False)
    for name in names:
        manager.load(source / f"{name}.zip")
    recorder = EventRecorder()
    manager.subscribe(recorder)

    removed = manager.cleanup_old_archives()

    assert sorted(r.archive_id for r in removed) == names[:3]
    assert sorted(p.stem for p in source.iterdir()) == names[3:]
    for name in names[:3]:
        assert not (tmp_path / "unpacked" / name).exists()
    assert set(manager.loaded) == set(names[3:])
    assert recorder.kinds == [ArchiveEventKind.ARCHIVE_REMOVED] * 3


def test_cleanup_keeps_unpacked_copies_by_default(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    names = _populate(source, 3)
    manager = _manager(source, tmp_path, max_archives=1)
    for name in names:
        manager.load(source / f"{name}.zip")

    manager.cleanup_old_archives()

    assert [p.stem for p in source.iterdir()] == [names[2]]
    for name in names:
        assert (tmp_path / "unpacked" / name).is_dir()


def test_cleanup_failure_does_not_stop_the_batch(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = tmp_path / "src"
    source.mkdir()
    names = _populate(source, 4)
    stuck = f"{names[1]}.zip"
    real_unlink = Path.unlink

    def unlink(self: Path, missing_ok: bool = False) -> None:
        if self.name == stuck:
            raise PermissionError(f"locked: {self}")
        real_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", unlink)
    manager = _manager(source, tmp_path, max_archives=1)
    recorder = EventRecorder()
    manager.subscribe(recorder)

    removed = manager.cleanup_old_archives()

    assert [r.archive_id for r in removed] == [names[2], names[0]]
    assert sorted(p.stem for p in source.iterdir()) == [names[1], names[3]]
    assert recorder.kinds == [
        ArchiveEventKind.ARCHIVE_REMOVED,
        ArchiveEventKind.ARCHIVE_REMOVE_FAILED,
        ArchiveEventKind.ARCHIVE_REMOVED,
    ]
    failed = recorder.of_kind(ArchiveEventKind.ARCHIVE_REMOVE_FAILED)[0]
    assert failed.metadata is not None
    assert failed.metadata.archive_id == names[1]
    assert isinstance(failed.error, PermissionError)


def test_cleanup_without_limit_or_under_limit(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    _populate(source, 3)

    assert _manager(source, tmp_path).cleanup_old_archives() == []
    assert _manager(source, tmp_path, max_archives=3).cleanup_old_archives() == []
    assert len(list(source.iterdir())) == 3


def test_watch_is_idempotent_and_unwatch_stops(tmp_path: Path) -> None:
    manager = _manager(tmp_path, tmp_path)
    recorder = EventRecorder()
    manager.subscribe(recorder)

    manager.watch()
    manager.watch()
    assert manager.watching
    assert recorder.kinds == [ArchiveEventKind.WATCH_STARTED]

    manager.unwatch()
    manager.unwatch()
    assert not manager.watching
    assert recorder.kinds == [ArchiveEventKind.WATCH_STARTED, ArchiveEventKind.WATCH_STOPPED]


def test_watch_missing_directory_reports_error(tmp_path: Path) -> None:
    manager = _manager(tmp_path / "missing", tmp_path)
    recorder = EventRecorder()
    manager.subscribe(recorder)

    with pytest.raises(OSError):
        manager.watch()
    assert not manager.watching
    assert recorder.kinds == [ArchiveEventKind.WATCH_ERROR]
    assert isinstance(recorder.events[0].error, OSError)


def test_event_handler_filters_paths(tmp_path: Path) -> None:
    bus = EventBus()
    recorder = EventRecorder()
    bus.subscribe(recorder)
    handler = ArchiveEventHandler(bus)

    handler.on_created(FileCreatedEvent(str(tmp_path / "new-2024-01-01.zip")))
    handler.on_created(FileCreatedEvent(str(tmp_path / ".hidden.zip")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "notes.txt")))
    handler.on_modified(FileModifiedEvent(str(tmp_path / "new-2024-01-01.zip")))
    handler.on_moved(
        FileMovedEvent(str(tmp_path / "download.tmp"), str(tmp_path / "moved.json"))
    )

    assert recorder.kinds == [
        ArchiveEventKind.ARCHIVE_NEW,
        ArchiveEventKind.ARCHIVE_CHANGED,
        ArchiveEventKind.ARCHIVE_NEW,
    ]
    assert [e.path.name for e in recorder.events if e.path] == [
        "new-2024-01-01.zip",
        "new-2024-01-01.zip",
        "moved.json",
    ]


def test_failing_listener_does_not_block_others() -> None:
    bus = EventBus()
    recorder = EventRecorder()

    def explode(_event: ArchiveEvent) -> None:
        raise RuntimeError("boom")

    bus.subscribe(explode)
    bus.subscribe(recorder)
    bus.emit(ArchiveEvent(kind=ArchiveEventKind.ARCHIVE_NEW))

    assert recorder.kinds == [ArchiveEventKind.ARCHIVE_NEW]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    recorder = EventRecorder()
    unsubscribe = bus.subscribe(recorder)

    bus.emit(ArchiveEvent(kind=ArchiveEventKind.WATCH_STARTED))
    unsubscribe()
    bus.emit(ArchiveEvent(kind=ArchiveEventKind.WATCH_STOPPED))

    assert recorder.kinds == [ArchiveEventKind.WATCH_STARTED]
