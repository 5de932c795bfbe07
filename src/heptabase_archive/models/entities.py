"""Domain models for the Heptabase archive.

Raw export records use the application's camelCase keys; ``from_record``
maps them onto these snake_case dataclasses. Whiteboards are called boards
here and card instances are called placements.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from heptabase_archive.errors import MalformedDataError


def _require_id(record: Any, kind: str) -> str:
    if not isinstance(record, dict):
        msg = f"Expected a {kind} object, got {type(record).__name__}"
        raise MalformedDataError(msg)
    record_id = record.get("id")
    if not isinstance(record_id, str) or not record_id:
        msg = f"{kind.capitalize()} record without an id: {repr(record)[:80]}"
        raise MalformedDataError(msg)
    return record_id


def _text(value: Any) -> str:
    """Coerce a scalar field to str; missing or empty values become ""."""
    if value is None or value == "":
        return ""
    return value if isinstance(value, str) else str(value)


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None when it cannot be read."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Board:
    """A whiteboard: the canvas hosting placements and connections."""

    id: str
    name: str
    created_by: str = ""
    created_time: str = ""
    last_edited_time: str = ""
    space_id: str = ""
    is_trashed: bool = False

    @classmethod
    def from_record(cls, record: Any) -> "Board":
        return cls(
            id=_require_id(record, "board"),
            name=_text(record.get("name")),
            created_by=_text(record.get("createdBy")),
            created_time=_text(record.get("createdTime")),
            last_edited_time=_text(record.get("lastEditedTime")),
            space_id=_text(record.get("spaceId")),
            is_trashed=bool(record.get("isTrashed", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Card:
    """A card. ``content`` is the serialized rich document, kept opaque here."""

    id: str
    title: str | None
    content: str
    created_by: str = ""
    created_time: str = ""
    last_edited_time: str = ""
    space_id: str = ""
    is_trashed: bool = False

    @classmethod
    def from_record(cls, record: Any) -> "Card":
        content = record.get("content") if isinstance(record, dict) else None
        return cls(
            id=_require_id(record, "card"),
            title=None if record.get("title") is None else _text(record["title"]),
            content=content if isinstance(content, str) else "",
            created_by=_text(record.get("createdBy")),
            created_time=_text(record.get("createdTime")),
            last_edited_time=_text(record.get("lastEditedTime")),
            space_id=_text(record.get("spaceId")),
            is_trashed=bool(record.get("isTrashed", False)),
        )

    @property
    def display_title(self) -> str:
        return self.title or "Untitled"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Placement:
    """One instance of a card positioned on a board."""

    id: str
    card_id: str
    board_id: str
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    color: str = ""
    created_by: str = ""
    created_time: str = ""
    last_edited_time: str = ""

    @classmethod
    def from_record(cls, record: Any) -> "Placement":
        return cls(
            id=_require_id(record, "placement"),
            card_id=_text(record.get("cardId")),
            board_id=_text(record.get("whiteboardId")),
            x=_float(record.get("x")),
            y=_float(record.get("y")),
            width=_float(record.get("width")),
            height=_float(record.get("height")),
            color=_text(record.get("color")),
            created_by=_text(record.get("createdBy")),
            created_time=_text(record.get("createdTime")),
            last_edited_time=_text(record.get("lastEditedTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Connection:
    """A link between two objects (usually placements) on a board."""

    id: str
    board_id: str
    begin_id: str
    end_id: str
    begin_object_type: str = ""
    end_object_type: str = ""
    color: str = ""
    line_style: str = ""
    type: str = ""
    created_by: str = ""
    created_time: str = ""

    @classmethod
    def from_record(cls, record: Any) -> "Connection":
        return cls(
            id=_require_id(record, "connection"),
            board_id=_text(record.get("whiteboardId")),
            begin_id=_text(record.get("beginId")),
            end_id=_text(record.get("endId")),
            begin_object_type=_text(record.get("beginObjectType")),
            end_object_type=_text(record.get("endObjectType")),
            color=_text(record.get("color")),
            line_style=_text(record.get("lineStyle")),
            type=_text(record.get("type")),
            created_by=_text(record.get("createdBy")),
            created_time=_text(record.get("createdTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ArchiveMetadata:
    """A discovered or loaded archive file."""

    archive_id: str
    path: Path
    created_date: datetime
    file_size: int
    is_compressed: bool
    unpacked_path: Path | None = None
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "archive_id": self.archive_id,
            "path": str(self.path),
            "created_date": self.created_date.isoformat(),
            "file_size": self.file_size,
            "is_compressed": self.is_compressed,
            "unpacked_path": str(self.unpacked_path) if self.unpacked_path else None,
            "version": self.version,
        }


@dataclass(frozen=True)
class Dataset:
    """The four id-keyed entity tables of one loaded archive."""

    boards: dict[str, Board] = field(default_factory=dict)
    cards: dict[str, Card] = field(default_factory=dict)
    placements: dict[str, Placement] = field(default_factory=dict)
    connections: dict[str, Connection] = field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        return {
            "boards": len(self.boards),
            "cards": len(self.cards),
            "placements": len(self.placements),
            "connections": len(self.connections),
        }


@dataclass(frozen=True)
class DateRange:
    """Inclusive creation-time range. Naive datetimes are taken as UTC."""

    start: datetime
    end: datetime

    def contains(self, value: datetime) -> bool:
        start = self.start if self.start.tzinfo else self.start.replace(tzinfo=UTC)
        end = self.end if self.end.tzinfo else self.end.replace(tzinfo=UTC)
        return start <= value <= end


@dataclass(frozen=True)
class BoardQuery:
    query: str | None = None
    date_range: DateRange | None = None


@dataclass(frozen=True)
class CardQuery:
    query: str | None = None
    board_id: str | None = None
    date_range: DateRange | None = None


@dataclass(frozen=True)
class BoardView:
    """A board with optionally resolved cards and connections."""

    board: Board
    cards: tuple[Card, ...] | None = None
    connections: tuple[Connection, ...] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"board": self.board.to_dict()}
        if self.cards is not None:
            result["cards"] = [c.to_dict() for c in self.cards]
        if self.connections is not None:
            result["connections"] = [c.to_dict() for c in self.connections]
        return result


@dataclass(frozen=True)
class CardView:
    """A card with every placement referencing it, across all boards."""

    card: Card
    placements: tuple[Placement, ...]
