"""Read Heptabase export files into entity tables.

Two layouts exist: a single combined ``All-Data.json`` and four separate
per-entity files. The combined file wins when both are present.
"""

import json
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Protocol, TypeVar

from loguru import logger

from heptabase_archive.errors import MalformedDataError
from heptabase_archive.models.entities import Board, Card, Connection, Dataset, Placement

COMBINED_FILENAME = "All-Data.json"

# Keys of the combined export, first present key wins.
BOARD_KEYS = ("whiteBoardList", "boardList")
CARD_KEYS = ("cardList",)
PLACEMENT_KEYS = ("cardInstances", "placementList")
CONNECTION_KEYS = ("connections", "connectionList")

BOARD_FILENAME = "whiteboard.json"
CARD_FILENAME = "card.json"
PLACEMENT_FILENAME = "card-Instance.json"
CONNECTION_FILENAME = "connection.json"

T = TypeVar("T", Board, Card, Placement, Connection)


class DatasetLoader(Protocol):
    """A strategy that turns one export layout into a Dataset."""

    def load(self) -> Dataset:
        """Read and parse the export."""
        ...


def read_json(path: Path) -> Any:
    """Parse a JSON file, turning decode errors into MalformedDataError."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        msg = f"Cannot parse {path.name}: {e}"
        raise MalformedDataError(msg) from e


def to_table(records: Any, factory: Callable[[Any], T], source: str) -> dict[str, T]:
    """Index records by id. Later duplicates overwrite earlier ones."""
    if records is None:
        return {}
    if not isinstance(records, list):
        msg = f"Expected a list in {source}, got {type(records).__name__}"
        raise MalformedDataError(msg)
    table: dict[str, T] = {}
    for record in records:
        item = factory(record)
        table[item.id] = item
    return table


def _first_present(data: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


class CombinedExportLoader:
    """Load a combined export file holding all four entity lists."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Dataset:
        data = read_json(self.path)
        if not isinstance(data, dict):
            msg = f"Expected an object in {self.path.name}, got {type(data).__name__}"
            raise MalformedDataError(msg)
        name = self.path.name
        return Dataset(
            boards=to_table(_first_present(data, BOARD_KEYS), Board.from_record, name),
            cards=to_table(_first_present(data, CARD_KEYS), Card.from_record, name),
            placements=to_table(
                _first_present(data, PLACEMENT_KEYS), Placement.from_record, name
            ),
            connections=to_table(
                _first_present(data, CONNECTION_KEYS), Connection.from_record, name
            ),
        )


class SplitFilesLoader:
    """Load up to four per-entity files. A missing file leaves its table empty."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _table(self, filename: str, factory: Callable[[Any], T]) -> dict[str, T]:
        path = self.directory / filename
        if not path.exists():
            logger.debug("No {} in {}", filename, self.directory)
            return {}
        return to_table(read_json(path), factory, filename)

    def load(self) -> Dataset:
        return Dataset(
            boards=self._table(BOARD_FILENAME, Board.from_record),
            cards=self._table(CARD_FILENAME, Card.from_record),
            placements=self._table(PLACEMENT_FILENAME, Placement.from_record),
            connections=self._table(CONNECTION_FILENAME, Connection.from_record),
        )


def select_loader(location: Path) -> DatasetLoader:
    """Pick the loader for ``location``.

    A file is read as a combined export. For a directory the combined file is
    probed first and the per-entity layout is the fallback.
    """
    if location.is_file():
        return CombinedExportLoader(location)
    if not location.is_dir():
        msg = f"Data location not found: {location}"
        raise FileNotFoundError(msg)
    combined = location / COMBINED_FILENAME
    if combined.is_file():
        return CombinedExportLoader(combined)
    return SplitFilesLoader(location)
