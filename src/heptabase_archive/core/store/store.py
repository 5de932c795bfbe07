"""In-memory entity tables for one loaded archive."""

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from heptabase_archive.core.store.loader import select_loader
from heptabase_archive.models.entities import Board, Card, Connection, Dataset, Placement


@dataclass(frozen=True)
class LoadStats:
    """Summary of a load operation."""

    boards: int
    cards: int
    placements: int
    connections: int


class EntityStore:
    """Holds at most one dataset. Each load replaces all four tables at once.

    Not locked: callers serialize ``load`` against queries. A query running
    during a load sees either the old or the new dataset.
    """

    def __init__(self) -> None:
        self._data = Dataset()
        self.location: Path | None = None
        # Bumped on every successful load so dependents can drop derived state.
        self.generation = 0

    def load(self, location: Path) -> LoadStats:
        """Load the export at ``location`` (directory or combined file).

        A malformed file fails the whole load and leaves the previous dataset
        in place.
        """
        loader = select_loader(location)
        logger.debug("Loading {} with {}", location, type(loader).__name__)
        data = loader.load()

        self._data = data
        self.location = location
        self.generation += 1

        stats = LoadStats(**data.counts())
        logger.info(
            "Loaded {} boards, {} cards, {} placements, {} connections",
            stats.boards, stats.cards, stats.placements, stats.connections,
        )
        return stats

    # --- Accessors ---

    def boards(self) -> list[Board]:
        """Boards that are not in the trash."""
        return [b for b in self._data.boards.values() if not b.is_trashed]

    def cards(self) -> list[Card]:
        """Cards that are not in the trash."""
        return [c for c in self._data.cards.values() if not c.is_trashed]

    def connections(self, card_id: str | None = None) -> list[Connection]:
        """All connections, or those touching any placement of ``card_id``."""
        if card_id is None:
            return list(self._data.connections.values())
        placement_ids = {p.id for p in self.placements_for_card(card_id)}
        return [
            c
            for c in self._data.connections.values()
            if c.begin_id in placement_ids or c.end_id in placement_ids
        ]

    def raw(self) -> Dataset:
        """Unfiltered tables, trashed records included."""
        return self._data

    # --- Lookups (trash-agnostic) ---

    def get_board(self, board_id: str) -> Board | None:
        return self._data.boards.get(board_id)

    def get_card(self, card_id: str) -> Card | None:
        return self._data.cards.get(card_id)

    def placements_for_card(self, card_id: str) -> list[Placement]:
        return [p for p in self._data.placements.values() if p.card_id == card_id]

    def placements_on_board(self, board_id: str) -> list[Placement]:
        return [p for p in self._data.placements.values() if p.board_id == board_id]

    def connections_on_board(self, board_id: str) -> list[Connection]:
        return [c for c in self._data.connections.values() if c.board_id == board_id]
