"""Read-only queries over an EntityStore."""

import math

from heptabase_archive.core.query.cache import ResultCache, make_cache_key
from heptabase_archive.core.store.store import EntityStore
from heptabase_archive.errors import NotFoundError
from heptabase_archive.models.entities import (
    Board,
    BoardQuery,
    BoardView,
    Card,
    CardQuery,
    CardView,
    DateRange,
    Placement,
    parse_timestamp,
)


def _in_range(created_time: str, date_range: DateRange) -> bool:
    created = parse_timestamp(created_time)
    if created is None:
        return False
    return date_range.contains(created)


class QueryEngine:
    """Search, join and spatial lookups over the store's current dataset.

    Search results are cached when a ResultCache is given. The cache is
    cleared whenever the store loads a new dataset.
    """

    def __init__(self, store: EntityStore, cache: ResultCache | None = None) -> None:
        self.store = store
        self.cache = cache
        # Number of full-table scans done by searches; cache hits do not scan.
        self.scan_count = 0
        self._generation = store.generation

    def _cached(self, key: str) -> tuple | None:
        if self.cache is None:
            return None
        if self._generation != self.store.generation:
            self.cache.clear()
            self._generation = self.store.generation
            return None
        return self.cache.get(key)

    def _remember(self, key: str, results: tuple) -> None:
        if self.cache is not None:
            self.cache.set(key, results)

    def search_boards(self, query: BoardQuery) -> list[Board]:
        """Active boards matching every given filter (name substring, creation range)."""
        key = make_cache_key("boards", query)
        cached = self._cached(key)
        if cached is not None:
            return list(cached)

        self.scan_count += 1
        needle = query.query.lower() if query.query else None
        results = []
        for board in self.store.boards():
            if needle and needle not in board.name.lower():
                continue
            if query.date_range and not _in_range(board.created_time, query.date_range):
                continue
            results.append(board)

        self._remember(key, tuple(results))
        return results

    def search_cards(self, query: CardQuery) -> list[Card]:
        """Active cards matching every given filter.

        The text filter matches title or content. The board filter requires
        at least one placement of the card on that board.
        """
        key = make_cache_key("cards", query)
        cached = self._cached(key)
        if cached is not None:
            return list(cached)

        self.scan_count += 1
        needle = query.query.lower() if query.query else None
        on_board: set[str] | None = None
        if query.board_id:
            on_board = {p.card_id for p in self.store.placements_on_board(query.board_id)}

        results = []
        for card in self.store.cards():
            if needle:
                title_match = needle in (card.title or "").lower()
                if not title_match and needle not in card.content.lower():
                    continue
            if on_board is not None and card.id not in on_board:
                continue
            if query.date_range and not _in_range(card.created_time, query.date_range):
                continue
            results.append(card)

        self._remember(key, tuple(results))
        return results

    def get_board(
        self,
        board_id: str,
        *,
        include_cards: bool = False,
        include_connections: bool = False,
    ) -> BoardView:
        """Look up a board by id, trashed or not.

        Raises:
            NotFoundError: If the id is unknown.
        """
        board = self.store.get_board(board_id)
        if board is None:
            raise NotFoundError("Board", board_id)

        cards = None
        if include_cards:
            cards = tuple(self._cards_for(self.store.placements_on_board(board_id)))
        connections = None
        if include_connections:
            connections = tuple(self.store.connections_on_board(board_id))
        return BoardView(board=board, cards=cards, connections=connections)

    def get_card(self, card_id: str) -> CardView:
        """Look up a card with all its placements across boards.

        Raises:
            NotFoundError: If the id is unknown.
        """
        card = self.store.get_card(card_id)
        if card is None:
            raise NotFoundError("Card", card_id)
        return CardView(card=card, placements=tuple(self.store.placements_for_card(card_id)))

    def placements_in_area(
        self, board_id: str, x: float, y: float, radius: float
    ) -> list[Placement]:
        """Placements on a board within ``radius`` of (x, y), boundary included."""
        return [
            p
            for p in self.store.placements_on_board(board_id)
            if math.hypot(p.x - x, p.y - y) <= radius
        ]

    def get_cards_by_area(self, board_id: str, x: float, y: float, radius: float) -> list[Card]:
        """Cards placed within ``radius`` of (x, y) on a board."""
        return self._cards_for(self.placements_in_area(board_id, x, y, radius))

    def _cards_for(self, placements: list[Placement]) -> list[Card]:
        """Resolve placements to cards, dropping dangling references."""
        cards = []
        for placement in placements:
            card = self.store.get_card(placement.card_id)
            if card is not None:
                cards.append(card)
        return cards
