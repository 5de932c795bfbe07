"""Lightweight graph metrics and archive comparison."""

import json
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from heptabase_archive.core.archive.manager import ArchiveManager
from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.store.store import EntityStore
from heptabase_archive.errors import NotFoundError
from heptabase_archive.models.entities import ArchiveMetadata, Connection

METRICS = ("centrality", "clustering", "density")


@dataclass
class GraphReport:
    """Counts and requested metrics for the whole graph or one board."""

    nodes: int
    edges: int
    board: str | None = None
    boards: int | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(tz=UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "timestamp": self.timestamp,
            "nodes": self.nodes,
            "edges": self.edges,
            "metrics": self.metrics,
        }
        if self.board is not None:
            result["board"] = self.board
        if self.boards is not None:
            result["boards"] = self.boards
        return result


def degree_centrality(connections: Iterable[Connection]) -> dict[str, int]:
    """Number of connection endpoints per object id."""
    degrees: dict[str, int] = defaultdict(int)
    for connection in connections:
        degrees[connection.begin_id] += 1
        degrees[connection.end_id] += 1
    return dict(degrees)


def clustering_coefficient(connections: Iterable[Connection]) -> float:
    """Mean local clustering coefficient over nodes with at least two neighbours.

    Connections are treated as undirected edges.
    """
    adjacency: dict[str, set[str]] = defaultdict(set)
    for connection in connections:
        if connection.begin_id == connection.end_id:
            continue
        adjacency[connection.begin_id].add(connection.end_id)
        adjacency[connection.end_id].add(connection.begin_id)

    total = 0.0
    counted = 0
    for neighbours in adjacency.values():
        if len(neighbours) < 2:
            continue
        ordered = sorted(neighbours)
        triangles = sum(
            1
            for i, a in enumerate(ordered)
            for b in ordered[i + 1 :]
            if b in adjacency[a]
        )
        possible = len(ordered) * (len(ordered) - 1) / 2
        total += triangles / possible
        counted += 1
    return total / counted if counted else 0.0


def edge_density(nodes: int, edges: int) -> float:
    """Directed density edges / (n * (n - 1)); 0.0 for fewer than two nodes."""
    if nodes < 2:
        return 0.0
    return edges / (nodes * (nodes - 1))


def analyze_graph(
    engine: QueryEngine,
    *,
    board_id: str | None = None,
    metrics: Sequence[str] = (),
    export_path: Path | None = None,
) -> GraphReport:
    """Compute graph metrics, optionally for one board, optionally saved as JSON."""
    unknown = set(metrics) - set(METRICS)
    if unknown:
        msg = f"Unknown metrics {sorted(unknown)!r}, expected any of {METRICS}"
        raise ValueError(msg)

    if board_id:
        view = engine.get_board(board_id, include_cards=True, include_connections=True)
        connections = list(view.connections or ())
        report = GraphReport(
            nodes=len(view.cards or ()), edges=len(connections), board=view.board.name
        )
    else:
        connections = engine.store.connections()
        report = GraphReport(
            nodes=len(engine.store.cards()),
            edges=len(connections),
            boards=len(engine.store.boards()),
        )

    if "centrality" in metrics:
        report.metrics["centrality"] = degree_centrality(connections)
    if "clustering" in metrics:
        report.metrics["clustering"] = clustering_coefficient(connections)
    if "density" in metrics:
        report.metrics["density"] = edge_density(report.nodes, report.edges)

    if export_path is not None:
        write_json(export_path, report.to_dict())
    return report


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    logger.info("Wrote {}", path)


def _snapshot(manager: ArchiveManager, archive_id: str) -> tuple[ArchiveMetadata, QueryEngine]:
    metadata = manager.get_metadata(archive_id)
    if metadata is None:
        raise NotFoundError("Archive", archive_id)
    metadata = manager.load(metadata.path)
    store = EntityStore()
    store.load(manager.data_location(metadata))
    return metadata, QueryEngine(store)


def _counts(engine: QueryEngine, board_id: str | None) -> dict[str, int]:
    if board_id:
        try:
            view = engine.get_board(board_id, include_cards=True, include_connections=True)
        except NotFoundError:
            return {"cards": 0, "connections": 0}
        return {"cards": len(view.cards or ()), "connections": len(view.connections or ())}
    return {
        "boards": len(engine.store.boards()),
        "cards": len(engine.store.cards()),
        "connections": len(engine.store.connections()),
    }


def compare_archives(
    manager: ArchiveManager,
    first_id: str,
    second_id: str,
    *,
    board_id: str | None = None,
    export_path: Path | None = None,
) -> dict[str, Any]:
    """Diff two archives by entity counts.

    Each archive is loaded into its own EntityStore, so the comparison never
    touches a store that is serving queries. A board missing from one
    archive counts as empty there.
    """
    first, first_engine = _snapshot(manager, first_id)
    second, second_engine = _snapshot(manager, second_id)

    before = _counts(first_engine, board_id)
    after = _counts(second_engine, board_id)
    changes: dict[str, Any] = {f"{k}_added": after[k] - before[k] for k in before}
    if board_id:
        changes["board"] = board_id

    comparison: dict[str, Any] = {
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "first": {
            "id": first.archive_id,
            "date": first.created_date.isoformat(),
            "size": first.file_size,
            "counts": before,
        },
        "second": {
            "id": second.archive_id,
            "date": second.created_date.isoformat(),
            "size": second.file_size,
            "counts": after,
        },
        "changes": changes,
    }
    if export_path is not None:
        write_json(export_path, comparison)
    return comparison
