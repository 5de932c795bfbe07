"""CLI for the Heptabase archive (backups, search, export, analysis, MCP server)."""

import json
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from heptabase_archive.config import DEFAULT_AREA_RADIUS, HeptabaseConfig, load_config
from heptabase_archive.core.analysis.graph import METRICS, analyze_graph, compare_archives
from heptabase_archive.core.archive.manager import ArchiveManager
from heptabase_archive.core.export.board import EXPORT_FORMATS, export_board, summarize_board
from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.render.content import to_markdown
from heptabase_archive.core.store.store import EntityStore
from heptabase_archive.errors import HeptabaseArchiveError
from heptabase_archive.logging_config import configure_logging
from heptabase_archive.models.entities import BoardQuery, CardQuery, DateRange

app = typer.Typer(help="Heptabase archive: browse, search and export Heptabase backups.")

BackupDirOption = Annotated[
    Path | None,
    typer.Option("--backup-dir", "-d", help="Directory with Heptabase backups"),
]
BackupOption = Annotated[
    str | None,
    typer.Option("--backup", "-b", help="Backup id to use instead of the newest"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _config(backup_dir: Path | None) -> HeptabaseConfig:
    config = load_config()
    if backup_dir is not None:
        config = replace(config, backup_path=backup_dir.expanduser())
    if config.backup_path is None or not config.backup_path.is_dir():
        logger.error(
            "Backup directory not found: {}. Pass --backup-dir or set HEPTABASE_BACKUP_PATH.",
            config.backup_path,
        )
        raise typer.Exit(1)
    return config


def _manager(backup_dir: Path | None) -> ArchiveManager:
    return ArchiveManager(_config(backup_dir).manager_config())


def _open_engine(backup_dir: Path | None, backup_id: str | None) -> QueryEngine:
    """Load the requested (or newest) backup into a fresh store."""
    manager = _manager(backup_dir)
    try:
        if backup_id:
            path = manager.resolve_archive(archive_id=backup_id)
        else:
            latest = manager.latest()
            if latest is None:
                logger.error("No backups found in {}", manager.config.source_dir)
                raise typer.Exit(1)
            path = latest.path
        metadata = manager.load(path)
        store = EntityStore()
        store.load(manager.data_location(metadata))
    except (HeptabaseArchiveError, OSError) as e:
        logger.error("{}", e)
        raise typer.Exit(1) from None
    logger.debug("Using backup {}", metadata.archive_id)
    return QueryEngine(store)


def _date(value: str | None, *, end: bool = False) -> datetime:
    if not value:
        return (datetime.max if end else datetime.min).replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.error("Invalid date: {}", value)
        raise typer.Exit(1) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _date_range(since: str | None, until: str | None) -> DateRange | None:
    if not since and not until:
        return None
    return DateRange(start=_date(since), end=_date(until, end=True))


def _fail(e: Exception) -> typer.Exit:
    typer.echo(str(e), err=True)
    return typer.Exit(1)


@app.command()
def backups(
    backup_dir: BackupDirOption = None,
    limit: int | None = typer.Option(None, "--limit", "-n", help="Max backups to list"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List backups, newest first."""
    manager = _manager(backup_dir)
    found = manager.list_archives()
    if limit:
        found = found[:limit]

    if output_json:
        typer.echo(json.dumps([b.to_dict() for b in found], indent=2))
        return

    typer.echo(f"{len(found)} backups:\n")
    for backup in found:
        kind = "zip" if backup.is_compressed else "json"
        unpacked = "  (unpacked)" if backup.unpacked_path else ""
        typer.echo(
            f"  {backup.archive_id}  {backup.created_date:%Y-%m-%d %H:%M}  "
            f"{backup.file_size} bytes  [{kind}]{unpacked}"
        )


@app.command()
def cleanup(
    backup_dir: BackupDirOption = None,
    keep: int | None = typer.Option(None, "--keep", "-k", help="Backups to keep"),
) -> None:
    """Delete the oldest backups beyond the retention count."""
    manager = _manager(backup_dir)
    if keep is not None:
        manager.config.max_archives = keep
    removed = manager.cleanup_old_archives()
    typer.echo(f"Removed {len(removed)} backups")
    for backup in removed:
        typer.echo(f"  {backup.archive_id}")


@app.command(name="search-boards")
def search_boards(
    query: str | None = typer.Argument(None, help="Substring of the whiteboard name"),
    since: str | None = typer.Option(None, "--since", help="Created on or after (YYYY-MM-DD)"),
    until: str | None = typer.Option(None, "--until", help="Created on or before (YYYY-MM-DD)"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """Search whiteboards by name and creation date."""
    engine = _open_engine(backup_dir, backup)
    boards = engine.search_boards(BoardQuery(query=query, date_range=_date_range(since, until)))
    typer.echo(f"Found {len(boards)} whiteboards:\n")
    for board in boards:
        typer.echo(f"  {board.name}  [id={board.id}]")


@app.command(name="search-cards")
def search_cards(
    query: str | None = typer.Argument(None, help="Substring of the title or content"),
    board: Annotated[
        str | None,
        typer.Option("--board", "-w", help="Only cards on this whiteboard"),
    ] = None,
    since: str | None = typer.Option(None, "--since", help="Created on or after (YYYY-MM-DD)"),
    until: str | None = typer.Option(None, "--until", help="Created on or before (YYYY-MM-DD)"),
    limit: int = typer.Option(50, "--limit", "-n", help="Max results"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Search cards by title or content."""
    engine = _open_engine(backup_dir, backup)
    cards = engine.search_cards(
        CardQuery(query=query, board_id=board, date_range=_date_range(since, until))
    )

    if output_json:
        data = {
            "results": [{"id": c.id, "title": c.display_title} for c in cards[:limit]],
            "total": len(cards),
        }
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"Found {len(cards)} cards (showing {min(limit, len(cards))}):\n")
    for card in cards[:limit]:
        typer.echo(f"  {card.display_title}  [id={card.id}]")


@app.command(name="board")
def show_board(
    board_id: str = typer.Argument(..., help="Whiteboard ID"),
    connections: bool = typer.Option(False, "--connections", "-c", help="List connections"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """Show a whiteboard and the cards placed on it."""
    engine = _open_engine(backup_dir, backup)
    try:
        view = engine.get_board(board_id, include_cards=True, include_connections=connections)
    except HeptabaseArchiveError as e:
        raise _fail(e) from None

    trashed = " (trashed)" if view.board.is_trashed else ""
    typer.echo(f"{view.board.name}{trashed}\n")
    typer.echo(f"{len(view.cards or ())} cards:")
    for card in view.cards or ():
        typer.echo(f"  {card.display_title}  [id={card.id}]")
    if view.connections is not None:
        typer.echo(f"\n{len(view.connections)} connections:")
        for connection in view.connections:
            typer.echo(f"  {connection.begin_id} -> {connection.end_id}")


@app.command(name="card")
def show_card(
    card_id: str = typer.Argument(..., help="Card ID"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """Print a card as markdown."""
    engine = _open_engine(backup_dir, backup)
    try:
        view = engine.get_card(card_id)
    except HeptabaseArchiveError as e:
        raise _fail(e) from None
    typer.echo(f"# {view.card.display_title}\n")
    typer.echo(to_markdown(view.card.content))


@app.command()
def area(
    board_id: str = typer.Argument(..., help="Whiteboard ID"),
    x: float = typer.Argument(..., help="X coordinate"),
    y: float = typer.Argument(..., help="Y coordinate"),
    radius: float = typer.Option(DEFAULT_AREA_RADIUS, "--radius", "-r", help="Search radius"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """List cards placed within a radius of a point on a whiteboard."""
    engine = _open_engine(backup_dir, backup)
    cards = engine.get_cards_by_area(board_id, x, y, radius)
    typer.echo(f"Found {len(cards)} cards within {radius:g} of ({x:g}, {y:g}):\n")
    for card in cards:
        typer.echo(f"  {card.display_title}  [id={card.id}]")


@app.command(name="export")
def export_cmd(
    board_id: str = typer.Argument(..., help="Whiteboard ID"),
    output: Path = typer.Argument(..., help="Output file"),
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", help=f"One of: {', '.join(EXPORT_FORMATS)}"),
    ] = "markdown",
    connections: bool = typer.Option(False, "--connections", "-c", help="Include connections"),
    metadata: bool = typer.Option(False, "--metadata", "-m", help="Include board metadata"),
    summary: bool = typer.Option(False, "--summary", "-s", help="Print a summary instead"),
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """Export a whiteboard to markdown, json, html or mermaid."""
    engine = _open_engine(backup_dir, backup)
    try:
        if summary:
            typer.echo(summarize_board(engine, board_id, fmt="structured", include_statistics=True))
            return
        path = export_board(
            engine,
            board_id,
            output,
            fmt=fmt,
            include_connections=connections,
            include_metadata=metadata,
        )
    except (HeptabaseArchiveError, ValueError) as e:
        raise _fail(e) from None
    typer.echo(f"Exported to {path}")


@app.command()
def analyze(
    board: Annotated[
        str | None,
        typer.Option("--board", "-w", help="Only this whiteboard"),
    ] = None,
    metric: Annotated[
        list[str] | None,
        typer.Option("--metric", "-m", help=f"Repeatable: {', '.join(METRICS)}"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Also write the report as JSON"),
    ] = None,
    backup_dir: BackupDirOption = None,
    backup: BackupOption = None,
) -> None:
    """Compute graph metrics over cards and connections."""
    engine = _open_engine(backup_dir, backup)
    try:
        report = analyze_graph(engine, board_id=board, metrics=metric or (), export_path=output)
    except (HeptabaseArchiveError, ValueError) as e:
        raise _fail(e) from None
    typer.echo(json.dumps(report.to_dict(), indent=2))


@app.command()
def compare(
    first: str = typer.Argument(..., help="Older backup id"),
    second: str = typer.Argument(..., help="Newer backup id"),
    board: Annotated[
        str | None,
        typer.Option("--board", "-w", help="Only this whiteboard"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Also write the comparison as JSON"),
    ] = None,
    backup_dir: BackupDirOption = None,
) -> None:
    """Compare entity counts between two backups."""
    manager = _manager(backup_dir)
    try:
        result = compare_archives(manager, first, second, board_id=board, export_path=output)
    except (HeptabaseArchiveError, OSError) as e:
        raise _fail(e) from None
    typer.echo(json.dumps(result, indent=2))


@app.command()
def serve(
    ctx: typer.Context,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", "-l", help="Also write debug logs to this file"),
    ] = None,
) -> None:
    """Run the MCP server (stdio transport)."""
    from heptabase_archive.mcp.server import run_mcp_server

    verbose = bool(ctx.parent and ctx.parent.params.get("verbose"))
    run_mcp_server(verbose=verbose, log_file=log_file)
