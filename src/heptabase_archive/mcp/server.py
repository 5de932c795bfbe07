"""MCP server exposing Heptabase backup browsing, search, export and analysis tools."""

import asyncio
import functools
import html
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, ParamSpec

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from heptabase_archive.config import DEFAULT_AREA_RADIUS, HeptabaseConfig, load_config
from heptabase_archive.core.analysis.graph import analyze_graph, compare_archives
from heptabase_archive.core.archive.events import ArchiveEvent, ArchiveEventKind
from heptabase_archive.core.archive.manager import ArchiveManager
from heptabase_archive.core.export.board import export_board, summarize_board
from heptabase_archive.core.query.cache import ResultCache
from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.render.content import parse_document, to_html, to_markdown
from heptabase_archive.core.store.store import EntityStore
from heptabase_archive.errors import ConfigurationError, HeptabaseArchiveError
from heptabase_archive.models.entities import ArchiveMetadata, BoardQuery, CardQuery, DateRange

P = ParamSpec("P")


@dataclass
class ServerContext:
    """Shared state for the MCP server lifetime."""

    config: HeptabaseConfig
    store: EntityStore = field(default_factory=EntityStore)
    manager: ArchiveManager | None = None
    engine: QueryEngine | None = None
    current: ArchiveMetadata | None = None
    load_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _log_archive_event(event: ArchiveEvent) -> None:
    if event.kind in (ArchiveEventKind.ARCHIVE_NEW, ArchiveEventKind.ARCHIVE_CHANGED):
        logger.info("Backup {}: {}", event.kind.value.removeprefix("archive_"), event.path)
    elif event.kind is ArchiveEventKind.ARCHIVE_REMOVE_FAILED:
        logger.warning("Could not remove backup {}: {}", event.path, event.error)


def build_manager(config: HeptabaseConfig) -> ArchiveManager:
    manager = ArchiveManager(config.manager_config())
    manager.subscribe(_log_archive_event)
    if config.watch_directory:
        try:
            manager.watch()
        except OSError as e:
            # The manager has already emitted WATCH_ERROR.
            logger.warning("Not watching {}: {}", config.backup_path, e)
    return manager


def build_context(config: HeptabaseConfig) -> ServerContext:
    """Create the server state; the manager exists only if a backup path is set."""
    ctx = ServerContext(config=config)
    if config.backup_path is not None:
        ctx.manager = build_manager(config)
    return ctx


def _require_manager(ctx: ServerContext) -> ArchiveManager:
    if ctx.manager is None:
        msg = "Backup path is not configured. Call the configure backup path tool first."
        raise ConfigurationError(msg)
    return ctx.manager


def _activate(ctx: ServerContext, manager: ArchiveManager, metadata: ArchiveMetadata) -> None:
    ctx.store.load(manager.data_location(metadata))
    ctx.current = metadata
    if ctx.engine is None:
        cache = ResultCache(ctx.config.cache_ttl) if ctx.config.cache_enabled else None
        ctx.engine = QueryEngine(ctx.store, cache)


def ensure_data_loaded(ctx: ServerContext) -> QueryEngine:
    """Load the newest backup on first use; later calls reuse the loaded data."""
    if ctx.engine is not None:
        return ctx.engine
    manager = _require_manager(ctx)
    latest = manager.latest()
    if latest is None:
        msg = f"No backups found in {manager.config.source_dir}."
        raise ConfigurationError(msg)
    _activate(ctx, manager, manager.load(latest.path))
    assert ctx.engine is not None
    return ctx.engine


def _errors_as_payload(func: Callable[P, dict[str, Any]]) -> Callable[P, dict[str, Any]]:
    """Report archive, data and filesystem errors as {"error": ...}."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> dict[str, Any]:
        try:
            return func(*args, **kwargs)
        except (HeptabaseArchiveError, ValueError, OSError) as e:
            return {"error": str(e)}

    return wrapper


def _parse_date(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        msg = f"Invalid date '{value}'. Expected YYYY-MM-DD or an ISO-8601 timestamp."
        raise ValueError(msg) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _date_range(start: str | None, end: str | None) -> DateRange | None:
    if not start and not end:
        return None
    return DateRange(
        start=_parse_date(start) if start else datetime.min.replace(tzinfo=UTC),
        end=_parse_date(end) if end else datetime.max.replace(tzinfo=UTC),
    )


# --- Core functions (testable without MCP context) ---


@_errors_as_payload
def heptabase_configure_backup_path(
    ctx: ServerContext,
    *,
    path: str,
    watch_for_changes: bool | None = None,
    auto_extract: bool | None = None,
) -> dict[str, Any]:
    """Point the server at a backup directory, replacing the previous manager.

    Args:
        path: Directory containing Heptabase backup files.
        watch_for_changes: Watch the directory for new backups.
        auto_extract: Unpack zip backups automatically when loading.
    """
    backup_path = Path(path).expanduser()
    if not backup_path.is_dir():
        return {"error": f"Backup directory '{path}' not found."}

    config = replace(ctx.config, backup_path=backup_path)
    if watch_for_changes is not None:
        config.watch_directory = watch_for_changes
    if auto_extract is not None:
        config.auto_extract = auto_extract

    if ctx.manager is not None:
        ctx.manager.unwatch()
    ctx.config = config
    ctx.manager = build_manager(config)
    return {
        "backup_path": str(backup_path),
        "auto_extract": config.auto_extract,
        "watching": ctx.manager.watching,
    }


@_errors_as_payload
def heptabase_list_backups(
    ctx: ServerContext,
    *,
    path: str | None = None,
    sort_by: str = "date",
    limit: int | None = None,
) -> dict[str, Any]:
    """List backups, newest first or largest first.

    Args:
        path: Directory to list instead of the configured one.
        sort_by: "date" or "size".
        limit: Max backups to return.
    """
    if sort_by not in ("date", "size"):
        return {"error": f"Invalid sort_by '{sort_by}'. Expected 'date' or 'size'."}
    manager = _require_manager(ctx)
    backups = manager.list_archives(Path(path).expanduser() if path else None)
    if sort_by == "size":
        backups = sorted(backups, key=lambda b: b.file_size, reverse=True)
    if limit:
        backups = backups[: max(1, limit)]
    return {"backups": [b.to_dict() for b in backups], "count": len(backups)}


@_errors_as_payload
def heptabase_load_backup(
    ctx: ServerContext,
    *,
    backup_path: str | None = None,
    backup_id: str | None = None,
    extract: bool | None = None,
) -> dict[str, Any]:
    """Load a backup by path or id and make it the queried dataset.

    Args:
        backup_path: Path to a backup file.
        backup_id: Backup id (filename without extension).
        extract: Override auto-extract for this load.
    """
    if not backup_path and not backup_id:
        return {"error": "Either backup_path or backup_id must be provided."}
    manager = _require_manager(ctx)
    archive_path = manager.resolve_archive(archive_path=backup_path, archive_id=backup_id)

    previous = manager.config.auto_unpack
    if extract is not None:
        manager.config.auto_unpack = extract
    try:
        metadata = manager.load(archive_path)
    finally:
        manager.config.auto_unpack = previous

    _activate(ctx, manager, metadata)
    return {"loaded": metadata.to_dict(), "counts": ctx.store.raw().counts()}


@_errors_as_payload
def heptabase_cleanup_backups(ctx: ServerContext) -> dict[str, Any]:
    """Delete backups beyond the configured retention count."""
    manager = _require_manager(ctx)
    removed = manager.cleanup_old_archives()
    return {"removed": [b.archive_id for b in removed], "count": len(removed)}


@_errors_as_payload
def heptabase_search_whiteboards(
    ctx: ServerContext,
    *,
    query: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict[str, Any]:
    """Search whiteboards by name and creation date.

    Args:
        query: Case-insensitive substring of the whiteboard name.
        start_date: Earliest creation date (inclusive).
        end_date: Latest creation date (inclusive).
    """
    engine = ensure_data_loaded(ctx)
    boards = engine.search_boards(BoardQuery(query=query, date_range=_date_range(start_date, end_date)))
    return {
        "results": [
            {"id": b.id, "name": b.name, "last_edited": b.last_edited_time} for b in boards
        ],
        "count": len(boards),
    }


@_errors_as_payload
def heptabase_search_cards(
    ctx: ServerContext,
    *,
    query: str | None = None,
    whiteboard_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Search cards by title/content, whiteboard and creation date.

    Args:
        query: Case-insensitive substring of the title or content.
        whiteboard_id: Only cards placed on this whiteboard.
        start_date: Earliest creation date (inclusive).
        end_date: Latest creation date (inclusive).
        limit: Max results (1-200, default 50).
        offset: Pagination offset.
    """
    engine = ensure_data_loaded(ctx)
    limit = max(1, min(limit, 200))
    cards = engine.search_cards(
        CardQuery(
            query=query,
            board_id=whiteboard_id,
            date_range=_date_range(start_date, end_date),
        )
    )
    page = cards[offset : offset + limit]
    output: dict[str, Any] = {
        "results": [{"id": c.id, "title": c.display_title} for c in page],
        "count": len(page),
        "total": len(cards),
        "has_more": offset + len(page) < len(cards),
    }
    if output["has_more"]:
        output["next_offset"] = offset + limit
    return output


@_errors_as_payload
def heptabase_get_whiteboard(
    ctx: ServerContext,
    *,
    whiteboard_id: str,
    include_cards: bool = False,
    include_connections: bool = False,
) -> dict[str, Any]:
    """Get a whiteboard, optionally with its cards and connections."""
    engine = ensure_data_loaded(ctx)
    view = engine.get_board(
        whiteboard_id, include_cards=include_cards, include_connections=include_connections
    )
    result: dict[str, Any] = {"whiteboard": view.board.to_dict()}
    if view.cards is not None:
        result["cards"] = [{"id": c.id, "title": c.display_title} for c in view.cards]
    if view.connections is not None:
        result["connections"] = [c.to_dict() for c in view.connections]
    return result


@_errors_as_payload
def heptabase_get_card(
    ctx: ServerContext,
    *,
    card_id: str,
    output_format: str = "json",
    include_related: bool = False,
) -> dict[str, Any]:
    """Get a card as structured JSON, markdown or HTML.

    Args:
        card_id: Card ID.
        output_format: "json", "markdown" or "html".
        include_related: Add the whiteboards it appears on and its connections.
    """
    if output_format not in ("json", "markdown", "html"):
        return {"error": f"Invalid format '{output_format}'. Expected json, markdown or html."}
    engine = ensure_data_loaded(ctx)
    view = engine.get_card(card_id)
    card = view.card

    board_names = []
    for placement in view.placements:
        board = engine.store.get_board(placement.board_id)
        if board is not None:
            board_names.append(board.name)

    if output_format == "json":
        parsed = parse_document(card.content)
        result: dict[str, Any] = {
            "id": card.id,
            "title": card.title,
            "content": parsed if parsed is not None else card.content,
            "created_time": card.created_time,
            "last_edited_time": card.last_edited_time,
            "is_trashed": card.is_trashed,
            "placements": [p.to_dict() for p in view.placements],
        }
        if include_related:
            result["whiteboards"] = board_names
            result["connections"] = [c.to_dict() for c in engine.store.connections(card_id)]
        return result

    if output_format == "markdown":
        text = f"# {card.display_title}\n\n" + to_markdown(card.content)
        if include_related:
            if board_names:
                text += "\n## Appears on whiteboards:\n"
                text += "".join(f"- {name}\n" for name in board_names)
            connections = engine.store.connections(card_id)
            if connections:
                text += f"\n## Related connections: {len(connections)}\n"
        return {"card_id": card.id, "mime_type": "text/markdown", "content": text}

    text = f"<h1>{html.escape(card.display_title)}</h1>\n" + to_html(card.content)
    if include_related and board_names:
        text += "<h2>Appears on whiteboards:</h2><ul>"
        text += "".join(f"<li>{html.escape(name)}</li>" for name in board_names)
        text += "</ul>"
    return {"card_id": card.id, "mime_type": "text/html", "content": text}


@_errors_as_payload
def heptabase_get_card_content(
    ctx: ServerContext,
    *,
    card_id: str,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Full card content as raw JSON text, markdown with metadata, or parsed JSON."""
    if output_format not in ("raw", "markdown", "json"):
        return {"error": f"Invalid format '{output_format}'. Expected raw, markdown or json."}
    engine = ensure_data_loaded(ctx)
    view = engine.get_card(card_id)
    card = view.card

    if output_format == "raw":
        return {"card_id": card.id, "mime_type": "text/plain", "content": card.content}
    if output_format == "json":
        parsed = parse_document(card.content)
        return {
            "card_id": card.id,
            "mime_type": "application/json",
            "content": {
                "id": card.id,
                "title": card.title,
                "content": parsed if parsed is not None else card.content,
                "created_time": card.created_time,
                "last_edited_time": card.last_edited_time,
                "placements": len(view.placements),
            },
        }

    text = f"# {card.display_title}\n\n{to_markdown(card.content)}\n\n---\n"
    text += f"Created: {card.created_time}\nLast edited: {card.last_edited_time}\n"
    text += f"Card ID: {card.id}\n"
    if view.placements:
        text += f"\nAppears on {len(view.placements)} whiteboard(s)\n"
    return {"card_id": card.id, "mime_type": "text/markdown", "content": text}


@_errors_as_payload
def heptabase_get_cards_by_area(
    ctx: ServerContext,
    *,
    whiteboard_id: str,
    x: float,
    y: float,
    radius: float = DEFAULT_AREA_RADIUS,
) -> dict[str, Any]:
    """Cards placed within ``radius`` of (x, y) on a whiteboard."""
    engine = ensure_data_loaded(ctx)
    placements = engine.placements_in_area(whiteboard_id, x, y, radius)
    results = []
    for placement in placements:
        card = engine.store.get_card(placement.card_id)
        if card is None:
            continue
        results.append(
            {"id": card.id, "title": card.display_title, "x": placement.x, "y": placement.y}
        )
    return {"results": results, "count": len(results), "radius": radius, "center": [x, y]}


@_errors_as_payload
def heptabase_export_whiteboard(
    ctx: ServerContext,
    *,
    whiteboard_id: str,
    output_path: str,
    output_format: str = "markdown",
    include_cards: bool = True,
    include_connections: bool = False,
    include_metadata: bool = False,
) -> dict[str, Any]:
    """Export a whiteboard as markdown, json, html or mermaid."""
    engine = ensure_data_loaded(ctx)
    path = export_board(
        engine,
        whiteboard_id,
        Path(output_path).expanduser(),
        fmt=output_format,
        include_cards=include_cards,
        include_connections=include_connections,
        include_metadata=include_metadata,
    )
    return {"exported": str(path), "format": output_format}


@_errors_as_payload
def heptabase_summarize_whiteboard(
    ctx: ServerContext,
    *,
    whiteboard_id: str,
    output_format: str = "text",
    include_statistics: bool = False,
) -> dict[str, Any]:
    """Summarize a whiteboard as plain text or structured markdown."""
    engine = ensure_data_loaded(ctx)
    summary = summarize_board(
        engine, whiteboard_id, fmt=output_format, include_statistics=include_statistics
    )
    return {"summary": summary}


@_errors_as_payload
def heptabase_analyze_graph(
    ctx: ServerContext,
    *,
    whiteboard_id: str | None = None,
    metrics: list[str] | None = None,
    export_path: str | None = None,
) -> dict[str, Any]:
    """Degree centrality, clustering coefficient and density of the card graph."""
    engine = ensure_data_loaded(ctx)
    report = analyze_graph(
        engine,
        board_id=whiteboard_id,
        metrics=metrics or (),
        export_path=Path(export_path).expanduser() if export_path else None,
    )
    result = report.to_dict()
    centrality = result["metrics"].get("centrality")
    if centrality:
        top = sorted(centrality.items(), key=lambda kv: kv[1], reverse=True)[:5]
        result["most_central"] = [{"id": k, "degree": v} for k, v in top]
    return result


@_errors_as_payload
def heptabase_compare_backups(
    ctx: ServerContext,
    *,
    backup_id_1: str,
    backup_id_2: str,
    whiteboard_id: str | None = None,
    export_path: str | None = None,
) -> dict[str, Any]:
    """Compare two backups by entity counts without touching the loaded dataset."""
    manager = _require_manager(ctx)
    return compare_archives(
        manager,
        backup_id_1,
        backup_id_2,
        board_id=whiteboard_id,
        export_path=Path(export_path).expanduser() if export_path else None,
    )


def heptabase_debug_info(ctx: ServerContext) -> dict[str, Any]:
    """Report configuration, backup discovery and loaded dataset state."""
    result: dict[str, Any] = {
        "config": {
            "backup_path": str(ctx.config.backup_path) if ctx.config.backup_path else None,
            "extraction_path": str(ctx.config.extraction_path),
            "auto_extract": ctx.config.auto_extract,
            "watch_directory": ctx.config.watch_directory,
            "keep_extracted": ctx.config.keep_extracted,
            "max_backups": ctx.config.max_backups,
            "cache_enabled": ctx.config.cache_enabled,
            "cache_ttl": ctx.config.cache_ttl,
        }
    }

    if ctx.manager is None:
        result["backup_manager"] = {"status": "Not initialized"}
    else:
        try:
            backups = ctx.manager.list_archives()
        except OSError as e:
            result["backup_manager"] = {"status": "Error", "error": str(e)}
        else:
            result["backup_manager"] = {
                "status": "Initialized",
                "backup_count": len(backups),
                "latest_backup": backups[0].to_dict() if backups else None,
                "watching": ctx.manager.watching,
            }

    if ctx.current is None:
        result["data"] = {"status": "Not loaded"}
    else:
        data = ctx.store.raw()
        result["data"] = {
            "status": "Loaded",
            "backup_id": ctx.current.archive_id,
            **data.counts(),
            "sample_whiteboards": [
                {"id": b.id, "name": b.name, "is_trashed": b.is_trashed}
                for b in list(data.boards.values())[:3]
            ],
        }
    return result


# --- MCP Server Setup ---


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Build the archive manager on startup, stop watching on shutdown."""
    ctx = build_context(load_config())
    try:
        yield ctx
    finally:
        if ctx.manager is not None:
            ctx.manager.unwatch()


mcp_server = FastMCP(
    "heptabase-archive",
    instructions="""\
Heptabase is a visual note-taking tool: cards are placed on whiteboards and
linked by connections. This server reads exported Heptabase backups.

## Workflow

1. heptabase_list_backups_tool shows available backups (newest first). The
   newest one is loaded automatically on the first query.
2. Search with heptabase_search_whiteboards_tool / heptabase_search_cards_tool.
   Search results only carry ids and titles.
3. Call heptabase_get_card_tool or heptabase_get_card_content_tool with a card
   id to read the full content.

## Tips
- heptabase_get_whiteboard_tool with include_cards lists everything on a board.
- heptabase_get_cards_by_area_tool finds cards near a point on a whiteboard.
- heptabase_load_backup_tool switches to an older backup.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


async def _ensure_loaded(ctx: ServerContext) -> None:
    """Lazily load the newest backup off the event loop.

    The lock keeps loads single-writer.
    """
    if ctx.engine is not None:
        return
    async with ctx.load_lock:
        try:
            await asyncio.to_thread(ensure_data_loaded, ctx)
        except (HeptabaseArchiveError, OSError):
            # Reported by the tool itself as an error payload.
            return


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def heptabase_configure_backup_path_tool(
    ctx: Context,
    path: str,
    watch_for_changes: bool | None = None,
    auto_extract: bool | None = None,
) -> dict[str, Any]:
    """Configure the directory that holds Heptabase backups.

    Args:
        path: Backup directory.
        watch_for_changes: Watch the directory for new backups.
        auto_extract: Unpack zip backups automatically.
    """
    server_ctx = _ctx(ctx)
    async with server_ctx.load_lock:
        return heptabase_configure_backup_path(
            server_ctx, path=path, watch_for_changes=watch_for_changes, auto_extract=auto_extract
        )


@mcp_server.tool()
async def heptabase_list_backups_tool(
    ctx: Context,
    path: str | None = None,
    sort_by: str = "date",
    limit: int | None = None,
) -> dict[str, Any]:
    """List available backups.

    Args:
        path: Directory to list instead of the configured one.
        sort_by: "date" (newest first) or "size" (largest first).
        limit: Max backups to return.
    """
    return heptabase_list_backups(_ctx(ctx), path=path, sort_by=sort_by, limit=limit)


@mcp_server.tool()
async def heptabase_load_backup_tool(
    ctx: Context,
    backup_path: str | None = None,
    backup_id: str | None = None,
    extract: bool | None = None,
) -> dict[str, Any]:
    """Load a backup by file path or id; later queries run against it.

    Args:
        backup_path: Path to the backup file.
        backup_id: Backup id as shown by heptabase_list_backups_tool.
        extract: Override auto-extract for this load.
    """
    server_ctx = _ctx(ctx)
    async with server_ctx.load_lock:
        return await asyncio.to_thread(
            heptabase_load_backup,
            server_ctx,
            backup_path=backup_path,
            backup_id=backup_id,
            extract=extract,
        )


@mcp_server.tool()
async def heptabase_cleanup_backups_tool(ctx: Context) -> dict[str, Any]:
    """Delete the oldest backups beyond the configured maximum."""
    server_ctx = _ctx(ctx)
    async with server_ctx.load_lock:
        return await asyncio.to_thread(heptabase_cleanup_backups, server_ctx)


@mcp_server.tool()
async def heptabase_search_whiteboards_tool(
    ctx: Context,
    query: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict[str, Any]:
    """Search whiteboards (trashed ones are excluded).

    Args:
        query: Case-insensitive substring of the whiteboard name.
        start_date: Earliest creation date, YYYY-MM-DD (inclusive).
        end_date: Latest creation date, YYYY-MM-DD (inclusive).
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_search_whiteboards(
        _ctx(ctx), query=query, start_date=start_date, end_date=end_date
    )


@mcp_server.tool()
async def heptabase_search_cards_tool(
    ctx: Context,
    query: str | None = None,
    whiteboard_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Search cards by title or content (trashed ones are excluded).

    Results only carry ids and titles. Use heptabase_get_card_tool for the
    full content. Pagination: when has_more is true, pass next_offset.

    Args:
        query: Case-insensitive substring of the title or content.
        whiteboard_id: Only cards placed on this whiteboard.
        start_date: Earliest creation date, YYYY-MM-DD (inclusive).
        end_date: Latest creation date, YYYY-MM-DD (inclusive).
        limit: Max results (1-200, default 50).
        offset: Pagination offset.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_search_cards(
        _ctx(ctx),
        query=query,
        whiteboard_id=whiteboard_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@mcp_server.tool()
async def heptabase_get_whiteboard_tool(
    ctx: Context,
    whiteboard_id: str,
    include_cards: bool = False,
    include_connections: bool = False,
) -> dict[str, Any]:
    """Get a whiteboard with optional cards and connections.

    Args:
        whiteboard_id: Whiteboard ID.
        include_cards: Include the cards placed on it.
        include_connections: Include its connections.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_get_whiteboard(
        _ctx(ctx),
        whiteboard_id=whiteboard_id,
        include_cards=include_cards,
        include_connections=include_connections,
    )


@mcp_server.tool()
async def heptabase_get_card_tool(
    ctx: Context,
    card_id: str,
    output_format: str = "json",
    include_related: bool = False,
) -> dict[str, Any]:
    """Get a card.

    Args:
        card_id: Card ID.
        output_format: "json", "markdown" or "html".
        include_related: Include whiteboards and connections.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_get_card(
        _ctx(ctx), card_id=card_id, output_format=output_format, include_related=include_related
    )


@mcp_server.tool()
async def heptabase_get_card_content_tool(
    ctx: Context,
    card_id: str,
    output_format: str = "markdown",
) -> dict[str, Any]:
    """Get a card's full content.

    Args:
        card_id: Card ID.
        output_format: "markdown", "raw" or "json".
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_get_card_content(_ctx(ctx), card_id=card_id, output_format=output_format)


@mcp_server.tool()
async def heptabase_get_cards_by_area_tool(
    ctx: Context,
    whiteboard_id: str,
    x: float,
    y: float,
    radius: float = DEFAULT_AREA_RADIUS,
) -> dict[str, Any]:
    """Find cards near a point on a whiteboard.

    Args:
        whiteboard_id: Whiteboard ID.
        x: X coordinate.
        y: Y coordinate.
        radius: Search radius (default 100).
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_get_cards_by_area(
        _ctx(ctx), whiteboard_id=whiteboard_id, x=x, y=y, radius=radius
    )


@mcp_server.tool()
async def heptabase_export_whiteboard_tool(
    ctx: Context,
    whiteboard_id: str,
    output_path: str,
    output_format: str = "markdown",
    include_cards: bool = True,
    include_connections: bool = False,
    include_metadata: bool = False,
) -> dict[str, Any]:
    """Export a whiteboard to a file.

    Args:
        whiteboard_id: Whiteboard ID.
        output_path: Destination file.
        output_format: "markdown", "json", "html" or "mermaid".
        include_cards: Include card contents.
        include_connections: Include connections.
        include_metadata: Include creation metadata.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_export_whiteboard(
        _ctx(ctx),
        whiteboard_id=whiteboard_id,
        output_path=output_path,
        output_format=output_format,
        include_cards=include_cards,
        include_connections=include_connections,
        include_metadata=include_metadata,
    )


@mcp_server.tool()
async def heptabase_summarize_whiteboard_tool(
    ctx: Context,
    whiteboard_id: str,
    output_format: str = "text",
    include_statistics: bool = False,
) -> dict[str, Any]:
    """Summarize a whiteboard.

    Args:
        whiteboard_id: Whiteboard ID.
        output_format: "text" or "structured".
        include_statistics: Add word and character counts.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_summarize_whiteboard(
        _ctx(ctx),
        whiteboard_id=whiteboard_id,
        output_format=output_format,
        include_statistics=include_statistics,
    )


@mcp_server.tool()
async def heptabase_analyze_graph_tool(
    ctx: Context,
    whiteboard_id: str | None = None,
    metrics: list[str] | None = None,
    export_path: str | None = None,
) -> dict[str, Any]:
    """Analyze the knowledge graph.

    Args:
        whiteboard_id: Limit to one whiteboard.
        metrics: Any of "centrality", "clustering", "density".
        export_path: Also write the report to this JSON file.
    """
    await _ensure_loaded(_ctx(ctx))
    return heptabase_analyze_graph(
        _ctx(ctx), whiteboard_id=whiteboard_id, metrics=metrics, export_path=export_path
    )


@mcp_server.tool()
async def heptabase_compare_backups_tool(
    ctx: Context,
    backup_id_1: str,
    backup_id_2: str,
    whiteboard_id: str | None = None,
    export_path: str | None = None,
) -> dict[str, Any]:
    """Compare entity counts between two backups.

    Args:
        backup_id_1: Older backup id.
        backup_id_2: Newer backup id.
        whiteboard_id: Limit to one whiteboard.
        export_path: Also write the comparison to this JSON file.
    """
    server_ctx = _ctx(ctx)
    async with server_ctx.load_lock:
        return await asyncio.to_thread(
            heptabase_compare_backups,
            server_ctx,
            backup_id_1=backup_id_1,
            backup_id_2=backup_id_2,
            whiteboard_id=whiteboard_id,
            export_path=export_path,
        )


@mcp_server.tool()
async def heptabase_debug_info_tool(ctx: Context) -> dict[str, Any]:
    """Show configuration and loading state, for troubleshooting."""
    return heptabase_debug_info(_ctx(ctx))


def run_mcp_server(*, verbose: bool = False, log_file: Path | None = None) -> None:
    """Run the MCP server with stdio transport."""
    from heptabase_archive.logging_config import configure_logging

    configure_logging(verbose=verbose, log_file=log_file)
    mcp_server.run(transport="stdio")
