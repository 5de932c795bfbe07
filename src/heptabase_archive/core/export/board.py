"""Export a board's contents to a file, and summarize boards."""

import html
import io
import json
from pathlib import Path

from loguru import logger

from heptabase_archive.core.query.engine import QueryEngine
from heptabase_archive.core.render.content import to_plain_text
from heptabase_archive.models.entities import BoardView

EXPORT_FORMATS = ("markdown", "json", "html", "mermaid")
SUMMARY_FORMATS = ("text", "structured")


def render_markdown(view: BoardView, *, include_metadata: bool = False) -> str:
    board = view.board
    out = io.StringIO()
    out.write(f"# {board.name}\n\n")

    if include_metadata:
        out.write("## Metadata\n")
        out.write(f"- Created: {board.created_time}\n")
        out.write(f"- Last Modified: {board.last_edited_time}\n")
        out.write(f"- Created By: {board.created_by}\n\n")

    if view.cards:
        out.write("## Cards\n\n")
        for card in view.cards:
            out.write(f"### {card.display_title}\n")
            out.write(to_plain_text(card.content) + "\n\n")

    if view.connections:
        out.write("## Connections\n\n")
        for connection in view.connections:
            out.write(f"- {connection.begin_id} → {connection.end_id}\n")
        out.write("\n")

    return out.getvalue()


def render_html(view: BoardView, *, include_metadata: bool = False) -> str:
    board = view.board
    name = html.escape(board.name)
    lines = ["<!DOCTYPE html>", "<html>", "<head>", f"<title>{name}</title>", "</head>"]
    lines += ["<body>", f"<h1>{name}</h1>"]

    if include_metadata:
        lines.append('<div class="metadata">')
        lines.append(f"<p>Created: {html.escape(board.created_time)}</p>")
        lines.append(f"<p>Last Modified: {html.escape(board.last_edited_time)}</p>")
        lines.append(f"<p>Created By: {html.escape(board.created_by)}</p>")
        lines.append("</div>")

    if view.cards:
        lines.append("<h2>Cards</h2>")
        for card in view.cards:
            lines.append('<div class="card">')
            lines.append(f"<h3>{html.escape(card.display_title)}</h3>")
            lines.append(f"<p>{html.escape(to_plain_text(card.content))}</p>")
            lines.append("</div>")

    if view.connections:
        lines.append("<h2>Connections</h2>")
        lines.append("<ul>")
        for connection in view.connections:
            begin = html.escape(connection.begin_id)
            end = html.escape(connection.end_id)
            lines.append(f"<li>{begin} &rarr; {end}</li>")
        lines.append("</ul>")

    lines += ["</body>", "</html>"]
    return "\n".join(lines) + "\n"


def _mermaid_id(raw: str) -> str:
    return "n_" + "".join(ch if ch.isalnum() else "_" for ch in raw)


def render_mermaid(view: BoardView, engine: QueryEngine) -> str:
    """Flowchart with one node per placement and one edge per connection."""
    out = io.StringIO()
    out.write("graph LR\n")
    for placement in engine.store.placements_on_board(view.board.id):
        card = engine.store.get_card(placement.card_id)
        if card is None:
            continue
        label = card.display_title.replace('"', "'")
        out.write(f'    {_mermaid_id(placement.id)}["{label}"]\n')
    for connection in view.connections or ():
        out.write(f"    {_mermaid_id(connection.begin_id)} --> {_mermaid_id(connection.end_id)}\n")
    return out.getvalue()


def export_board(
    engine: QueryEngine,
    board_id: str,
    output_path: Path,
    *,
    fmt: str = "markdown",
    include_cards: bool = True,
    include_connections: bool = False,
    include_metadata: bool = False,
) -> Path:
    """Write a rendering of a board to ``output_path``, creating parent dirs.

    Raises:
        ValueError: If ``fmt`` is not one of EXPORT_FORMATS.
        NotFoundError: If the board does not exist.
    """
    if fmt not in EXPORT_FORMATS:
        msg = f"Unknown export format {fmt!r}, expected one of {EXPORT_FORMATS}"
        raise ValueError(msg)

    view = engine.get_board(
        board_id,
        include_cards=include_cards,
        # Mermaid edges come from connections.
        include_connections=include_connections or fmt == "mermaid",
    )

    if fmt == "markdown":
        contents = render_markdown(view, include_metadata=include_metadata)
    elif fmt == "json":
        contents = json.dumps(view.to_dict(), indent=2, ensure_ascii=False) + "\n"
    elif fmt == "html":
        contents = render_html(view, include_metadata=include_metadata)
    else:
        contents = render_mermaid(view, engine)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(contents, encoding="utf-8")
    logger.info("Exported board {} as {} to {}", board_id, fmt, output_path)
    return output_path


def _text_statistics(view: BoardView) -> tuple[int, int]:
    words = 0
    chars = 0
    for card in view.cards or ():
        text = to_plain_text(card.content)
        words += len(text.split())
        chars += len(text)
    return words, chars


def summarize_board(
    engine: QueryEngine,
    board_id: str,
    *,
    fmt: str = "text",
    include_statistics: bool = False,
) -> str:
    """Short textual summary of a board: card titles and counts."""
    if fmt not in SUMMARY_FORMATS:
        msg = f"Unknown summary format {fmt!r}, expected one of {SUMMARY_FORMATS}"
        raise ValueError(msg)

    view = engine.get_board(board_id, include_cards=True, include_connections=True)
    cards = view.cards or ()
    connections = view.connections or ()
    lines: list[str] = []

    if fmt == "text":
        lines += [view.board.name, ""]
        lines += [f"Summary: {len(cards)} cards, {len(connections)} connections", ""]
        if include_statistics:
            words, chars = _text_statistics(view)
            lines += ["Statistics:", f"- Word count: {words}", f"- Character count: {chars}", ""]
        if cards:
            lines.append("Cards:")
            lines += [f"- {card.display_title}" for card in cards]
    else:
        lines += [f"# Summary: {view.board.name}", ""]
        lines += ["## Overview", f"- Total Cards: {len(cards)}"]
        lines += [f"- Total Connections: {len(connections)}", ""]
        lines.append("## Key Topics")
        lines += [f"- {card.display_title}" for card in cards[:5]]
        if len(cards) > 5:
            lines.append(f"- ... and {len(cards) - 5} more")
        lines += ["", "## Statistics", f"- {len(cards)} cards", f"- {len(connections)} connections"]
        if include_statistics:
            words, chars = _text_statistics(view)
            lines += [f"- Word count: {words}", f"- Character count: {chars}"]

    return "\n".join(lines)
