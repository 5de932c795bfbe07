"""Render card rich-document content as markdown, HTML or plain text.

Card content is a JSON tree: element nodes carry ``type``, optional
``attrs`` and ``content`` children; ``text`` leaves carry ``text`` and
optional inline ``marks``.
"""

import html
import io
import json
from typing import Any


def parse_document(content: str) -> Any | None:
    """Parse serialized card content, returning None when it is not JSON."""
    try:
        return json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return None


def _children(node: dict[str, Any]) -> list[Any]:
    children = node.get("content")
    return children if isinstance(children, list) else []


def _attrs(node: dict[str, Any]) -> dict[str, Any]:
    attrs = node.get("attrs")
    return attrs if isinstance(attrs, dict) else {}


def _heading_level(node: dict[str, Any]) -> int:
    try:
        level = int(_attrs(node).get("level") or 1)
    except (TypeError, ValueError):
        return 1
    return max(1, min(level, 6))


# --- Markdown ---


def _markdown_marks(text: str, marks: list[dict[str, Any]]) -> str:
    for mark in marks:
        kind = mark.get("type")
        if kind == "bold":
            text = f"**{text}**"
        elif kind == "italic":
            text = f"*{text}*"
        elif kind == "code":
            text = f"`{text}`"
        elif kind == "strike":
            text = f"~~{text}~~"
        elif kind == "link":
            href = (mark.get("attrs") or {}).get("href") or "#"
            text = f"[{text}]({href})"
    return text


def _markdown_node(node: Any, out: io.StringIO) -> None:
    if not isinstance(node, dict):
        return
    kind = node.get("type")

    if kind == "text":
        out.write(_markdown_marks(node.get("text", ""), node.get("marks") or []))
    elif kind == "heading":
        out.write("#" * _heading_level(node) + " " + _markdown_inline(node) + "\n\n")
    elif kind == "paragraph":
        out.write(_markdown_inline(node) + "\n\n")
    elif kind == "bullet_list_item":
        out.write("- " + _markdown_inline(node).strip() + "\n")
    elif kind == "ordered_list":
        for i, child in enumerate(_children(node), start=1):
            item = io.StringIO()
            _markdown_node(child, item)
            text = item.getvalue().strip()
            if text.startswith("- "):
                text = text[2:]
            out.write(f"{i}. {text}\n")
    elif kind == "code_block":
        lang = str(_attrs(node).get("params") or "").replace("!", "")
        out.write(f"```{lang}\n{_markdown_inline(node)}\n```\n\n")
    elif kind == "horizontal_rule":
        out.write("---\n\n")
    elif kind == "blockquote":
        quoted = _markdown_inline(node).rstrip("\n")
        out.write("> " + quoted.replace("\n", "\n> ") + "\n\n")
    elif kind == "card":
        out.write(f"[Card Reference: {_attrs(node).get('cardId')}]\n")
    elif kind == "image":
        attrs = _attrs(node)
        out.write(f"![{attrs.get('alt') or ''}]({attrs.get('src') or ''})\n\n")
    else:
        # doc, bullet_list and unknown containers
        for child in _children(node):
            _markdown_node(child, out)


def _markdown_inline(node: dict[str, Any]) -> str:
    out = io.StringIO()
    for child in _children(node):
        _markdown_node(child, out)
    return out.getvalue()


def to_markdown(content: str) -> str:
    """Render card content as markdown. Unparseable content is returned as-is."""
    doc = parse_document(content)
    if doc is None:
        return content
    out = io.StringIO()
    _markdown_node(doc, out)
    return out.getvalue()


# --- HTML ---


def _html_marks(text: str, marks: list[dict[str, Any]]) -> str:
    for mark in marks:
        kind = mark.get("type")
        if kind == "bold":
            text = f"<strong>{text}</strong>"
        elif kind == "italic":
            text = f"<em>{text}</em>"
        elif kind == "code":
            text = f"<code>{text}</code>"
        elif kind == "strike":
            text = f"<s>{text}</s>"
        elif kind == "link":
            href = (mark.get("attrs") or {}).get("href") or "#"
            text = f'<a href="{html.escape(str(href))}">{text}</a>'
    return text


def _html_node(node: Any) -> str:
    if not isinstance(node, dict):
        return ""
    kind = node.get("type")
    inner = "".join(_html_node(child) for child in _children(node))

    if kind == "text":
        return _html_marks(html.escape(node.get("text", "")), node.get("marks") or [])
    if kind == "heading":
        level = _heading_level(node)
        return f"<h{level}>{inner}</h{level}>"
    if kind == "paragraph":
        return f"<p>{inner}</p>"
    if kind == "bullet_list":
        return f"<ul>{inner}</ul>"
    if kind == "ordered_list":
        return f"<ol>{inner}</ol>"
    if kind == "bullet_list_item":
        return f"<li>{inner}</li>"
    if kind == "code_block":
        return f"<pre><code>{inner}</code></pre>"
    if kind == "blockquote":
        return f"<blockquote>{inner}</blockquote>"
    if kind == "horizontal_rule":
        return "<hr>"
    if kind == "card":
        card_id = html.escape(str(_attrs(node).get("cardId")))
        return f'<div class="card-reference" data-card-id="{card_id}">[Card: {card_id}]</div>'
    if kind == "image":
        attrs = _attrs(node)
        src = html.escape(str(attrs.get("src") or ""))
        alt = html.escape(str(attrs.get("alt") or ""))
        return f'<img src="{src}" alt="{alt}">'
    return inner


def to_html(content: str) -> str:
    """Render card content as an HTML fragment."""
    doc = parse_document(content)
    if doc is None:
        return f"<p>{html.escape(content)}</p>"
    return _html_node(doc)


# --- Plain text ---


def _text_parts(node: Any) -> list[str]:
    if isinstance(node, str):
        return [node]
    if not isinstance(node, dict):
        return []
    if isinstance(node.get("text"), str):
        return [node["text"]]
    parts: list[str] = []
    for child in _children(node):
        parts.extend(_text_parts(child))
    return parts


def to_plain_text(content: str) -> str:
    """Concatenate every text leaf, separated by spaces."""
    doc = parse_document(content)
    if doc is None:
        return content
    return " ".join(part for part in _text_parts(doc) if part)
