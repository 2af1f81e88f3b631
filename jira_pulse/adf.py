"""Atlassian Document Format (ADF) to markdown conversion."""

from typing import Any

LIST_TYPES = ("bulletList", "orderedList")


def adf_to_markdown(document: Any) -> str | None:
    """Convert an ADF document to trimmed markdown.

    Returns None for a missing or empty document. Plain strings (older
    instances, REST v2 payloads) are trimmed and passed through.
    """
    if document is None:
        return None
    if isinstance(document, str):
        return document.strip() or None
    if not isinstance(document, dict):
        return None

    text = "".join(_render_block(node, 0) for node in document.get("content") or [])
    return text.strip() or None


def _apply_marks(text: str, marks: list[dict[str, Any]]) -> str:
    for mark in reversed(marks or []):
        mark_type = mark.get("type")
        if mark_type == "strong":
            text = f"**{text}**"
        elif mark_type in ("em", "underline"):
            text = f"*{text}*"
        elif mark_type == "code":
            text = f"`{text}`"
        elif mark_type == "strike":
            text = f"~~{text}~~"
        elif mark_type == "link":
            href = (mark.get("attrs") or {}).get("href")
            if href:
                text = f"[{text}]({href})"
    return text


def _render_inline(node: dict[str, Any], plain: bool = False) -> str:
    node_type = node.get("type")
    attrs = node.get("attrs") or {}

    if node_type == "text":
        text = node.get("text", "")
        return text if plain else _apply_marks(text, node.get("marks") or [])
    if node_type == "hardBreak":
        return " " if plain else "\n"
    if node_type == "mention":
        name = attrs.get("text") or attrs.get("id") or "mention"
        return name if name.startswith("@") else f"@{name}"
    if node_type == "emoji":
        return attrs.get("text") or attrs.get("shortName", "")
    if node_type == "inlineCard":
        url = attrs.get("url", "")
        return f"[{url}]({url})" if url else ""
    if node_type == "status":
        return f"[{attrs.get('text', '')}]"
    if node_type == "date":
        return str(attrs.get("timestamp", ""))

    return "".join(_render_inline(child, plain) for child in node.get("content") or [])


def _render_list(node: dict[str, Any], depth: int) -> str:
    lines: list[str] = []
    indent = "  " * depth
    ordered = node.get("type") == "orderedList"
    start = (node.get("attrs") or {}).get("order", 1)

    for index, item in enumerate(node.get("content") or [], start=start):
        text_parts: list[str] = []
        nested: list[str] = []
        for child in item.get("content") or []:
            if child.get("type") in LIST_TYPES:
                nested.append(_render_list(child, depth + 1))
            else:
                text_parts.append(_render_block(child, depth + 1).strip())

        marker = f"{index}." if ordered else "-"
        lines.append(f"{indent}{marker} {' '.join(p for p in text_parts if p)}")
        lines.extend(nested)

    return "\n".join(lines)


def _render_table(node: dict[str, Any]) -> str:
    rows: list[str] = []
    for row_index, row in enumerate(node.get("content") or []):
        cells = [
            "".join(_render_inline(block, plain=True) for block in cell.get("content") or [])
            .replace("|", "\\|")
            .strip()
            for cell in row.get("content") or []
        ]
        if not cells:
            continue
        rows.append("| " + " | ".join(cells) + " |")
        if row_index == 0:
            rows.append("| " + " | ".join(["---"] * len(cells)) + " |")
    return "\n".join(rows) + "\n\n" if rows else ""


def _render_block(node: dict[str, Any], depth: int) -> str:
    if not isinstance(node, dict):
        return ""

    node_type = node.get("type")
    content = node.get("content") or []

    if node_type == "paragraph":
        text = "".join(_render_inline(child) for child in content).strip()
        return f"{text}\n\n" if text else ""

    if node_type == "heading":
        level = (node.get("attrs") or {}).get("level", 1)
        text = "".join(_render_inline(child) for child in content).strip()
        return f"{'#' * level} {text}\n\n" if text else ""

    if node_type in LIST_TYPES:
        text = _render_list(node, depth)
        return f"{text}\n\n" if text else ""

    if node_type == "codeBlock":
        language = (node.get("attrs") or {}).get("language") or ""
        code = "".join(child.get("text", "") for child in content)
        return f"```{language}\n{code}\n```\n\n"

    if node_type in ("blockquote", "panel"):
        inner = "".join(_render_block(child, depth) for child in content).strip()
        if not inner:
            return ""
        return "\n".join(f"> {line}" if line.strip() else ">" for line in inner.split("\n")) + "\n\n"

    if node_type == "rule":
        return "---\n\n"

    if node_type == "table":
        return _render_table(node)

    if node_type in ("mediaSingle", "mediaGroup", "media"):
        return ""

    # Unknown block: keep whatever inline text it carries.
    text = "".join(_render_inline(child) for child in content).strip()
    return f"{text}\n\n" if text else ""
