"""Markdown syntax helpers shared by the Markdown emitter and the HTML
converters, so both directions write the same dialect."""

from __future__ import annotations

import re
from typing import Sequence

_ESCAPE_RE = re.compile(r"([\\`*_\[\]~])")
# "<" that could open a tag, "&" that could start an entity
_TAG_OPEN_RE = re.compile(r"<(?=[A-Za-z/!?])")
_ENTITY_RE = re.compile(r"&(?=#?\w+;)")
_LINE_START_RE = re.compile(r"^([ \t]*)(#|>|\||[-+](?=\s)|\$\$)", re.MULTILINE)
_ORDERED_START_RE = re.compile(r"^([ \t]*\d+)([.)])(?=\s|$)", re.MULTILINE)

ALIGN_MARKERS = {None: "---", "left": ":--", "right": "--:", "center": ":-:"}
LIST_INDENT = "    "
HARD_BREAK = "  \n"


def escape_markdown(text: str) -> str:
    """Backslash-escape inline Markdown syntax characters.

    Text that would read as raw HTML or an entity reference is written as
    an entity instead.
    """
    text = _ESCAPE_RE.sub(r"\\\1", text)
    text = _ENTITY_RE.sub("&amp;", text)
    return _TAG_OPEN_RE.sub("&lt;", text)


def escape_line_starts(text: str) -> str:
    """Escape text that would otherwise open a block at the start of a line."""
    text = _LINE_START_RE.sub(r"\1\\\2", text)
    return _ORDERED_START_RE.sub(r"\1\\\2", text)


def longest_backtick_run(text: str) -> int:
    return max((len(run) for run in re.findall(r"`+", text)), default=0)


def code_fence(value: str) -> str:
    """Shortest backtick fence (min 3) longer than any run in ``value``."""
    return "`" * max(3, longest_backtick_run(value) + 1)


def fenced_code(value: str, lang: str | None = None) -> str:
    fence = code_fence(value)
    return f"{fence}{lang or ''}\n{value}\n{fence}"


def inline_code(value: str) -> str:
    ticks = "`" * (longest_backtick_run(value) + 1)
    pad = " " if value.startswith("`") or value.endswith("`") else ""
    return f"{ticks}{pad}{value}{pad}{ticks}"


def display_math(value: str) -> str:
    return f"$$\n{value.strip()}\n$$"


def link_destination(url: str, title: str | None = None) -> str:
    if re.search(r"\s", url) or url.count("(") != url.count(")"):
        url = f"<{url}>"
    if title:
        escaped = title.replace('"', '\\"')
        return f'{url} "{escaped}"'
    return url


def pipe_table(
    rows: Sequence[Sequence[str]],
    align: Sequence[str | None] = (),
) -> str:
    """Render a pipe table. ``rows[0]`` is the header row.

    Cell text must already be inline Markdown; pipes are escaped here and
    short rows are padded to the widest row.
    """
    if not rows:
        return ""
    width = max(len(row) for row in rows)
    cleaned = [
        [cell.replace("\n", " ").replace("|", "\\|").strip() for cell in row] + [""] * (width - len(row))
        for row in rows
    ]
    aligns = list(align)[:width] + [None] * (width - len(align))
    lines = ["| " + " | ".join(cleaned[0]) + " |"]
    lines.append("| " + " | ".join(ALIGN_MARKERS.get(a, "---") for a in aligns) + " |")
    lines.extend("| " + " | ".join(row) + " |" for row in cleaned[1:])
    return "\n".join(lines)


def list_item(marker: str, body: str) -> str:
    """Prefix ``body`` with a list marker, indenting continuation lines."""
    first, *rest = body.split("\n") if body else [""]
    lines = [(marker + first).rstrip()]
    lines.extend(LIST_INDENT + line if line else "" for line in rest)
    return "\n".join(lines)


def list_block(items: list[str]) -> str:
    """Join rendered list items.

    A list whose items span several blocks is loose: its items are separated
    by a blank line, or the next marker would continue the previous paragraph.
    """
    separator = "\n\n" if any("\n\n" in item for item in items) else "\n"
    return separator.join(items)


def blockquote(body: str) -> str:
    return "\n".join(f"> {line}" if line else ">" for line in body.split("\n"))


def escape_script_text(text: str) -> str:
    """Keep ``</`` in a ``<script>`` body from closing the element."""
    return text.replace("</", "<\\/")


def unescape_script_text(text: str) -> str:
    return text.replace("<\\/", "</")
