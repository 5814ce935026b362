"""Markdown to Doc-AST parser.

A line-oriented block classifier followed by a greedy left-to-right inline
scan. It covers the article subset of Markdown the publishing pipeline needs
(ATX headings, fenced code, display math, blockquotes, nested lists, pipe
tables, paragraphs) and never raises: anything it cannot classify is kept as
literal paragraph text.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from article_sync.content.images import match_image_at, scan_link_destination
from article_sync.content.nodes import (
    Blockquote,
    Break,
    Code,
    Delete,
    Emphasis,
    Heading,
    Image,
    InlineCode,
    Link,
    List,
    ListItem,
    Math,
    Node,
    Paragraph,
    Root,
    Strong,
    Table,
    TableCell,
    TableRow,
    Text,
    ThematicBreak,
)

# === Block patterns ===
_FENCE_OPEN_RE = re.compile(r"^( {0,3})(`{3,}|~{3,})(.*)$")
_HEADING_RE = re.compile(r"^ {0,3}(#{1,6})(?:[ \t]+(.*?))?[ \t]*$")
_HEADING_CLOSE_RE = re.compile(r"(?:^|[ \t]+)#+[ \t]*$")
_THEMATIC_RE = re.compile(r"^ {0,3}([-*_])(?:[ \t]*\1){2,}[ \t]*$")
_MATH_FENCE_RE = re.compile(r"^ {0,3}\$\$[ \t]*$")
_MATH_INLINE_BLOCK_RE = re.compile(r"^ {0,3}\$\$(.+?)\$\$[ \t]*$")
_QUOTE_RE = re.compile(r"^ {0,3}> ?")
_BULLET_RE = re.compile(r"^( *)([-*+])([ \t]+|$)(.*)$")
_ORDERED_RE = re.compile(r"^( *)(\d{1,9})([.)])([ \t]+|$)(.*)$")
_TABLE_SEPARATOR_RE = re.compile(r"^\|?[ \t]*:?-+:?[ \t]*(?:\|[ \t]*:?-+:?[ \t]*)*\|?$")

# === Inline patterns ===
_TEXT_RUN_RE = re.compile(r"[^\\!\[*_~`\n]+")
_ASCII_PUNCTUATION = set("!\"#$%&'()*+,-./:;<=>?@[\\]^_`{|}~")
_ESCAPE_RE = re.compile(r"\\([!-/:-@\[-`{-~])")


def parse_markdown(markdown: str) -> Root:
    """Parse Markdown text into a Doc-AST.

    Args:
        markdown: Article source. ``\\r\\n`` line endings are accepted.

    Returns:
        The root node. Malformed input degrades to literal text.
    """
    text = markdown.replace("\r\n", "\n").replace("\r", "\n")
    return Root(children=tuple(_BlockParser(text.split("\n")).parse()))


def unescape_markdown(text: str) -> str:
    """Resolve backslash escapes of ASCII punctuation."""
    return _ESCAPE_RE.sub(r"\1", text)


# === Blocks ===


@dataclass
class _ListMarker:
    indent: int
    ordered: bool
    start: int | None
    content: str
    content_offset: int  # column where the item content begins


def _list_marker(line: str) -> _ListMarker | None:
    if _THEMATIC_RE.match(line):
        return None
    m = _BULLET_RE.match(line)
    if m:
        indent = len(m.group(1))
        offset = indent + 1 + max(1, min(len(m.group(3)), 4))
        return _ListMarker(indent, False, None, m.group(4), offset)
    m = _ORDERED_RE.match(line)
    if m:
        indent = len(m.group(1))
        offset = indent + len(m.group(2)) + 1 + max(1, min(len(m.group(4)), 4))
        return _ListMarker(indent, True, int(m.group(2)), m.group(5), offset)
    return None


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_table_line(line: str) -> bool:
    return line.lstrip().startswith("|")


def _starts_block(line: str) -> bool:
    """Whether ``line`` opens a block that interrupts a paragraph."""
    if _FENCE_OPEN_RE.match(line) and _fence_info(line) is not None:
        return True
    return bool(
        _HEADING_RE.match(line)
        or _THEMATIC_RE.match(line)
        or _MATH_FENCE_RE.match(line)
        or _MATH_INLINE_BLOCK_RE.match(line)
        or _QUOTE_RE.match(line)
        or _is_table_line(line)
        or (_list_marker(line) is not None and _list_marker(line).content.strip())
    )


def _fence_info(line: str) -> tuple[int, str, str] | None:
    """Return (indent, fence, info) for an opening fence line."""
    m = _FENCE_OPEN_RE.match(line)
    if not m:
        return None
    fence, info = m.group(2), m.group(3).strip()
    if fence[0] == "`" and "`" in info:
        return None
    return len(m.group(1)), fence, info


def _split_table_row(line: str) -> list[str]:
    """Split a pipe-table row on unescaped ``|``."""
    row = line.strip()
    if row.startswith("|"):
        row = row[1:]
    if row.endswith("|") and not row.endswith("\\|"):
        row = row[:-1]

    cells: list[str] = []
    current: list[str] = []
    i = 0
    while i < len(row):
        ch = row[i]
        if ch == "\\" and i + 1 < len(row) and row[i + 1] == "|":
            current.append("|")
            i += 2
            continue
        if ch == "|":
            cells.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1
    cells.append("".join(current).strip())
    return cells


def _column_align(cell: str) -> str | None:
    cell = cell.strip()
    left, right = cell.startswith(":"), cell.endswith(":")
    if left and right:
        return "center"
    if right:
        return "right"
    if left:
        return "left"
    return None


class _BlockParser:
    """Consumes a list of lines into block nodes."""

    def __init__(self, lines: list[str]):
        self.lines = lines
        self.pos = 0
        # Tried in order; the paragraph rule always matches
        self._rules = (
            self._fenced_code,
            self._heading,
            self._math,
            self._thematic_break,
            self._blockquote,
            self._list,
            self._table,
            self._paragraph,
        )

    def parse(self) -> list[Node]:
        blocks: list[Node] = []
        while self.pos < len(self.lines):
            line = self.lines[self.pos]
            if _is_blank(line):
                self.pos += 1
                continue
            for rule in self._rules:
                start = self.pos
                block = rule(line)
                if block is not None:
                    blocks.append(block)
                    break
                if self.pos != start:
                    # Lines consumed without producing a node
                    break
        return blocks

    def _fenced_code(self, line: str) -> Code | None:
        info = _fence_info(line)
        if info is None:
            return None
        indent, fence, info_string = info
        self.pos += 1
        body: list[str] = []
        while self.pos < len(self.lines):
            current = self.lines[self.pos]
            stripped = current.strip()
            if (
                stripped
                and set(stripped) == {fence[0]}
                and len(stripped) >= len(fence)
                and _indent_of(current) <= 3
            ):
                self.pos += 1
                break
            strip = min(indent, _indent_of(current))
            body.append(current[strip:])
            self.pos += 1
        lang = info_string.split()[0] if info_string else None
        return Code(value="\n".join(body), lang=lang)

    def _heading(self, line: str) -> Heading | None:
        m = _HEADING_RE.match(line)
        if not m:
            return None
        self.pos += 1
        content = _HEADING_CLOSE_RE.sub("", m.group(2) or "").strip()
        return Heading(depth=len(m.group(1)), children=parse_inline(content))

    def _math(self, line: str) -> Node | None:
        m = _MATH_INLINE_BLOCK_RE.match(line)
        if m and m.group(1).strip():
            self.pos += 1
            return Math(value=m.group(1).strip())
        if not _MATH_FENCE_RE.match(line):
            return None
        for end in range(self.pos + 1, len(self.lines)):
            if _MATH_FENCE_RE.match(self.lines[end]):
                value = "\n".join(self.lines[self.pos + 1:end]).strip("\n")
                self.pos = end + 1
                return Math(value=value)
        # Unclosed: let the paragraph rule keep it as text
        return None

    def _thematic_break(self, line: str) -> ThematicBreak | None:
        if not _THEMATIC_RE.match(line):
            return None
        self.pos += 1
        return ThematicBreak()

    def _blockquote(self, line: str) -> Blockquote | None:
        if not _QUOTE_RE.match(line):
            return None
        quoted: list[str] = []
        while self.pos < len(self.lines):
            current = self.lines[self.pos]
            if _QUOTE_RE.match(current):
                quoted.append(_QUOTE_RE.sub("", current, count=1))
            elif (
                quoted
                and not _is_blank(current)
                and not _is_blank(quoted[-1])
                and not _starts_block(current)
            ):
                # Lazy continuation of the quoted paragraph
                quoted.append(current)
            else:
                break
            self.pos += 1
        return Blockquote(children=tuple(_BlockParser(quoted).parse()))

    def _list(self, line: str) -> List | None:
        first = _list_marker(line)
        if first is None or not first.content.strip():
            return None

        items: list[ListItem] = []
        while self.pos < len(self.lines):
            marker = _list_marker(self.lines[self.pos])
            if (
                marker is None
                or marker.ordered != first.ordered
                or abs(marker.indent - first.indent) > 1
            ):
                break
            items.append(self._list_item(marker, first.indent))

            # A blank line between siblings keeps the list going
            nxt = self.pos
            while nxt < len(self.lines) and _is_blank(self.lines[nxt]):
                nxt += 1
            if nxt != self.pos and nxt < len(self.lines):
                following = _list_marker(self.lines[nxt])
                if (
                    following is not None
                    and following.ordered == first.ordered
                    and abs(following.indent - first.indent) <= 1
                ):
                    self.pos = nxt
                    continue
            if nxt != self.pos:
                break

        return List(children=tuple(items), ordered=first.ordered, start=first.start)

    def _list_item(self, marker: _ListMarker, base_indent: int) -> ListItem:
        item_lines = [marker.content]
        content_indent = marker.content_offset
        self.pos += 1

        while self.pos < len(self.lines):
            current = self.lines[self.pos]
            if _is_blank(current):
                nxt = self.pos
                while nxt < len(self.lines) and _is_blank(self.lines[nxt]):
                    nxt += 1
                if nxt < len(self.lines) and _indent_of(self.lines[nxt]) >= content_indent:
                    item_lines.extend([""] * (nxt - self.pos))
                    self.pos = nxt
                    continue
                break

            indent = _indent_of(current)
            nested = _list_marker(current)
            if indent >= content_indent or (nested is not None and indent > base_indent + 1):
                item_lines.append(current[min(indent, content_indent):])
                self.pos += 1
                continue
            if nested is not None or _starts_block(current) or _is_blank(item_lines[-1]):
                break
            # Lazy paragraph continuation
            item_lines.append(current.lstrip())
            self.pos += 1

        return ListItem(children=tuple(_BlockParser(item_lines).parse()))

    def _table(self, line: str) -> Table | None:
        if not _is_table_line(line):
            return None
        rows: list[list[str]] = []
        align: tuple[str | None, ...] = ()
        while self.pos < len(self.lines):
            current = self.lines[self.pos]
            if _is_blank(current) or "|" not in current:
                break
            stripped = current.strip()
            if _TABLE_SEPARATOR_RE.match(stripped) and "-" in stripped:
                # Alignment row: consumed, never a data row
                if not align:
                    align = tuple(_column_align(c) for c in _split_table_row(stripped))
                self.pos += 1
                continue
            rows.append(_split_table_row(stripped))
            self.pos += 1

        if not rows:
            # Only separator rows: the lines are consumed, nothing is emitted
            return None

        width = len(rows[0])
        table_rows = []
        for cells in rows:
            cells = (cells + [""] * width)[:width]
            table_rows.append(TableRow(children=tuple(
                TableCell(children=parse_inline(cell)) for cell in cells
            )))
        align = (tuple(align) + (None,) * width)[:width] if align else ()
        return Table(children=tuple(table_rows), align=align)

    def _paragraph(self, line: str) -> Paragraph:
        collected = [self.lines[self.pos].lstrip()]
        self.pos += 1
        while self.pos < len(self.lines):
            current = self.lines[self.pos]
            if _is_blank(current) or _starts_block(current):
                break
            collected.append(current.lstrip())
            self.pos += 1
        return Paragraph(children=parse_inline("\n".join(collected).rstrip()))


# === Inline ===


def _find_label_end(text: str, start: int) -> int:
    """Index of the ``]`` closing a link label opened just before ``start``.

    Nested brackets (such as an image inside a link) are balanced.
    """
    depth = 0
    i = start
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "`":
            run = _run_length(text, i, "`")
            close = _find_code_close(text, i + run, run)
            i = close + run if close != -1 else i + run
            continue
        if ch == "[":
            depth += 1
        elif ch == "]":
            if depth == 0:
                return i
            depth -= 1
        i += 1
    return -1


def _run_length(text: str, pos: int, ch: str) -> int:
    end = pos
    while end < len(text) and text[end] == ch:
        end += 1
    return end - pos


def _find_code_close(text: str, start: int, run: int) -> int:
    """Find a backtick run of exactly ``run`` characters at or after ``start``."""
    i = start
    while i < len(text):
        if text[i] == "`":
            length = _run_length(text, i, "`")
            if length == run:
                return i
            i += length
        else:
            i += 1
    return -1


def _find_emphasis_close(text: str, start: int, delim: str) -> int:
    """Find the closing delimiter for an emphasis or strong span.

    ``delim`` is ``*``, ``_``, ``**`` or ``__``. Returns the index of the
    closing delimiter, or -1.
    """
    ch = delim[0]
    width = len(delim)
    i = start
    while i < len(text):
        c = text[i]
        if c == "\\":
            i += 2
            continue
        if c == "`":
            run = _run_length(text, i, "`")
            close = _find_code_close(text, i + run, run)
            i = close + run if close != -1 else i + run
            continue
        if c == "[":
            # Links are opaque to emphasis matching
            end = _find_label_end(text, i + 1)
            if end != -1:
                dest = scan_link_destination(text, end + 1)
                if dest is not None:
                    i = dest.end
                    continue
        if c != ch:
            i += 1
            continue

        run = _run_length(text, i, ch)
        if i > start and not text[i - 1].isspace():
            after = i + run
            if ch == "_" and after < len(text) and text[after].isalnum():
                i += run
                continue
            if width == 2 and run >= 2:
                return i + run - 2
            if width == 1 and run % 2 == 1:
                return i + run - 1
        i += run
    return -1


def parse_inline(text: str) -> tuple[Node, ...]:
    """Scan inline Markdown into nodes.

    Priority: escapes, image, link, strong, emphasis, strikethrough, inline
    code, hard break, then plain text up to the next special character.
    Delimiters without a valid closing partner stay literal.
    """
    nodes: list[Node] = []
    buf: list[str] = []

    def flush(strip_trailing: bool = False) -> None:
        if buf:
            value = "".join(buf)
            buf.clear()
            if strip_trailing:
                value = value.rstrip(" \t")
            if value:
                nodes.append(Text(value=value))

    i = 0
    length = len(text)
    while i < length:
        ch = text[i]

        if ch == "\\":
            if i + 1 < length and text[i + 1] == "\n":
                flush(strip_trailing=True)
                nodes.append(Break())
                i = _skip_line_indent(text, i + 2)
                continue
            if i + 1 < length and text[i + 1] in _ASCII_PUNCTUATION:
                buf.append(text[i + 1])
                i += 2
                continue
            buf.append(ch)
            i += 1
            continue

        if ch == "!":
            image = match_image_at(text, i)
            if image is not None:
                flush()
                nodes.append(Image(
                    url=unescape_markdown(image.src),
                    alt=unescape_markdown(image.alt),
                    title=unescape_markdown(image.title) if image.title else None,
                ))
                i = image.end
                continue
            buf.append(ch)
            i += 1
            continue

        if ch == "[":
            end = _find_label_end(text, i + 1)
            dest = scan_link_destination(text, end + 1) if end != -1 else None
            if dest is not None:
                flush()
                nodes.append(Link(
                    children=parse_inline(text[i + 1:end]),
                    url=unescape_markdown(dest.url),
                    title=unescape_markdown(dest.title) if dest.title else None,
                ))
                i = dest.end
                continue
            buf.append(ch)
            i += 1
            continue

        if ch in "*_":
            consumed = _parse_emphasis(text, i, nodes, flush)
            if consumed:
                i = consumed
                continue
            buf.append(ch)
            i += 1
            continue

        if ch == "~":
            if text.startswith("~~", i):
                close = text.find("~~", i + 2)
                inner = text[i + 2:close] if close != -1 else ""
                if inner and not inner[0].isspace() and not inner[-1].isspace():
                    flush()
                    nodes.append(Delete(children=parse_inline(inner)))
                    i = close + 2
                    continue
            buf.append(ch)
            i += 1
            continue

        if ch == "`":
            run = _run_length(text, i, "`")
            close = _find_code_close(text, i + run, run)
            if close == -1:
                buf.append("`" * run)
                i += run
                continue
            value = text[i + run:close].replace("\n", " ")
            if len(value) > 2 and value[0] == " " and value[-1] == " " and value.strip():
                value = value[1:-1]
            flush()
            nodes.append(InlineCode(value=value))
            i = close + run
            continue

        if ch == "\n":
            flush(strip_trailing=True)
            nodes.append(Break())
            i = _skip_line_indent(text, i + 1)
            continue

        m = _TEXT_RUN_RE.match(text, i)
        buf.append(html.unescape(m.group(0)))
        i = m.end()

    flush()
    return tuple(nodes)


def _skip_line_indent(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t":
        pos += 1
    return pos


def _parse_emphasis(text: str, pos: int, nodes: list[Node], flush) -> int:
    """Try strong, then emphasis, at ``pos``. Returns the new position or 0."""
    ch = text[pos]
    if ch == "_" and pos > 0 and text[pos - 1].isalnum():
        return 0

    run = _run_length(text, pos, ch)
    for width, factory in ((2, Strong), (1, Emphasis)):
        if run < width:
            continue
        inner_start = pos + width
        if inner_start >= len(text) or text[inner_start].isspace():
            continue
        close = _find_emphasis_close(text, inner_start, ch * width)
        if close == -1 or close == inner_start:
            continue
        flush()
        nodes.append(factory(children=parse_inline(text[inner_start:close])))
        return close + width
    return 0
