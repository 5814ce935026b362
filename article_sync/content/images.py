"""Image reference scanner.

Finds Markdown ``![alt](src "title")`` and HTML ``<img src="...">`` references
in raw text without building a document model. Used by the Markdown parser
for link destinations, by the upload helpers to rewrite references in place,
and by the HTML preprocessing step.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class ImageSyntax(str, Enum):
    """Syntax an image reference was written in."""
    MARKDOWN = "markdown"
    HTML = "html"


@dataclass(frozen=True)
class ImageMatch:
    """One image reference occurrence.

    ``full_match`` is the exact source text, so callers can replace it.
    ``src`` is returned as written (escapes are not resolved).
    """
    full_match: str
    alt: str
    src: str
    title: str | None = None
    start: int = 0
    syntax: ImageSyntax = ImageSyntax.MARKDOWN

    @property
    def end(self) -> int:
        return self.start + len(self.full_match)


@dataclass(frozen=True)
class LinkDestination:
    """Result of scanning ``(url "title")`` after a closing bracket."""
    url: str
    title: str | None
    end: int  # index just past the closing parenthesis


_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(
    r"""([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'=<>`]+))"""
)
_LAZY_SRC_ATTRS = ("data-src", "data-original", "data-actualsrc", "_src")
_FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})([^\n]*)$", re.MULTILINE)
_BACKTICK_RUN_RE = re.compile(r"`+")
_BLANK_LINE_RE = re.compile(r"\n[ \t]*\n")


def find_closing_bracket(text: str, start: int) -> int:
    """Return the index of the first unescaped ``]`` at or after ``start``.

    Returns -1 when there is none.
    """
    j = start
    length = len(text)
    while j < length:
        ch = text[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "]":
            return j
        j += 1
    return -1


def _skip_space(text: str, k: int) -> int:
    while k < len(text) and text[k].isspace():
        k += 1
    return k


def scan_link_destination(text: str, pos: int) -> LinkDestination | None:
    """Scan an inline link destination starting at the ``(`` at ``pos``.

    Supports ``<url>`` destinations, balanced parentheses inside bare URLs,
    backslash escapes, and an optional ``"title"``, ``'title'`` or
    ``(title)``.

    Returns:
        The destination, or None when the text is not a valid destination.
    """
    length = len(text)
    if pos >= length or text[pos] != "(":
        return None

    k = _skip_space(text, pos + 1)
    if k < length and text[k] == "<":
        close = text.find(">", k + 1)
        if close == -1:
            return None
        url = text[k + 1:close]
        k = close + 1
    else:
        url_start = k
        depth = 0
        while k < length:
            ch = text[k]
            if ch == "\\":
                k += 2
                continue
            if ch == "(":
                depth += 1
            elif ch == ")":
                if depth == 0:
                    break
                depth -= 1
            elif ch.isspace() and depth == 0:
                break
            k += 1
        k = min(k, length)
        url = text[url_start:k]

    if not url:
        return None

    k = _skip_space(text, k)
    title: str | None = None
    if k < length and text[k] in "\"'(":
        closer = ")" if text[k] == "(" else text[k]
        title_start = k + 1
        k += 1
        while k < length:
            ch = text[k]
            if ch == "\\":
                k += 2
                continue
            if ch == closer:
                break
            k += 1
        if k >= length:
            return None
        title = text[title_start:k]
        k = _skip_space(text, k + 1)

    if k >= length or text[k] != ")":
        return None
    return LinkDestination(url=url, title=title, end=k + 1)


def match_image_at(text: str, pos: int) -> ImageMatch | None:
    """Match a Markdown image starting exactly at ``pos`` (the ``!``)."""
    if not text.startswith("![", pos):
        return None
    alt_start = pos + 2
    alt_end = find_closing_bracket(text, alt_start)
    if alt_end == -1:
        return None
    dest = scan_link_destination(text, alt_end + 1)
    if dest is None:
        return None
    return ImageMatch(
        full_match=text[pos:dest.end],
        alt=text[alt_start:alt_end],
        src=dest.url,
        title=dest.title,
        start=pos,
    )


def _fenced_blocks(text: str) -> list[tuple[int, int]]:
    blocks: list[tuple[int, int]] = []
    pos = 0
    while True:
        m = _FENCE_OPEN_RE.search(text, pos)
        if m is None:
            break
        fence = m.group(1)
        # A backtick fence's info string cannot contain backticks
        if fence[0] == "`" and "`" in m.group(2):
            pos = m.end()
            continue
        closing = re.compile(rf"^ {{0,3}}{fence[0]}{{{len(fence)},}}[ \t]*$", re.MULTILINE)
        close = closing.search(text, m.end())
        end = close.end() if close else len(text)
        blocks.append((m.start(), end))
        pos = end
    return blocks


def _code_spans(text: str, start: int, end: int) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    pos = start
    while True:
        opener = _BACKTICK_RUN_RE.search(text, pos, end)
        if opener is None:
            break
        if opener.start() > 0 and text[opener.start() - 1] == "\\":
            pos = opener.start() + 1
            continue
        closer = _BACKTICK_RUN_RE.search(text, opener.end(), end)
        while closer is not None and len(closer.group(0)) != len(opener.group(0)):
            closer = _BACKTICK_RUN_RE.search(text, closer.end(), end)
        if closer is None:
            # Unmatched run is literal text
            pos = opener.end()
            continue
        spans.append((opener.start(), closer.end()))
        pos = closer.end()
    return spans


def code_ranges(text: str) -> list[tuple[int, int]]:
    """Offsets of fenced code blocks and inline code spans, in order.

    Code spans never cross a blank line; an unclosed fence runs to the end
    of the text.
    """
    ranges: list[tuple[int, int]] = []
    pos = 0
    for fence_start, fence_end in _fenced_blocks(text) + [(len(text), len(text))]:
        para_start = pos
        for blank in _BLANK_LINE_RE.finditer(text, pos, fence_start):
            ranges.extend(_code_spans(text, para_start, blank.start()))
            para_start = blank.end()
        ranges.extend(_code_spans(text, para_start, fence_start))
        if fence_end > fence_start:
            ranges.append((fence_start, fence_end))
        pos = fence_end
    return ranges


def _code_end(ranges: list[tuple[int, int]], pos: int) -> int | None:
    for start, end in ranges:
        if start <= pos < end:
            return end
        if start > pos:
            break
    return None


def find_markdown_images(text: str) -> list[ImageMatch]:
    """Find Markdown image references in document order.

    References inside fenced code blocks or inline code spans are literal
    text and are not reported.
    """
    code = code_ranges(text)
    results: list[ImageMatch] = []
    i = 0
    while True:
        start = text.find("![", i)
        if start == -1:
            break
        code_end = _code_end(code, start)
        if code_end is not None:
            i = code_end
            continue
        match = match_image_at(text, start)
        if match is None:
            i = start + 2
            continue
        results.append(match)
        i = match.end
    return results


def _parse_attrs(tag: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for m in _ATTR_RE.finditer(tag):
        name = m.group(1).lower()
        if name not in attrs:
            value = next(g for g in m.group(2, 3, 4) if g is not None)
            attrs[name] = value
    return attrs


def image_source_from_attrs(attrs: dict[str, str]) -> str:
    """Pick the real image source, preferring lazy-load attributes when
    ``src`` is missing or an inline SVG placeholder."""
    src = attrs.get("src", "")
    if not src or src.startswith("data:image/svg"):
        for name in _LAZY_SRC_ATTRS:
            if attrs.get(name):
                return attrs[name]
    return src


def find_html_images(text: str) -> list[ImageMatch]:
    """Find ``<img>`` tags with a usable source, in document order."""
    results: list[ImageMatch] = []
    for m in _IMG_TAG_RE.finditer(text):
        attrs = _parse_attrs(m.group(0)[4:])
        src = image_source_from_attrs(attrs)
        if not src:
            continue
        results.append(ImageMatch(
            full_match=m.group(0),
            alt=attrs.get("alt", ""),
            src=src,
            title=attrs.get("title"),
            start=m.start(),
            syntax=ImageSyntax.HTML,
        ))
    return results


def find_images(text: str, include_html: bool = True) -> list[ImageMatch]:
    """Find every image reference in ``text``.

    Args:
        text: Markdown, HTML, or a mix of both.
        include_html: Also report ``<img>`` tags.

    Returns:
        Matches in document order, one per occurrence. Duplicate sources are
        reported every time they appear. Tags written inside Markdown code
        are skipped like Markdown references.
    """
    matches = find_markdown_images(text)
    if include_html:
        code = code_ranges(text)
        matches.extend(m for m in find_html_images(text) if _code_end(code, m.start) is None)
        matches.sort(key=lambda match: match.start)
    return matches
