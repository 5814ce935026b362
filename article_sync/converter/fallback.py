"""DOM-free HTML→Markdown conversion.

Used where a DOM cannot be built. A regex tokenizer splits the input into
text, tag and raw-text tokens, recognising only tag names from a finite
allow-list: anything else in angle brackets (``<T>`` in a code sample, say)
stays text. The converter consumes the token stream as events, keeping a
stack of open elements and reducing each one with the same
``ElementReducer`` rules the DOM converter uses when it closes. Entities
are decoded once, after tokenization.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Iterator

from article_sync.converter.rules import (
    HTML_TAGS,
    VOID_TAGS,
    ElementReducer,
    Piece,
    is_display_block,
    is_line_number_element,
)

RAW_TEXT_TAGS = frozenset({"script", "style"})

_TOKEN_RE = re.compile(
    r"(?P<comment><!--.*?(?:-->|\Z))"
    r"|(?P<cdata><!\[CDATA\[.*?(?:\]\]>|\Z))"
    r"|(?P<decl><![^>]*>|<\?[^>]*>)"
    r"|</(?P<end>[A-Za-z][\w:-]*)\s*>"
    r"|<(?P<start>[A-Za-z][\w:-]*)"
    r"(?P<attrs>(?:\s+[^\s=>/\"']+(?:\s*=\s*(?:\"[^\"]*\"|'[^']*'|[^\s\"'>]+))?)*)"
    r"\s*(?P<close>/?)>",
    re.DOTALL,
)
_ATTR_RE = re.compile(r"""([^\s=>/"']+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?""")

# Opening one of these implicitly closes the named open element, searching
# no further than the boundary elements
_IMPLIED_CLOSE = {
    "li": ({"li"}, {"ul", "ol"}),
    "dt": ({"dt", "dd"}, {"dl"}),
    "dd": ({"dt", "dd"}, {"dl"}),
    "tr": ({"tr", "td", "th"}, {"table", "thead", "tbody", "tfoot"}),
    "td": ({"td", "th"}, {"tr", "table"}),
    "th": ({"td", "th"}, {"tr", "table"}),
    "thead": ({"thead", "tbody", "tfoot", "tr", "td", "th"}, {"table"}),
    "tbody": ({"thead", "tbody", "tfoot", "tr", "td", "th"}, {"table"}),
    "tfoot": ({"thead", "tbody", "tfoot", "tr", "td", "th"}, {"table"}),
}
# Block elements that may not sit inside an open <p>
_CLOSES_PARAGRAPH = frozenset({
    "address", "article", "aside", "blockquote", "div", "dl", "fieldset",
    "figure", "footer", "form", "h1", "h2", "h3", "h4", "h5", "h6", "header",
    "hr", "main", "nav", "ol", "p", "pre", "section", "table", "ul",
})
_CODE_LINE_TAGS = frozenset({"div", "p", "li"})


@dataclass
class Token:
    """One tokenizer event.

    Attributes:
        kind: ``text``, ``start``, ``end`` or ``raw`` (script/style body).
        name: Lower-cased tag name.
        attrs: Attribute values, entity-decoded.
        data: Undecoded text for ``text`` and ``raw`` tokens.
        self_closing: ``<tag/>`` syntax.
    """
    kind: str
    name: str = ""
    attrs: dict[str, str] = field(default_factory=dict)
    data: str = ""
    self_closing: bool = False


def is_known_tag(name: str) -> bool:
    """Allow-listed tag, or a custom element (names with a hyphen)."""
    return name in HTML_TAGS or "-" in name


def parse_attrs(text: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for m in _ATTR_RE.finditer(text or ""):
        name = m.group(1).lower()
        value = next((g for g in m.group(2, 3, 4) if g is not None), "")
        attrs.setdefault(name, html.unescape(value))
    return attrs


def tokenize(source: str) -> Iterator[Token]:
    """Split HTML into tokens.

    Comments, CDATA sections and declarations are dropped. Script and style
    bodies are emitted whole as ``raw`` tokens. Tags whose names are not
    known come out as ``text``.
    """
    pos = 0
    length = len(source)
    while pos < length:
        m = _TOKEN_RE.search(source, pos)
        if m is None:
            yield Token("text", data=source[pos:])
            return
        if m.start() > pos:
            yield Token("text", data=source[pos:m.start()])
        pos = m.end()

        if m.group("comment") or m.group("cdata") or m.group("decl"):
            continue

        name = (m.group("end") or m.group("start")).lower()
        if not is_known_tag(name):
            yield Token("text", data=m.group(0))
            continue
        if m.group("end"):
            yield Token("end", name=name)
            continue

        attrs = parse_attrs(m.group("attrs"))
        self_closing = bool(m.group("close"))
        if name in RAW_TEXT_TAGS and not self_closing:
            close = re.compile(rf"</{name}\s*>", re.IGNORECASE).search(source, pos)
            end = close.start() if close else length
            yield Token("raw", name=name, attrs=attrs, data=source[pos:end])
            pos = close.end() if close else length
            continue
        yield Token("start", name=name, attrs=attrs, self_closing=self_closing)


@dataclass
class _Frame:
    name: str
    attrs: dict[str, str]
    children: list[Piece] = field(default_factory=list)


@dataclass
class _OpenCodeTag:
    name: str
    skipping: bool
    ends_line: bool


@dataclass
class _PreState:
    """Text collection inside ``<pre>``.

    Closing a line element (``div``, ``p``, ``li``, a ``display:block``
    element, or one of several sibling ``<code>`` elements) leaves a pending
    line break, written before the next text unless that text starts with
    its own newline.
    """
    attrs: dict[str, str]
    code_attrs: dict[str, str] | None = None
    parts: list[str] = field(default_factory=list)
    open_tags: list[_OpenCodeTag] = field(default_factory=list)
    pending_break: bool = False
    bare_text: bool = False

    @property
    def skipping(self) -> bool:
        return any(tag.skipping for tag in self.open_tags)

    def write(self, value: str) -> None:
        if not value:
            return
        if self.pending_break:
            if value.startswith("\n"):
                self.pending_break = False
            elif not value.strip(" \t"):
                return
            else:
                self.parts.append("\n")
                self.pending_break = False
        if not self.open_tags and value.strip():
            self.bare_text = True
        self.parts.append(value)


class FallbackConverter:
    """Converts HTML to Markdown from a token stream, without a DOM.

    Usage:
        markdown = FallbackConverter().convert("<p>Hello <b>world</b></p>")
    """

    def __init__(self, reducer: ElementReducer | None = None):
        self.reducer = reducer or ElementReducer()
        self._stack: list[_Frame] = []
        self._pre: _PreState | None = None

    def convert(self, source: str) -> str:
        if not source or not source.strip():
            return ""
        self._stack = [_Frame("#root", {})]
        self._pre = None
        for token in tokenize(source):
            self.feed(token)
        self._close_all()
        return self.reducer.finish(self._stack[0].children)

    @property
    def _top(self) -> _Frame:
        return self._stack[-1]

    def feed(self, token: Token) -> None:
        if self._pre is not None:
            self._feed_pre(token)
        elif token.kind == "text":
            self._top.children.extend(self.reducer.text(html.unescape(token.data)))
        elif token.kind == "raw":
            if token.name == "script":
                self._top.children.extend(self.reducer.script(token.attrs, token.data))
        elif token.kind == "start":
            self._start(token)
        elif token.kind == "end":
            self._end(token.name)

    # --- element stack ---

    def _start(self, token: Token) -> None:
        name = token.name
        if name in _CLOSES_PARAGRAPH and self._top.name == "p":
            self._pop()
        if name in _IMPLIED_CLOSE:
            targets, boundaries = _IMPLIED_CLOSE[name]
            self._close_open(targets, boundaries)

        if name == "pre" and not token.self_closing:
            self._pre = _PreState(attrs=token.attrs)
            return
        if name in VOID_TAGS or token.self_closing:
            self._top.children.extend(self.reducer.reduce(name, token.attrs, []))
            return
        self._stack.append(_Frame(name, token.attrs))

    def _end(self, name: str) -> None:
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].name == name:
                while len(self._stack) > index:
                    self._pop()
                return

    def _close_open(self, targets: set[str], boundaries: set[str]) -> None:
        # Close the outermost target below the nearest boundary
        found = None
        for index in range(len(self._stack) - 1, 0, -1):
            frame_name = self._stack[index].name
            if frame_name in boundaries:
                break
            if frame_name in targets:
                found = index
        if found is not None:
            while len(self._stack) > found:
                self._pop()

    def _pop(self) -> None:
        frame = self._stack.pop()
        self._top.children.extend(self.reducer.reduce(frame.name, frame.attrs, frame.children))

    def _close_all(self) -> None:
        if self._pre is not None:
            self._finish_pre()
        while len(self._stack) > 1:
            self._pop()

    # --- preformatted text ---

    def _feed_pre(self, token: Token) -> None:
        pre = self._pre
        if token.kind == "text":
            if not pre.skipping:
                pre.write(html.unescape(token.data))
            return
        if token.kind == "raw":
            return

        name = token.name
        if token.kind == "start":
            skipping = pre.skipping or is_line_number_element(token.attrs)
            if name == "br":
                if not skipping:
                    pre.write("\n")
                return
            if name in VOID_TAGS or token.self_closing:
                return
            if name == "code" and pre.code_attrs is None:
                pre.code_attrs = token.attrs
            ends_line = (
                name in _CODE_LINE_TAGS
                or is_display_block(token.attrs)
                or (name == "code" and not pre.open_tags and not pre.bare_text)
            )
            pre.open_tags.append(_OpenCodeTag(name, skipping, ends_line))
            return

        # end tag
        for index in range(len(pre.open_tags) - 1, -1, -1):
            if pre.open_tags[index].name == name:
                closed = pre.open_tags[index]
                del pre.open_tags[index:]
                if closed.ends_line and not closed.skipping:
                    pre.pending_break = True
                return
        if name == "pre":
            self._finish_pre()

    def _finish_pre(self) -> None:
        pre = self._pre
        self._pre = None
        text = "".join(pre.parts)
        self._top.children.extend(self.reducer.code_block(pre.attrs, pre.code_attrs, text))
