"""HTML element rules shared by the DOM and DOM-free converters.

Both converters walk the input in document order and, whenever an element
closes, hand its tag name, attributes and already-converted children to
``ElementReducer.reduce``. Children and results are ``Piece`` lists: inline
Markdown runs, finished blocks, and the intermediate parts of lists, tables
and KaTeX markup. Keeping the rules here means the two converters can only
differ in how they tokenize and how they recover code-block lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from article_sync.common.config import settings
from article_sync.content.images import image_source_from_attrs
from article_sync.content.syntax import (
    HARD_BREAK,
    display_math,
    escape_line_starts,
    escape_markdown,
    fenced_code,
    inline_code,
    link_destination,
    list_block,
    list_item,
    pipe_table,
    unescape_script_text,
    blockquote,
)

# Hard-break sentinel while inline runs are assembled
BREAK_MARK = "\x00"

# Structural and formatting tags the DOM-free tokenizer treats as markup.
# Anything else written as <name> is literal text.
HTML_TAGS = frozenset({
    "a", "abbr", "address", "annotation", "area", "article", "aside", "audio",
    "b", "base", "bdi", "bdo", "big", "blockquote", "body", "br", "button",
    "canvas", "caption", "center", "cite", "code", "col", "colgroup", "data",
    "dd", "del", "details", "dfn", "dialog", "div", "dl", "dt", "em", "embed",
    "fieldset", "figcaption", "figure", "font", "footer", "form",
    "h1", "h2", "h3", "h4", "h5", "h6", "head", "header", "hgroup", "hr",
    "html", "i", "iframe", "img", "input", "ins", "kbd", "label", "legend",
    "li", "link", "main", "mark", "math", "meta", "mi", "mn", "mo", "mrow",
    "ms", "msub", "msup", "mfrac", "msqrt", "mtext", "nav", "noscript",
    "object", "ol", "optgroup", "option", "p", "param", "picture", "pre", "q",
    "rp", "rt", "ruby", "s", "samp", "script", "section", "select",
    "semantics", "small", "source", "span", "strike", "strong", "style",
    "sub", "summary", "sup", "svg", "table", "tbody", "td", "template",
    "textarea", "tfoot", "th", "thead", "time", "title", "tr", "track", "tt",
    "u", "ul", "var", "video", "wbr",
    # WeChat article markup
    "mpprofile", "qqmusic", "mpvoice", "mpcps",
})

VOID_TAGS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input", "link",
    "meta", "param", "source", "track", "wbr",
})

# Content is dropped along with the element
SKIP_TAGS = frozenset({
    "head", "title", "meta", "link", "style", "noscript", "iframe",
    "template", "svg", "canvas", "button", "input", "select", "option",
    "optgroup", "textarea", "object", "embed", "audio", "video", "source",
    "track", "mpprofile", "qqmusic", "mpvoice", "mpcps", "dialog", "rp",
})

CONTAINER_TAGS = frozenset({
    "p", "div", "section", "article", "main", "header", "footer", "aside",
    "nav", "body", "html", "center", "address", "details", "summary", "form",
    "fieldset", "legend", "dl", "dt", "dd", "hgroup",
})

HEADING_TAGS = {f"h{level}": level for level in range(1, 7)}

# Gutters emitted by common highlighters
LINE_NUMBER_CLASSES = frozenset({
    "code-snippet__line-index", "line-numbers-rows", "hljs-ln-numbers",
    "gutter", "linenos", "line-number", "line-numbers-wrapper",
})

KNOWN_LANGUAGES = frozenset({
    "javascript", "js", "typescript", "ts", "python", "py", "java", "c",
    "cpp", "csharp", "cs", "go", "golang", "rust", "ruby", "php", "swift",
    "kotlin", "scala", "bash", "sh", "shell", "zsh", "powershell", "sql",
    "html", "xml", "css", "scss", "less", "json", "yaml", "yml", "toml",
    "markdown", "md", "dockerfile", "makefile", "lua", "perl", "r", "dart",
    "objectivec", "latex", "tex", "diff", "plaintext", "text",
})

_LANG_ATTRS = ("data-lang", "data-language", "lang", "language")
_LANG_CLASS_RE = (
    re.compile(r"(?:^|\s)language-([\w+#.-]+)"),
    re.compile(r"(?:^|\s)lang-([\w+#.-]+)"),
    re.compile(r"brush:\s*([\w+#.-]+)"),
)
_VALID_LANG_RE = re.compile(r"^[\w+#.-]+$")
_WHITESPACE_RE = re.compile(r"\s+")
_SPACES_RE = re.compile(r" {2,}")
_TEXT_ALIGN_RE = re.compile(r"text-align\s*:\s*(left|right|center)", re.IGNORECASE)
_DISPLAY_BLOCK_RE = re.compile(r"display\s*:\s*block", re.IGNORECASE)


# === Pieces ===


@dataclass
class Piece:
    """A converted fragment.

    Attributes:
        kind: ``inline``, ``block``, ``list`` (a rendered list block),
            ``item`` (a list item body), ``row``, ``cell``, ``caption`` or
            ``tex`` (TeX source; ``data`` is True for display math).
        text: Markdown for the fragment.
        raw: Plain text, for inline pieces that end up in code spans.
        data: Kind-specific payload (``TableRowData``, cell info).
    """
    kind: str
    text: str = ""
    raw: str = ""
    data: Any = None


@dataclass
class TableRowData:
    cells: list[str] = field(default_factory=list)
    aligns: list[str | None] = field(default_factory=list)
    all_header: bool = False
    in_head: bool = False


def inline(text: str, raw: str | None = None) -> Piece:
    return Piece("inline", text, text if raw is None else raw)


def block(text: str) -> Piece:
    return Piece("block", text)


def tex_piece(tex: str, display: bool) -> Piece:
    return Piece("tex", raw=tex, data=display)


# === Attribute helpers ===


def class_names(attrs: Mapping[str, Any]) -> list[str]:
    value = attrs.get("class") or ""
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return str(value).split()


def is_line_number_element(attrs: Mapping[str, Any]) -> bool:
    return any(name in LINE_NUMBER_CLASSES for name in class_names(attrs))


def is_display_block(attrs: Mapping[str, Any]) -> bool:
    return bool(_DISPLAY_BLOCK_RE.search(attrs.get("style") or ""))


def cell_alignment(attrs: Mapping[str, Any]) -> str | None:
    """``align`` attribute, else ``text-align`` in the inline style."""
    align = (attrs.get("align") or "").strip().lower()
    if align in ("left", "right", "center"):
        return align
    m = _TEXT_ALIGN_RE.search(attrs.get("style") or "")
    return m.group(1).lower() if m else None


def language_from_class(class_value: str) -> str:
    for pattern in _LANG_CLASS_RE:
        m = pattern.search(class_value)
        if m:
            return m.group(1)
    names = class_value.split()
    if "hljs" in names:
        for name in names:
            if name != "hljs" and not name.startswith("hljs-"):
                return name
    for name in names:
        if name.lower() in KNOWN_LANGUAGES:
            return name
    return ""


def _explicit_language(attrs: Mapping[str, Any]) -> str:
    for key in _LANG_ATTRS:
        value = attrs.get(key)
        if value:
            return str(value)
    return ""


def resolve_code_language(
    pre_attrs: Mapping[str, Any],
    code_attrs: Mapping[str, Any] | None = None,
    default: str | None = None,
) -> str:
    """Pick the fence language for a code block.

    Order: an explicit language attribute on ``<pre>``, then the inner
    ``<code>`` (attribute or ``language-``/``lang-``/``hljs`` class), then
    the class of ``<pre>`` itself, then ``default``.
    """
    candidates = [_explicit_language(pre_attrs)]
    if code_attrs is not None:
        candidates.append(_explicit_language(code_attrs))
        candidates.append(language_from_class(" ".join(class_names(code_attrs))))
    candidates.append(language_from_class(" ".join(class_names(pre_attrs))))
    for lang in candidates:
        lang = lang.strip().lower()
        if lang and _VALID_LANG_RE.match(lang):
            return lang
    return settings.converter.default_code_language if default is None else default


def normalize_code_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    return text.strip("\n")


def is_display_math_script(attrs: Mapping[str, Any]) -> bool:
    kind = (attrs.get("type") or "").lower()
    return kind.startswith("math/tex") and "mode=display" in kind


def is_math_script(attrs: Mapping[str, Any]) -> bool:
    return (attrs.get("type") or "").lower().startswith("math/tex")


# === Inline assembly ===


def inline_markdown(pieces: Iterable[Piece]) -> str:
    """Join pieces as inline Markdown; block content is run together."""
    parts = []
    for piece in pieces:
        if piece.kind == "inline":
            parts.append(piece.text)
        elif piece.kind == "tex":
            parts.append(f"${piece.raw}$")
        elif piece.kind == "row":
            parts.append(" " + " | ".join(piece.data.cells) + " ")
        elif piece.text:
            parts.append(" " + piece.text.replace("\n", " ") + " ")
    return "".join(parts)


def inline_raw(pieces: Iterable[Piece]) -> str:
    return "".join(piece.raw if piece.kind in ("inline", "tex") else " " + piece.raw + " " for piece in pieces)


def finish_inline(text: str, keep_breaks: bool = True) -> str:
    """Collapse whitespace and turn break sentinels into hard breaks."""
    text = _SPACES_RE.sub(" ", text.replace("\n", " "))
    lines = [line.strip() for line in text.split(BREAK_MARK)]
    lines = [line for line in lines if line]
    return (HARD_BREAK if keep_breaks else " ").join(lines)


def _wrap(pieces: list[Piece], delimiter: str) -> list[Piece]:
    """Wrap inline content, moving edge whitespace outside the delimiters."""
    md = inline_markdown(pieces)
    raw = inline_raw(pieces)
    core = md.strip(" " + BREAK_MARK)
    if not core:
        return [inline(md, raw)] if md else []
    start = md.index(core)
    lead, trail = md[:start], md[start + len(core):]
    return [inline(f"{lead}{delimiter}{core}{delimiter}{trail}", raw)]


# === Reducer ===


class ElementReducer:
    """Turns one closed element plus its converted children into pieces.

    Args:
        default_code_language: Fence language when none can be detected.
            Defaults to ``settings.converter.default_code_language``.
    """

    def __init__(self, default_code_language: str | None = None):
        self.default_code_language = (
            default_code_language
            if default_code_language is not None
            else settings.converter.default_code_language
        )

    # --- leaves ---

    def text(self, value: str) -> list[Piece]:
        collapsed = _WHITESPACE_RE.sub(" ", value)
        if not collapsed:
            return []
        return [inline(escape_markdown(collapsed), collapsed)]

    def code_block(
        self,
        pre_attrs: Mapping[str, Any],
        code_attrs: Mapping[str, Any] | None,
        text: str,
    ) -> list[Piece]:
        value = normalize_code_text(text)
        if not value.strip():
            return []
        lang = resolve_code_language(pre_attrs, code_attrs, self.default_code_language)
        return [block(fenced_code(value, lang))]

    def script(self, attrs: Mapping[str, Any], content: str) -> list[Piece]:
        if not is_math_script(attrs):
            return []
        tex = unescape_script_text(content).strip()
        if not tex:
            return []
        return [tex_piece(tex, is_display_math_script(attrs))]

    # --- elements ---

    def reduce(self, name: str, attrs: Mapping[str, Any], children: list[Piece]) -> list[Piece]:
        name = name.lower()
        if name in SKIP_TAGS or name == "script":
            return []
        if name in HEADING_TAGS:
            text = finish_inline(inline_markdown(children), keep_breaks=False)
            return [block("#" * HEADING_TAGS[name] + " " + text)] if text else []
        if name == "br":
            return [inline(BREAK_MARK, "\n")]
        if name == "hr":
            return [block("---")]
        if name == "img":
            return self._image(attrs)
        if name in ("ul", "ol"):
            return self._list(name == "ol", attrs, children)
        if name == "li":
            return [Piece("item", self._item_body(children))]
        if name == "blockquote":
            body = join_blocks(self.blocks(children))
            return [block(blockquote(body))] if body else []
        if name == "figure":
            return self._figure(children)
        if name in ("figcaption", "caption"):
            text = finish_inline(inline_markdown(children), keep_breaks=False)
            return [Piece("caption", text, text)] if text else []
        if name == "table":
            return self._table(children)
        if name == "thead":
            for piece in children:
                if piece.kind == "row":
                    piece.data.in_head = True
            return children
        if name == "tr":
            return self._row(children)
        if name in ("td", "th"):
            text = finish_inline(inline_markdown(children), keep_breaks=False)
            return [Piece("cell", text, text, (name == "th", cell_alignment(attrs)))]
        if name == "a":
            return self._link(attrs, children)
        if name in ("strong", "b"):
            return _wrap(children, "**")
        if name in ("em", "i", "cite", "dfn", "var"):
            return _wrap(children, "*")
        if name in ("del", "s", "strike"):
            return _wrap(children, "~~")
        if name in ("code", "kbd", "samp", "tt"):
            raw = _WHITESPACE_RE.sub(" ", inline_raw(children))
            return [inline(inline_code(raw), raw)] if raw.strip() else []
        if name == "annotation":
            if "tex" in (attrs.get("encoding") or "").lower():
                tex = inline_raw(children).strip()
                return [tex_piece(tex, False)] if tex else []
            return []
        if name == "math":
            return self._mathml(attrs, children)
        names = class_names(attrs)
        if "katex-display" in names:
            tex = _find_tex(children)
            return [tex_piece(tex, True)] if tex else []
        if "katex" in names:
            tex = _find_tex(children)
            return [tex_piece(tex, False)] if tex else []
        if name in CONTAINER_TAGS:
            return self.blocks(children)
        return children

    # --- blocks ---

    def blocks(self, pieces: list[Piece]) -> list[Piece]:
        """Group inline runs into paragraphs; keep blocks and lists."""
        out: list[Piece] = []
        run: list[Piece] = []

        def flush() -> None:
            text = finish_inline(inline_markdown(run))
            run.clear()
            if text:
                out.append(block(escape_line_starts(text)))

        for piece in pieces:
            if piece.kind == "inline" or (piece.kind == "tex" and not piece.data):
                run.append(piece)
                continue
            flush()
            if piece.kind in ("block", "list"):
                out.append(piece)
            elif piece.kind == "tex":
                out.append(block(display_math(piece.raw)))
            elif piece.kind == "caption":
                out.append(block(f"*{piece.text}*"))
            elif piece.kind == "item":
                out.append(Piece("list", list_item("- ", piece.text)))
            elif piece.kind == "row":
                text = " | ".join(cell for cell in piece.data.cells if cell)
                if text:
                    out.append(block(escape_line_starts(text)))
            elif piece.kind == "cell" and piece.text:
                out.append(block(escape_line_starts(piece.text)))
        flush()
        return out

    def _item_body(self, children: list[Piece]) -> str:
        parts: list[str] = []
        previous = None
        for piece in self.blocks(children):
            if parts:
                # A nested list hugs the paragraph it belongs to
                parts.append("\n" if piece.kind == "list" and previous != "list" else "\n\n")
            parts.append(piece.text)
            previous = piece.kind
        return "".join(parts)

    def _list(self, ordered: bool, attrs: Mapping[str, Any], children: list[Piece]) -> list[Piece]:
        bodies: list[str] = []
        for piece in children:
            if piece.kind == "item":
                bodies.append(piece.text)
            elif piece.kind == "list" and bodies:
                bodies[-1] = bodies[-1] + "\n" + piece.text
            elif piece.kind in ("inline", "block"):
                text = finish_inline(piece.text) if piece.kind == "inline" else piece.text
                if text:
                    bodies.append(text)
        if not bodies:
            return []
        start = _as_int(attrs.get("start"), 1) if ordered else 1
        lines = []
        for index, body in enumerate(bodies):
            marker = f"{start + index}. " if ordered else "- "
            lines.append(list_item(marker, body))
        return [Piece("list", list_block(lines))]

    def _image(self, attrs: Mapping[str, Any]) -> list[Piece]:
        src = image_source_from_attrs(attrs)
        if not src:
            return []
        alt = _WHITESPACE_RE.sub(" ", attrs.get("alt") or "").strip()
        title = attrs.get("title") or None
        md = f"![{escape_markdown(alt)}]({link_destination(src, title)})"
        return [inline(md, alt)]

    def _link(self, attrs: Mapping[str, Any], children: list[Piece]) -> list[Piece]:
        href = (attrs.get("href") or "").strip()
        text = finish_inline(inline_markdown(children), keep_breaks=False)
        if not href or href.startswith("javascript:"):
            return [inline(text, inline_raw(children))] if text else []
        label = text or escape_markdown(href)
        title = attrs.get("title") or None
        return [inline(f"[{label}]({link_destination(href, title)})", inline_raw(children))]

    def _figure(self, children: list[Piece]) -> list[Piece]:
        captions = [piece for piece in children if piece.kind == "caption"]
        body = self.blocks([piece for piece in children if piece.kind != "caption"])
        body.extend(block(f"*{caption.text}*") for caption in captions)
        return body

    def _row(self, children: list[Piece]) -> list[Piece]:
        cells = [piece for piece in children if piece.kind == "cell"]
        if not cells:
            return []
        data = TableRowData(
            cells=[cell.text for cell in cells],
            aligns=[cell.data[1] for cell in cells],
            all_header=all(cell.data[0] for cell in cells),
        )
        return [Piece("row", data=data)]

    def _table(self, children: list[Piece]) -> list[Piece]:
        rows = [piece.data for piece in children if piece.kind == "row"]
        captions = [piece for piece in children if piece.kind == "caption"]
        if not rows:
            return []
        # Header: the <thead> row, else the first all-<th> row, else the
        # first row. A first row of plain <td> cells is an approximation.
        header_index = next((i for i, row in enumerate(rows) if row.in_head), None)
        if header_index is None:
            header_index = next((i for i, row in enumerate(rows) if row.all_header), 0)
        header = rows[header_index]
        body = rows[:header_index] + rows[header_index + 1:]
        result = [block(pipe_table([header.cells] + [row.cells for row in body], header.aligns))]
        result.extend(block(f"*{caption.text}*") for caption in captions)
        return result

    def _mathml(self, attrs: Mapping[str, Any], children: list[Piece]) -> list[Piece]:
        tex = _find_tex(children)
        if not tex:
            text = finish_inline(inline_raw(children), keep_breaks=False)
            return [inline(escape_markdown(text), text)] if text else []
        return [tex_piece(tex, (attrs.get("display") or "").lower() == "block")]

    def finish(self, pieces: list[Piece]) -> str:
        """Final Markdown for a document's top-level pieces."""
        return join_blocks(self.blocks(pieces))


def join_blocks(pieces: Iterable[Piece]) -> str:
    return "\n\n".join(piece.text for piece in pieces if piece.text)


def _find_tex(pieces: Iterable[Piece]) -> str:
    for piece in pieces:
        if piece.kind == "tex" and piece.raw.strip():
            return piece.raw.strip()
    return ""


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
