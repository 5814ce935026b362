"""HTML→Markdown conversion over a BeautifulSoup tree."""

from __future__ import annotations

from bs4 import BeautifulSoup
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)

from article_sync.common.config import settings
from article_sync.converter.rules import (
    SKIP_TAGS,
    ElementReducer,
    Piece,
    is_display_block,
    is_line_number_element,
    normalize_code_text,
)

_IGNORED_STRINGS = (Comment, CData, Declaration, Doctype, ProcessingInstruction)
_LINE_TAGS = ("code", "div", "p", "li")
# How far below <pre> a per-line container is searched for
MAX_LINES_CONTAINER_DEPTH = 4


def tag_attrs(tag: Tag) -> dict[str, str]:
    """Attributes with multi-valued ones (``class``) joined into strings."""
    return {
        key: " ".join(value) if isinstance(value, list) else value
        for key, value in tag.attrs.items()
    }


def _element_children(tag: Tag) -> list[Tag]:
    return [child for child in tag.children if isinstance(child, Tag)]


def _direct_text(tag: Tag) -> str:
    return "".join(
        str(child) for child in tag.children
        if isinstance(child, NavigableString) and not isinstance(child, _IGNORED_STRINGS)
    )


def _is_line_group(children: list[Tag]) -> bool:
    if len(children) < 2:
        return False
    names = {child.name for child in children}
    if len(names) == 1 and names.pop() in _LINE_TAGS:
        return True
    return all(is_display_block(tag_attrs(child)) for child in children)


def find_lines_container(tag: Tag, depth: int = 0) -> Tag | None:
    """Find the element whose children are one code line each.

    Highlighters wrap lines in sibling ``<code>``, ``<div>``, ``<p>``,
    ``<li>`` or ``display:block`` elements. The container may only hold
    whitespace without newlines between them; otherwise the line breaks
    are already in the text.
    """
    if depth > MAX_LINES_CONTAINER_DEPTH:
        return None
    direct = _direct_text(tag)
    if direct.strip() or "\n" in direct:
        return None
    children = _element_children(tag)
    if _is_line_group(children):
        return tag
    if len(children) == 1:
        return find_lines_container(children[0], depth + 1)
    return None


def extract_code_text(pre: Tag) -> str:
    """Code text of a ``<pre>``, one line per line container.

    Line-number gutters are removed from the tree first.
    """
    for gutter in pre.find_all(lambda el: is_line_number_element(tag_attrs(el))):
        gutter.decompose()

    container = find_lines_container(pre)
    if container is not None:
        lines = []
        for child in _element_children(container):
            for br in child.find_all("br"):
                br.replace_with("\n")
            lines.append(child.get_text().rstrip("\n"))
        return normalize_code_text("\n".join(lines))

    for br in pre.find_all("br"):
        br.replace_with("\n")
    return normalize_code_text(pre.get_text())


class DomConverter:
    """Converts HTML to Markdown by walking the parsed document.

    Usage:
        converter = DomConverter()
        markdown = converter.convert("<h1>Title</h1><p>Body</p>")

    Args:
        reducer: Element rules. Defaults to a fresh ``ElementReducer``.
        features: BeautifulSoup tree builder. Defaults to
            ``settings.converter.html_parser``.
    """

    def __init__(self, reducer: ElementReducer | None = None, features: str | None = None):
        self.reducer = reducer or ElementReducer()
        self.features = features or settings.converter.html_parser

    def convert(self, html: str) -> str:
        if not html or not html.strip():
            return ""
        soup = BeautifulSoup(html, self.features)
        root = soup.body if soup.body is not None else soup
        return self.reducer.finish(self._children(root))

    def _children(self, tag: Tag) -> list[Piece]:
        pieces: list[Piece] = []
        for child in tag.children:
            pieces.extend(self._node(child))
        return pieces

    def _node(self, node) -> list[Piece]:
        if isinstance(node, _IGNORED_STRINGS):
            return []
        if isinstance(node, NavigableString):
            return self.reducer.text(str(node))
        if not isinstance(node, Tag):
            return []

        name = (node.name or "").lower()
        if name == "pre":
            code = node.find("code")
            code_attrs = tag_attrs(code) if code is not None else None
            return self.reducer.code_block(tag_attrs(node), code_attrs, extract_code_text(node))
        if name == "script":
            return self.reducer.script(tag_attrs(node), _direct_text(node))
        if name in SKIP_TAGS:
            return []
        return self.reducer.reduce(name, tag_attrs(node), self._children(node))
