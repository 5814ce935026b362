"""Doc-AST: the immutable intermediate content tree.

Node type strings follow mdast naming so ``to_dict()`` output can be fed to
tools that speak mdast. Containers hold their children as tuples; the tree is
built once by the parser (or the degradation pass, which builds a new one)
and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Iterator


@dataclass(frozen=True)
class Node:
    """Base class for every Doc-AST node."""

    type: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a plain mdast-shaped dict."""
        data: dict[str, Any] = {"type": self.type}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "children":
                data["children"] = [child.to_dict() for child in value]
            elif value is not None:
                data[f.name] = list(value) if isinstance(value, tuple) else value
        return data


@dataclass(frozen=True)
class Parent(Node):
    """A node with ordered children."""

    children: tuple[Node, ...] = ()

    # Subclasses restrict what may appear in ``children``.
    child_types: ClassVar[tuple[type, ...]] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))
        if self.child_types:
            for child in self.children:
                if not isinstance(child, self.child_types):
                    raise TypeError(
                        f"{self.type} cannot contain {type(child).__name__}"
                    )


# === Inline ===


@dataclass(frozen=True)
class Text(Node):
    type: ClassVar[str] = "text"
    value: str = ""


@dataclass(frozen=True)
class Strong(Parent):
    type: ClassVar[str] = "strong"


@dataclass(frozen=True)
class Emphasis(Parent):
    type: ClassVar[str] = "emphasis"


@dataclass(frozen=True)
class Delete(Parent):
    type: ClassVar[str] = "delete"


@dataclass(frozen=True)
class Highlight(Parent):
    """Highlight mark. Only produced when degrading bold text."""
    type: ClassVar[str] = "highlight"


@dataclass(frozen=True)
class InlineCode(Node):
    type: ClassVar[str] = "inlineCode"
    value: str = ""


@dataclass(frozen=True)
class Link(Parent):
    type: ClassVar[str] = "link"
    url: str = ""
    title: str | None = None


@dataclass(frozen=True)
class Image(Node):
    type: ClassVar[str] = "image"
    url: str = ""
    alt: str = ""
    title: str | None = None


@dataclass(frozen=True)
class Break(Node):
    type: ClassVar[str] = "break"


INLINE_TYPES: tuple[type, ...] = (
    Text, Strong, Emphasis, Delete, Highlight, InlineCode, Link, Image, Break,
)


# === Block ===


@dataclass(frozen=True)
class Heading(Parent):
    type: ClassVar[str] = "heading"
    child_types: ClassVar[tuple[type, ...]] = INLINE_TYPES
    depth: int = 1

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "depth", max(1, min(6, int(self.depth))))


@dataclass(frozen=True)
class Paragraph(Parent):
    type: ClassVar[str] = "paragraph"
    child_types: ClassVar[tuple[type, ...]] = INLINE_TYPES


@dataclass(frozen=True)
class Code(Node):
    type: ClassVar[str] = "code"
    value: str = ""
    lang: str | None = None


@dataclass(frozen=True)
class Math(Node):
    """Display LaTeX block (``$$ ... $$``)."""
    type: ClassVar[str] = "math"
    value: str = ""


@dataclass(frozen=True)
class ThematicBreak(Node):
    type: ClassVar[str] = "thematicBreak"


@dataclass(frozen=True)
class TableCell(Parent):
    type: ClassVar[str] = "tableCell"
    child_types: ClassVar[tuple[type, ...]] = INLINE_TYPES


@dataclass(frozen=True)
class TableRow(Parent):
    type: ClassVar[str] = "tableRow"
    child_types: ClassVar[tuple[type, ...]] = (TableCell,)


@dataclass(frozen=True)
class Table(Parent):
    """Pipe table. The first row is the header row."""
    type: ClassVar[str] = "table"
    child_types: ClassVar[tuple[type, ...]] = (TableRow,)
    # One of None, "left", "right", "center" per column
    align: tuple[str | None, ...] = field(default=())

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.align, tuple):
            object.__setattr__(self, "align", tuple(self.align))


@dataclass(frozen=True)
class Blockquote(Parent):
    type: ClassVar[str] = "blockquote"


@dataclass(frozen=True)
class ListItem(Parent):
    type: ClassVar[str] = "listItem"


@dataclass(frozen=True)
class List(Parent):
    type: ClassVar[str] = "list"
    child_types: ClassVar[tuple[type, ...]] = (ListItem,)
    ordered: bool = False
    start: int | None = None


@dataclass(frozen=True)
class Root(Parent):
    type: ClassVar[str] = "root"


BLOCK_TYPES: tuple[type, ...] = (
    Heading, Paragraph, Blockquote, List, Table, Code, Math, ThematicBreak,
)


def walk(node: Node) -> Iterator[Node]:
    """Yield ``node`` and all of its descendants in document order."""
    yield node
    if isinstance(node, Parent):
        for child in node.children:
            yield from walk(child)


def plain_text(node: Node) -> str:
    """Concatenate the textual content below ``node``."""
    if isinstance(node, (Text, InlineCode, Code, Math)):
        return node.value
    if isinstance(node, Image):
        return node.alt
    if isinstance(node, Break):
        return "\n"
    if isinstance(node, Parent):
        return "".join(plain_text(child) for child in node.children)
    return ""
