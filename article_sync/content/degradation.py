"""Capability-driven degradation of a Doc-AST.

``DEGRADATION_RULES`` maps each node type to the capability flag that gates
it and two strategies: ``keep`` when the flag is set, ``fallback`` when it is
not. ``degrade()`` applies the table to every node and returns a new tree
that only contains constructs the target can hold; the emitters never need
to check capabilities themselves.

Degradation is expected, routine behavior and is never logged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from article_sync.content.capabilities import CapabilityDescriptor, OutputFormat
from article_sync.content.nodes import (
    Blockquote,
    Break,
    Code,
    Delete,
    Emphasis,
    Heading,
    Highlight,
    Image,
    InlineCode,
    Link,
    List,
    ListItem,
    Math,
    Node,
    Paragraph,
    Parent,
    Root,
    Strong,
    Table,
    TableCell,
    TableRow,
    Text,
    ThematicBreak,
    plain_text,
)

QUOTE_PREFIX = "> "
FLATTENED_ITEM_PREFIX = "  • "
IMAGE_PLACEHOLDER = "[图片: {label}]"
TABLE_CELL_SEPARATOR = " | "

Strategy = Callable[["Degrader", Node], list]


@dataclass(frozen=True)
class DegradationRule:
    """How one node type is handled.

    Attributes:
        flag: Capability flag (short name, e.g. ``"table"``) gating the
            construct, or None when it is always emitted.
        keep: Strategy when the flag is set.
        fallback: Strategy when it is not.
    """
    flag: str | None
    keep: Strategy
    fallback: Strategy | None = None


# === Strategies ===


def _keep_children(d: Degrader, node: Parent) -> list[Node]:
    """Keep the node, degrading its children."""
    children = d.blocks(node.children) if isinstance(node, (Blockquote, ListItem)) else d.inlines(node.children)
    return [replace(node, children=tuple(children))]


def _keep_leaf(d: Degrader, node: Node) -> list[Node]:
    return [node]


def _unwrap(d: Degrader, node: Parent) -> list[Node]:
    """Drop the wrapper, keep the (degraded) inner content."""
    return d.inlines(node.children)


def _drop(d: Degrader, node: Node) -> list[Node]:
    return []


def _clamp_heading(d: Degrader, node: Heading) -> list[Node]:
    depth = min(node.depth, d.capability.max_heading_level)
    return [Heading(depth=depth, children=tuple(d.inlines(node.children)))]


def _quote_as_paragraphs(d: Degrader, node: Blockquote) -> list[Node]:
    result: list[Node] = []
    for block in d.blocks(node.children):
        for paragraph in _as_paragraphs(block):
            result.append(Paragraph(children=_prepend_text(QUOTE_PREFIX, paragraph.children)))
    return result


def _keep_list(d: Degrader, node: List) -> list[Node]:
    d.list_depth += 1
    try:
        items = [item for child in node.children for item in d.apply(child)]
    finally:
        d.list_depth -= 1
    return [List(children=tuple(items), ordered=node.ordered, start=node.start)]


def _flatten_list(d: Degrader, node: List) -> list[Node]:
    """Nested list that cannot be nested: bullet paragraphs in the parent item."""
    result: list[Node] = []
    for item in node.children:
        for child in item.children:
            if isinstance(child, List):
                # Deeper levels land on the same flat level
                result.extend(_flatten_list(d, child))
                continue
            for block in d.apply(child):
                if isinstance(block, Paragraph):
                    block = Paragraph(children=_prepend_text(FLATTENED_ITEM_PREFIX, block.children))
                result.append(block)
    return result


def _keep_table(d: Degrader, node: Table) -> list[Node]:
    rows = tuple(
        TableRow(children=tuple(
            TableCell(children=tuple(d.inlines(cell.children))) for cell in row.children
        ))
        for row in node.children
    )
    return [Table(children=rows, align=node.align)]


def _table_as_paragraphs(d: Degrader, node: Table) -> list[Node]:
    result: list[Node] = []
    for row in node.children:
        cells = [d.inlines(cell.children) for cell in row.children]
        if not any(plain_text(Paragraph(children=tuple(c))).strip() for c in cells):
            continue
        content: list[Node] = []
        for index, cell in enumerate(cells):
            if index:
                content.append(Text(value=TABLE_CELL_SEPARATOR))
            content.extend(cell)
        result.append(Paragraph(children=tuple(_merge_text(content))))
    return result


def _code_as_paragraph(d: Degrader, node: Code) -> list[Node]:
    if not node.value:
        return []
    return [Paragraph(children=(Text(value=node.value),))]


def _math_as_code(d: Degrader, node: Math) -> list[Node]:
    # Chains through the code rule, which may degrade further
    return d.apply(Code(value=node.value, lang="latex"))


def _image_as_text(d: Degrader, node: Image) -> list[Node]:
    return [Text(value=IMAGE_PLACEHOLDER.format(label=node.alt or node.url))]


def _bold_fallback(d: Degrader, node: Strong) -> list[Node]:
    children = d.inlines(node.children)
    if d.capability.support_highlight:
        return [Highlight(children=tuple(children))]
    return children


def _inline_code_as_text(d: Degrader, node: InlineCode) -> list[Node]:
    return [Text(value=node.value)]


DEGRADATION_RULES: dict[type, DegradationRule] = {
    Heading: DegradationRule(None, _clamp_heading),
    Paragraph: DegradationRule(None, _keep_children),
    Blockquote: DegradationRule("blockquote", _keep_children, _quote_as_paragraphs),
    List: DegradationRule("nested_list", _keep_list, _flatten_list),
    ListItem: DegradationRule(None, _keep_children),
    Table: DegradationRule("table", _keep_table, _table_as_paragraphs),
    Code: DegradationRule("code_block", _keep_leaf, _code_as_paragraph),
    Math: DegradationRule("latex", _keep_leaf, _math_as_code),
    ThematicBreak: DegradationRule("horizontal_rule", _keep_leaf, _drop),
    Text: DegradationRule(None, _keep_leaf),
    Image: DegradationRule("image", _keep_leaf, _image_as_text),
    Strong: DegradationRule("bold", _keep_children, _bold_fallback),
    Highlight: DegradationRule("highlight", _keep_children, _unwrap),
    Emphasis: DegradationRule("italic", _keep_children, _unwrap),
    Delete: DegradationRule("strikethrough", _keep_children, _unwrap),
    InlineCode: DegradationRule("inline_code", _keep_leaf, _inline_code_as_text),
    Link: DegradationRule("link", _keep_children, _unwrap),
    Break: DegradationRule("hard_break", _keep_leaf, _drop),
}


# === Helpers ===


def _merge_text(nodes: list[Node]) -> list[Node]:
    """Merge adjacent text nodes and drop empty ones."""
    merged: list[Node] = []
    for node in nodes:
        if isinstance(node, Text):
            if not node.value:
                continue
            if merged and isinstance(merged[-1], Text):
                merged[-1] = Text(value=merged[-1].value + node.value)
                continue
        merged.append(node)
    return merged


def _prepend_text(prefix: str, children: tuple[Node, ...]) -> tuple[Node, ...]:
    return tuple(_merge_text([Text(value=prefix), *children]))


def _as_paragraphs(block: Node) -> list[Paragraph]:
    """Reduce an already-degraded block to paragraphs."""
    if isinstance(block, Paragraph):
        return [block]
    if isinstance(block, Heading):
        return [Paragraph(children=block.children)]
    if isinstance(block, (Blockquote, ListItem)):
        return [p for child in block.children for p in _as_paragraphs(child)]
    if isinstance(block, List):
        return [p for item in block.children for p in _as_paragraphs(item)]
    text = plain_text(block)
    return [Paragraph(children=(Text(value=line),)) for line in text.split("\n") if line.strip()]


# === Driver ===


class Degrader:
    """Applies ``DEGRADATION_RULES`` for one capability and output format."""

    def __init__(self, capability: CapabilityDescriptor, output_format: OutputFormat):
        self.capability = capability
        self.output_format = output_format
        self.list_depth = 0

    def enabled(self, flag: str | None) -> bool:
        if flag is None:
            return True
        if flag == "nested_list":
            # Top-level lists are always allowed
            return self.list_depth == 0 or self.capability.support_nested_list
        if flag == "hard_break":
            return self.output_format != OutputFormat.RICH_DOCUMENT
        return self.capability.supports(flag)

    def apply(self, node: Node) -> list[Node]:
        rule = DEGRADATION_RULES.get(type(node))
        if rule is None:
            raise TypeError(f"No degradation rule for node type {node.type!r}")
        if self.enabled(rule.flag) or rule.fallback is None:
            return rule.keep(self, node)
        return rule.fallback(self, node)

    def blocks(self, nodes: tuple[Node, ...]) -> list[Node]:
        return [out for node in nodes for out in self.apply(node)]

    def inlines(self, nodes: tuple[Node, ...]) -> list[Node]:
        return _merge_text([out for node in nodes for out in self.apply(node)])


def degrade(
    tree: Root,
    capability: CapabilityDescriptor,
    output_format: OutputFormat | None = None,
) -> Root:
    """Return a copy of ``tree`` reduced to what ``capability`` supports.

    Args:
        tree: Parsed document. It is not modified.
        capability: Target platform descriptor.
        output_format: Overrides ``capability.output_format`` (decides
            whether hard breaks survive).

    Returns:
        A new tree containing no construct the capability forbids.
    """
    degrader = Degrader(capability, output_format or capability.output_format)
    return Root(children=tuple(degrader.blocks(tree.children)))
