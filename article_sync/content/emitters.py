"""Target-format emitters.

Each emitter turns an already-degraded Doc-AST into one output format. They
trust the degradation pass: anything present in the tree is supported by
the target, so no capability checks happen here except image sizing.
"""

from __future__ import annotations

import html
import math
from typing import Any, Mapping

from article_sync.content.capabilities import CapabilityDescriptor
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
    Root,
    Strong,
    Table,
    Text,
    ThematicBreak,
)
from article_sync.content.syntax import (
    HARD_BREAK,
    blockquote,
    display_math,
    escape_line_starts,
    escape_markdown,
    escape_script_text,
    fenced_code,
    inline_code,
    link_destination,
    list_block,
    list_item,
    pipe_table,
)
from article_sync.content.uploads import UploadedImage

IMAGE_PERCENT = 30


def display_size(
    image: UploadedImage | None,
    max_width: int,
) -> tuple[int, int]:
    """Size an image to ``max_width`` keeping its aspect ratio.

    Height is 0 when the original dimensions are unknown.
    """
    if image is None or not image.width or not image.height:
        return max_width, 0
    # Round half up, matching how the editors compute it
    return max_width, int(math.floor(max_width * image.height / image.width + 0.5))


class _Emitter:
    """Shared state for one emit call."""

    def __init__(
        self,
        capability: CapabilityDescriptor,
        resolved: Mapping[str, UploadedImage] | None = None,
    ):
        self.capability = capability
        self.resolved = resolved or {}

    def image_source(self, node: Image) -> tuple[str, UploadedImage | None]:
        uploaded = self.resolved.get(node.url)
        return (uploaded.url if uploaded else node.url), uploaded

    def emit(self, tree: Root) -> Any:
        raise NotImplementedError


# === Rich document ===


class RichDocumentEmitter(_Emitter):
    """Emits a ProseMirror-style ``doc`` node tree."""

    def emit(self, tree: Root) -> dict[str, Any]:
        content = self._blocks(tree.children)

        # Editors reject a document opening with empty paragraphs
        while content and _is_empty_paragraph(content[0]):
            content.pop(0)
        if not content:
            content.append({"type": "paragraph"})

        return {"type": "doc", "content": [normalize_node(node) for node in content]}

    def _blocks(self, nodes: tuple[Node, ...]) -> list[dict[str, Any]]:
        return [out for node in nodes for out in self._block(node)]

    def _block(self, node: Node) -> list[dict[str, Any]]:
        if isinstance(node, Paragraph):
            return self._paragraph(node)
        if isinstance(node, Heading):
            text, images = self._split_inline(node.children)
            return [{"type": "heading", "attrs": {"level": node.depth}, "content": text}, *images]
        if isinstance(node, Blockquote):
            return [{"type": "blockquote", "content": self._blocks(node.children)}]
        if isinstance(node, List):
            items = [self._list_item(item) for item in node.children]
            if node.ordered:
                return [{
                    "type": "orderedList",
                    "attrs": {"start": node.start or 1, "type": None},
                    "content": items,
                }]
            return [{"type": "bulletList", "content": items}]
        if isinstance(node, Code):
            return [{
                "type": "codeBlock",
                "attrs": {"language": node.lang or ""},
                "content": [{"type": "text", "text": node.value}],
            }]
        if isinstance(node, Math):
            return [{
                "type": "mathBlock",
                "attrs": {"language": "latex"},
                "content": [{"type": "text", "text": node.value}],
            }]
        if isinstance(node, ThematicBreak):
            return [{"type": "horizontalRule"}]
        if isinstance(node, Table):
            return self._table(node)
        return []

    def _paragraph(self, node: Paragraph) -> list[dict[str, Any]]:
        """Split text and images into alternating paragraph / image blocks."""
        result: list[dict[str, Any]] = []
        pending: list[dict[str, Any]] = []
        for item in self._inlines(node.children, []):
            if isinstance(item, Image):
                if pending:
                    result.append({"type": "paragraph", "content": pending})
                    pending = []
                result.append(self._image(item))
            else:
                pending.append(item)
        if pending or not result:
            result.append({"type": "paragraph", "content": pending})
        return result

    def _list_item(self, item: ListItem) -> dict[str, Any]:
        content = self._blocks(item.children)
        return {"type": "listItem", "content": content or [{"type": "paragraph"}]}

    def _table(self, node: Table) -> list[dict[str, Any]]:
        rows = []
        trailing_images: list[dict[str, Any]] = []
        for index, row in enumerate(node.children):
            cell_type = "tableHeader" if index == 0 else "tableCell"
            cells = []
            for cell in row.children:
                text, images = self._split_inline(cell.children)
                trailing_images.extend(images)
                cells.append({
                    "type": cell_type,
                    "content": [{"type": "paragraph", "content": text}],
                })
            rows.append({"type": "tableRow", "content": cells})
        return [{"type": "table", "content": rows}, *trailing_images]

    def _split_inline(self, nodes: tuple[Node, ...]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Inline content plus the images lifted out of it as blocks."""
        text: list[dict[str, Any]] = []
        images: list[dict[str, Any]] = []
        for item in self._inlines(nodes, []):
            if isinstance(item, Image):
                images.append(self._image(item))
            else:
                text.append(item)
        return text, images

    def _inlines(self, nodes: tuple[Node, ...], marks: list[dict[str, Any]]) -> list[Any]:
        out: list[Any] = []
        for node in nodes:
            if isinstance(node, Text):
                out.append(_text_node(node.value, marks))
            elif isinstance(node, Strong):
                out.extend(self._inlines(node.children, _add_mark(marks, {"type": "bold"})))
            elif isinstance(node, Highlight):
                out.extend(self._inlines(node.children, _add_mark(marks, {"type": "highlight"})))
            elif isinstance(node, Emphasis):
                out.extend(self._inlines(node.children, _add_mark(marks, {"type": "italic"})))
            elif isinstance(node, Delete):
                out.extend(self._inlines(node.children, _add_mark(marks, {"type": "strike"})))
            elif isinstance(node, InlineCode):
                out.append(_text_node(node.value, _add_mark(marks, {"type": "code"})))
            elif isinstance(node, Link):
                link = {"type": "link", "attrs": {"href": node.url}}
                out.extend(self._inlines(node.children, _add_mark(marks, link)))
            elif isinstance(node, Break):
                out.append({"type": "hardBreak"})
            elif isinstance(node, Image):
                out.append(node)
        return out

    def _image(self, node: Image) -> dict[str, Any]:
        src, uploaded = self.image_source(node)
        width, height = display_size(uploaded, self.capability.max_image_width)
        return {
            "type": "image",
            "attrs": {
                "imgs": [{
                    "src": src,
                    "desc": "",
                    "percent": IMAGE_PERCENT,
                    "width": width,
                    "height": height,
                }],
            },
        }


def _text_node(text: str, marks: list[dict[str, Any]]) -> dict[str, Any]:
    node: dict[str, Any] = {"type": "text", "text": text}
    if marks:
        node["marks"] = [dict(mark) for mark in marks]
    return node


def _add_mark(marks: list[dict[str, Any]], mark: dict[str, Any]) -> list[dict[str, Any]]:
    # Marks form an ordered set keyed by type
    if any(existing["type"] == mark["type"] for existing in marks):
        return marks
    return [*marks, mark]


def _is_empty_paragraph(node: dict[str, Any]) -> bool:
    return node.get("type") == "paragraph" and not any(
        not (child.get("type") == "text" and not child.get("text"))
        for child in node.get("content") or []
    )


def normalize_node(node: dict[str, Any]) -> dict[str, Any]:
    """Order keys as type, attrs, marks, content, text and drop empty text.

    An empty ``content`` array is omitted entirely.
    """
    result: dict[str, Any] = {"type": node["type"]}
    if node.get("attrs") is not None:
        result["attrs"] = node["attrs"]
    if node.get("marks") is not None:
        result["marks"] = [
            {"type": mark["type"], **({"attrs": mark["attrs"]} if mark.get("attrs") is not None else {})}
            for mark in node["marks"]
        ]
    if node.get("content") is not None:
        content = [
            normalize_node(child)
            for child in node["content"]
            if not (child.get("type") == "text" and not child.get("text"))
        ]
        if content:
            result["content"] = content
    if node.get("text") is not None:
        result["text"] = node["text"]
    return result


# === Markdown ===


class MarkdownEmitter(_Emitter):
    """Emits Markdown text."""

    def emit(self, tree: Root) -> str:
        text = self._blocks(tree.children)
        return text + "\n" if text else ""

    def _blocks(self, nodes: tuple[Node, ...]) -> str:
        parts = [self._block(node) for node in nodes]
        return "\n\n".join(part for part in parts if part)

    def _block(self, node: Node) -> str:
        if isinstance(node, Paragraph):
            return escape_line_starts(self._inlines(node.children))
        if isinstance(node, Heading):
            return "#" * node.depth + " " + self._inlines(node.children).replace("\n", " ")
        if isinstance(node, Blockquote):
            return blockquote(self._blocks(node.children))
        if isinstance(node, List):
            start = node.start or 1
            return list_block([
                list_item(f"{start + index}. " if node.ordered else "- ", self._list_item(item))
                for index, item in enumerate(node.children)
            ])
        if isinstance(node, Code):
            return fenced_code(node.value, node.lang)
        if isinstance(node, Math):
            return display_math(node.value)
        if isinstance(node, ThematicBreak):
            return "---"
        if isinstance(node, Table):
            rows = [[self._inlines(cell.children) for cell in row.children] for row in node.children]
            return pipe_table(rows, node.align)
        return ""

    def _list_item(self, item: ListItem) -> str:
        parts: list[str] = []
        for child in item.children:
            rendered = self._block(child)
            if not rendered:
                continue
            if parts:
                # A nested list hugs its paragraph; other blocks need a blank line
                parts.append("\n" if isinstance(child, List) else "\n\n")
            parts.append(rendered)
        return "".join(parts)

    def _inlines(self, nodes: tuple[Node, ...]) -> str:
        return "".join(self._inline(node) for node in nodes)

    def _inline(self, node: Node) -> str:
        if isinstance(node, Text):
            return escape_markdown(node.value)
        if isinstance(node, Strong):
            return f"**{self._inlines(node.children)}**"
        if isinstance(node, Highlight):
            return f"=={self._inlines(node.children)}=="
        if isinstance(node, Emphasis):
            return f"*{self._inlines(node.children)}*"
        if isinstance(node, Delete):
            return f"~~{self._inlines(node.children)}~~"
        if isinstance(node, InlineCode):
            return inline_code(node.value)
        if isinstance(node, Link):
            return f"[{self._inlines(node.children)}]({link_destination(node.url, node.title)})"
        if isinstance(node, Image):
            src, _ = self.image_source(node)
            return f"![{escape_markdown(node.alt)}]({link_destination(src, node.title)})"
        if isinstance(node, Break):
            return HARD_BREAK
        return ""


# === HTML ===


def _esc(text: str) -> str:
    return html.escape(text, quote=False)


def _attr(text: str) -> str:
    return html.escape(text, quote=True)


class HtmlEmitter(_Emitter):
    """Emits an HTML fragment."""

    def emit(self, tree: Root) -> str:
        return self._blocks(tree.children)

    def _blocks(self, nodes: tuple[Node, ...]) -> str:
        return "\n".join(part for part in (self._block(node) for node in nodes) if part)

    def _block(self, node: Node) -> str:
        if isinstance(node, Paragraph):
            return f"<p>{self._inlines(node.children)}</p>"
        if isinstance(node, Heading):
            return f"<h{node.depth}>{self._inlines(node.children)}</h{node.depth}>"
        if isinstance(node, Blockquote):
            return f"<blockquote>\n{self._blocks(node.children)}\n</blockquote>"
        if isinstance(node, List):
            tag = "ol" if node.ordered else "ul"
            start = f' start="{node.start}"' if node.ordered and node.start not in (None, 1) else ""
            items = "\n".join(self._list_item(item) for item in node.children)
            return f"<{tag}{start}>\n{items}\n</{tag}>"
        if isinstance(node, Code):
            cls = f' class="language-{_attr(node.lang)}"' if node.lang else ""
            return f"<pre><code{cls}>{_esc(node.value)}\n</code></pre>"
        if isinstance(node, Math):
            return f'<script type="math/tex; mode=display">{escape_script_text(node.value)}</script>'
        if isinstance(node, ThematicBreak):
            return "<hr>"
        if isinstance(node, Table):
            return self._table(node)
        return ""

    def _list_item(self, item: ListItem) -> str:
        if len(item.children) == 1 and isinstance(item.children[0], Paragraph):
            return f"<li>{self._inlines(item.children[0].children)}</li>"
        return f"<li>\n{self._blocks(item.children)}\n</li>"

    def _table(self, node: Table) -> str:
        if not node.children:
            return ""

        def cells(row, tag: str) -> str:
            out = []
            for index, cell in enumerate(row.children):
                align = node.align[index] if index < len(node.align) else None
                style = f' style="text-align: {align};"' if align else ""
                out.append(f"<{tag}{style}>{self._inlines(cell.children)}</{tag}>")
            return "<tr>" + "".join(out) + "</tr>"

        head, *body = node.children
        parts = ["<table>", "<thead>", cells(head, "th"), "</thead>"]
        if body:
            parts.append("<tbody>")
            parts.extend(cells(row, "td") for row in body)
            parts.append("</tbody>")
        parts.append("</table>")
        return "\n".join(parts)

    def _inlines(self, nodes: tuple[Node, ...]) -> str:
        return "".join(self._inline(node) for node in nodes)

    def _inline(self, node: Node) -> str:
        if isinstance(node, Text):
            return _esc(node.value)
        if isinstance(node, Strong):
            return f"<strong>{self._inlines(node.children)}</strong>"
        if isinstance(node, Highlight):
            return f"<mark>{self._inlines(node.children)}</mark>"
        if isinstance(node, Emphasis):
            return f"<em>{self._inlines(node.children)}</em>"
        if isinstance(node, Delete):
            return f"<del>{self._inlines(node.children)}</del>"
        if isinstance(node, InlineCode):
            return f"<code>{_esc(node.value)}</code>"
        if isinstance(node, Link):
            title = f' title="{_attr(node.title)}"' if node.title else ""
            return f'<a href="{_attr(node.url)}"{title}>{self._inlines(node.children)}</a>'
        if isinstance(node, Image):
            src, uploaded = self.image_source(node)
            size = ""
            if uploaded is not None:
                width, height = display_size(uploaded, self.capability.max_image_width)
                size = f' width="{width}"' + (f' height="{height}"' if height else "")
            return f'<img src="{_attr(src)}" alt="{_attr(node.alt)}"{size}>'
        if isinstance(node, Break):
            return "<br>\n"
        return ""
