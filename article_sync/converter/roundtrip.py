"""Markdown→HTML rendering and HTML normalization.

``markdown_to_html`` renders the Markdown dialect the converters write
(pipe tables, fenced code, ``~~strike~~``, ``$$`` display math) with
Python-Markdown. ``normalize_html`` runs HTML through Markdown and back;
applying it twice gives the same result as applying it once.
"""

from __future__ import annotations

import xml.etree.ElementTree as etree

import markdown
from markdown.blockprocessors import BlockProcessor
from markdown.extensions import Extension
from markdown.inlinepatterns import SimpleTagInlineProcessor
from markdown.util import AtomicString

from article_sync.content.syntax import escape_script_text
from article_sync.converter.core import html_to_markdown

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]
DISPLAY_MATH_TYPE = "math/tex; mode=display"


class DisplayMathProcessor(BlockProcessor):
    """``$$ … $$`` blocks become display-math ``<script>`` elements."""

    def test(self, parent, block):
        return block.lstrip().startswith("$$")

    def run(self, parent, blocks):
        original = blocks.pop(0)
        body = original.strip()[2:]
        consumed = []
        while not body.rstrip().endswith("$$") and blocks:
            consumed.append(blocks.pop(0))
            body = body + "\n\n" + consumed[-1]
        body = body.rstrip()
        if not body.endswith("$$") or not body[:-2].strip():
            # Unterminated: leave the text to the paragraph processor
            blocks[:0] = [original, *consumed]
            return False

        script = etree.SubElement(parent, "script")
        script.set("type", DISPLAY_MATH_TYPE)
        script.text = AtomicString(escape_script_text(body[:-2].strip()))
        return True


class ArticleExtension(Extension):
    """Strikethrough, display math and the extra escapable characters."""

    def extendMarkdown(self, md):
        for char in ("~", "$", "|"):
            if char not in md.ESCAPED_CHARS:
                md.ESCAPED_CHARS.append(char)
        md.inlinePatterns.register(SimpleTagInlineProcessor(r"(~~)(.+?)~~", "del"), "del", 175)
        md.parser.blockprocessors.register(DisplayMathProcessor(md.parser), "display_math", 78)


def markdown_to_html(text: str) -> str:
    """Render Markdown to an HTML fragment."""
    if not text or not text.strip():
        return ""
    return markdown.markdown(text, extensions=[*MARKDOWN_EXTENSIONS, ArticleExtension()])


def normalize_html(html: str, use_dom: bool | None = None) -> str:
    """HTML→Markdown→HTML. Idempotent on its own output."""
    return markdown_to_html(html_to_markdown(html, use_dom=use_dom))
