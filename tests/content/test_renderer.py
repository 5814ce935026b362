"""Tests for rendering: emitters and the render entry points.

Tests cover:
- Rich-document output (marks, headings, image nodes, tables, math)
- Markdown output (escaping, fences, lists, tables, highlight)
- HTML output (escaping, image sizing, tables)
- render(): upload resolution, heading clamping, unsupported formats
- render_for_platform() against the built-in platforms
"""

import asyncio

import pytest

from article_sync.common.errors import UnsupportedOutputFormatError
from article_sync.content.capabilities import CapabilityDescriptor, OutputFormat
from article_sync.content.emitters import (
    MarkdownEmitter,
    RichDocumentEmitter,
    display_size,
    normalize_node,
)
from article_sync.content.nodes import Code, Highlight, Paragraph, Root, Text
from article_sync.content.parser import parse_markdown
from article_sync.content.renderer import (
    TargetDocument,
    collect_images,
    render,
    render_for_platform,
    render_tree,
)
from article_sync.content.uploads import UploadedImage


def _cap(**fields) -> CapabilityDescriptor:
    return CapabilityDescriptor(id="test", **fields)


def _rich(markdown: str, **fields) -> dict:
    cap = _cap(output_format=OutputFormat.RICH_DOCUMENT, **fields)
    return render_tree(parse_markdown(markdown), cap).rich_document


def _markdown(markdown: str, **fields) -> str:
    return render_tree(parse_markdown(markdown), _cap(**fields)).markdown


def _html(markdown: str, **fields) -> str:
    return render_tree(parse_markdown(markdown), _cap(output_format=OutputFormat.HTML, **fields)).html


# === Test: End to end ===


class TestEndToEnd:
    def test_bold_to_highlight_with_uploaded_image(self, make_uploader):
        uploader = make_uploader(width=100, height=50)
        cap = _cap(
            output_format=OutputFormat.RICH_DOCUMENT,
            support_bold=False,
            support_highlight=True,
            support_image=True,
            max_heading_level=2,
        )
        tree = parse_markdown("# T\n\nHello **world**\n\n![x](http://a/b.png)")

        doc = asyncio.run(render(tree, cap, uploader))

        assert doc.format == OutputFormat.RICH_DOCUMENT
        assert doc.rich_document == {
            "type": "doc",
            "content": [
                {"type": "heading", "attrs": {"level": 1}, "content": [{"type": "text", "text": "T"}]},
                {
                    "type": "paragraph",
                    "content": [
                        {"type": "text", "text": "Hello "},
                        {"type": "text", "marks": [{"type": "highlight"}], "text": "world"},
                    ],
                },
                {
                    "type": "image",
                    "attrs": {"imgs": [{
                        "src": "http://cdn/b.png",
                        "desc": "",
                        "percent": 30,
                        "width": 410,
                        "height": 205,
                    }]},
                },
            ],
        }
        assert uploader.calls == ["http://a/b.png"]


# === Test: Rich document ===


class TestRichDocument:
    def test_empty_document_has_one_paragraph(self):
        assert _rich("") == {"type": "doc", "content": [{"type": "paragraph"}]}

    def test_nested_marks(self):
        doc = _rich("[**bold link**](http://x)")
        (text,) = doc["content"][0]["content"]
        assert text["marks"] == [{"type": "link", "attrs": {"href": "http://x"}}, {"type": "bold"}]

    def test_key_order(self):
        node = normalize_node({"text": "x", "marks": [{"type": "bold"}], "type": "text"})
        assert list(node) == ["type", "marks", "text"]

    def test_empty_text_dropped(self):
        node = normalize_node({"type": "paragraph", "content": [{"type": "text", "text": ""}]})
        assert node == {"type": "paragraph"}

    def test_lists(self):
        doc = _rich("3. a\n4. b\n\n- c")
        ordered, bullet = doc["content"]
        assert ordered["type"] == "orderedList"
        assert ordered["attrs"] == {"start": 3, "type": None}
        assert bullet["type"] == "bulletList"
        assert bullet["content"][0]["type"] == "listItem"

    def test_code_and_math(self):
        doc = _rich("```py\nx\n```\n\n$$\ny\n$$")
        code, math = doc["content"]
        assert code == {"type": "codeBlock", "attrs": {"language": "py"}, "content": [{"type": "text", "text": "x"}]}
        assert math["type"] == "mathBlock"
        assert math["content"][0]["text"] == "y"

    def test_table_header_cells(self):
        doc = _rich("| a |\n|---|\n| 1 |")
        head, body = doc["content"][0]["content"]
        assert head["content"][0]["type"] == "tableHeader"
        assert body["content"][0]["type"] == "tableCell"

    def test_image_splits_paragraph(self):
        doc = _rich("before ![i](http://x/i.png) after")
        assert [node["type"] for node in doc["content"]] == ["paragraph", "image", "paragraph"]

    def test_image_in_heading_lifted_after_it(self):
        doc = _rich("# Title ![i](http://x/i.png)")
        assert [node["type"] for node in doc["content"]] == ["heading", "image"]

    def test_unresolved_image_height_zero(self):
        doc = _rich("![i](http://x/i.png)")
        img = doc["content"][0]["attrs"]["imgs"][0]
        assert img["src"] == "http://x/i.png"
        assert (img["width"], img["height"]) == (410, 0)

    def test_leading_empty_paragraphs_removed(self):
        emitter = RichDocumentEmitter(_cap())
        tree = Root(children=(Paragraph(), Paragraph(children=(Text(value="x"),))))
        assert emitter.emit(tree)["content"] == [{"type": "paragraph", "content": [{"type": "text", "text": "x"}]}]


class TestDisplaySize:
    def test_round_half_up(self):
        assert display_size(UploadedImage(url="u", width=100, height=50), 410) == (410, 205)
        assert display_size(UploadedImage(url="u", width=3, height=1), 410) == (410, 137)

    def test_unknown_dimensions(self):
        assert display_size(None, 410) == (410, 0)
        assert display_size(UploadedImage(url="u", width=0, height=10), 300) == (300, 0)


# === Test: Markdown ===


class TestMarkdownEmitter:
    def test_roundtrips_through_parser(self, sample_markdown):
        first = _markdown(sample_markdown)
        assert _markdown(first) == first

    def test_fence_longer_than_content_backticks(self):
        out = MarkdownEmitter(_cap()).emit(Root(children=(Code(value="```js\ncode\n```", lang="md"),)))
        assert out == "````md\n```js\ncode\n```\n````\n"

    def test_escaping(self):
        out = _markdown(r"a \*b\* \_c\_ \# d &lt;tag&gt;")
        assert out == "a \\*b\\* \\_c\\_ # d &lt;tag>\n"

    def test_line_start_escaped(self):
        out = MarkdownEmitter(_cap()).emit(Root(children=(Paragraph(children=(Text(value="# not heading"),)),)))
        assert out == "\\# not heading\n"

    def test_highlight(self):
        tree = Root(children=(Paragraph(children=(Highlight(children=(Text(value="k"),)),)),))
        assert MarkdownEmitter(_cap()).emit(tree) == "==k==\n"

    def test_nested_list_indent(self):
        assert _markdown("- a\n  - b") == "- a\n    - b\n"

    def test_loose_list_keeps_blank_lines(self):
        text = "- p1\n\n    p2\n\n- q\n"
        assert _markdown(text) == text

    def test_table(self):
        out = _markdown("| a | b |\n|:-:|---|\n| 1\\|2 | 3 |")
        assert out == "| a | b |\n| :-: | --- |\n| 1\\|2 | 3 |\n"

    def test_hard_break(self):
        assert _markdown("a\nb") == "a  \nb\n"

    def test_resolved_image_url(self):
        tree = parse_markdown("![x](http://a/b.png)")
        out = render_tree(tree, _cap(), {"http://a/b.png": UploadedImage(url="http://cdn/b.png")}).markdown
        assert out == "![x](http://cdn/b.png)\n"


# === Test: HTML ===


class TestHtmlEmitter:
    def test_escapes_text(self):
        assert _html("a &lt;b&gt; & c") == "<p>a &lt;b&gt; &amp; c</p>"

    def test_code_block(self):
        assert _html("```js\nif (a < b) {}\n```") == (
            '<pre><code class="language-js">if (a &lt; b) {}\n</code></pre>'
        )

    def test_display_math(self):
        assert _html("$$\nx^2\n$$") == '<script type="math/tex; mode=display">x^2</script>'

    def test_display_math_cannot_close_script(self):
        assert _html("$$\na </script> b\n$$") == (
            '<script type="math/tex; mode=display">a <\\/script> b</script>'
        )

    def test_table(self):
        out = _html("| a |\n|--:|\n| 1 |")
        assert '<th style="text-align: right;">a</th>' in out
        assert "<tbody>" in out

    def test_ordered_list_start(self):
        assert _html("2. x").startswith('<ol start="2">')

    def test_image_size_only_when_uploaded(self):
        tree = parse_markdown("![x](http://a/b.png)")
        cap = _cap(output_format=OutputFormat.HTML)
        plain = render_tree(tree, cap).html
        sized = render_tree(tree, cap, {"http://a/b.png": UploadedImage(url="http://cdn/b.png", width=100, height=50)}).html
        assert plain == '<p><img src="http://a/b.png" alt="x"></p>'
        assert sized == '<p><img src="http://cdn/b.png" alt="x" width="410" height="205"></p>'


# === Test: render() ===


class TestRender:
    def test_heading_clamped(self):
        doc = _rich("###### Deep", max_heading_level=3)
        assert doc["content"][0]["attrs"] == {"level": 3}

    def test_unsupported_format_raises_before_upload(self, fake_uploader):
        tree = parse_markdown("![x](http://a/b.png)")
        with pytest.raises(UnsupportedOutputFormatError):
            asyncio.run(render(tree, _cap(), fake_uploader, output_format="pdf"))
        assert fake_uploader.calls == []

    def test_render_tree_unsupported_format(self):
        with pytest.raises(UnsupportedOutputFormatError):
            render_tree(Root(), _cap(), output_format="docx")

    def test_no_upload_when_images_unsupported(self, fake_uploader):
        tree = parse_markdown("![x](http://a/b.png)")
        doc = asyncio.run(render(tree, _cap(support_image=False), fake_uploader))
        assert fake_uploader.calls == []
        assert doc.markdown == "\\[图片: x\\]\n"

    def test_duplicate_images_uploaded_once(self, fake_uploader, no_upload_delay):
        tree = parse_markdown("![a](http://a/1.png) ![b](http://a/1.png) ![c](http://a/2.png)")
        doc = asyncio.run(render(tree, _cap(), fake_uploader))
        assert fake_uploader.calls == ["http://a/1.png", "http://a/2.png"]
        assert doc.markdown.count("http://cdn/1.png") == 2

    def test_failed_upload_keeps_original(self, make_uploader, no_upload_delay):
        uploader = make_uploader(fail_on={"http://a/bad.png"})
        tree = parse_markdown("![a](http://a/bad.png) ![b](http://a/ok.png)")
        doc = asyncio.run(render(tree, _cap(), uploader))
        assert "http://a/bad.png" in doc.markdown
        assert "http://cdn/ok.png" in doc.markdown

    def test_parallel_mode(self, fake_uploader, no_upload_delay):
        tree = parse_markdown("![a](http://a/1.png) ![b](http://a/2.png)")
        progress = []
        doc = asyncio.run(render(
            tree, _cap(), fake_uploader,
            on_progress=lambda done, total: progress.append((done, total)),
            parallel=True,
        ))
        assert sorted(fake_uploader.calls) == ["http://a/1.png", "http://a/2.png"]
        assert progress[-1] == (2, 2)
        assert "http://cdn/1.png" in doc.markdown

    def test_no_uploader_keeps_sources(self):
        doc = asyncio.run(render(parse_markdown("![a](http://a/1.png)"), _cap()))
        assert doc.markdown == "![a](http://a/1.png)\n"

    def test_collect_images_unique_in_order(self):
        tree = parse_markdown("![a](2.png) ![b](1.png) ![c](2.png)")
        assert collect_images(tree) == ["2.png", "1.png"]

    def test_target_document_content(self):
        doc = TargetDocument(format=OutputFormat.HTML, html="<p>x</p>")
        assert doc.content == "<p>x</p>"


class TestRenderForPlatform:
    def test_xiaohongshu(self, no_upload_delay):
        doc = asyncio.run(render_for_platform("## Title\n\n**key** and `code`", "xiaohongshu"))
        assert doc.format == OutputFormat.RICH_DOCUMENT
        heading, paragraph = doc.rich_document["content"]
        assert heading["attrs"] == {"level": 2}
        assert paragraph["content"] == [
            {"type": "text", "marks": [{"type": "highlight"}], "text": "key"},
            {"type": "text", "text": " and code"},
        ]

    def test_plain_paragraph(self):
        doc = asyncio.run(render_for_platform("Hello world", "juejin"))
        assert doc.markdown == "Hello world\n"

    def test_juejin_keeps_bold(self):
        doc = asyncio.run(render_for_platform("**key**", "juejin"))
        assert doc.markdown == "**key**\n"

    def test_zhihu_flattens_nested_lists_and_links(self):
        doc = asyncio.run(render_for_platform("- a\n    - [b](http://x)", "zhihu"))
        assert doc.html == "<ul>\n<li>\n<p>a</p>\n<p>  • b</p>\n</li>\n</ul>"

    def test_unknown_platform_uses_default(self):
        doc = asyncio.run(render_for_platform("~~x~~", "nowhere"))
        assert doc.markdown == "~~x~~\n"
