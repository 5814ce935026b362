"""Tests for the DOM-free HTML → Markdown converter.

Tests cover:
- Tokenizer (allow-listed tags, raw script/style bodies, comments)
- Literal angle-bracket text such as <T> surviving conversion
- Entities decoded exactly once
- Implied end tags (<p>, <li>, table parts)
- Code-block line recovery without a DOM
- Same output as the DOM converter on a shared corpus
"""

import pytest

from article_sync.converter.core import html_to_markdown, html_to_markdown_fallback
from article_sync.converter.fallback import FallbackConverter, is_known_tag, tokenize


def fb(html: str) -> str:
    return html_to_markdown_fallback(html)


# === Test: Tokenizer ===


class TestTokenize:
    def test_token_kinds(self):
        tokens = list(tokenize('<p class="x">a<br/></p>'))
        assert [(t.kind, t.name) for t in tokens] == [
            ("start", "p"), ("text", ""), ("start", "br"), ("end", "p"),
        ]
        assert tokens[0].attrs == {"class": "x"}
        assert tokens[1].data == "a"
        assert tokens[2].self_closing is True

    def test_unknown_tag_is_text(self):
        tokens = list(tokenize("a <T> b"))
        assert [t.kind for t in tokens] == ["text", "text", "text"]
        assert "".join(t.data for t in tokens) == "a <T> b"

    def test_raw_script_body(self):
        tokens = list(tokenize('<script type="math/tex">a<b</script>x'))
        assert tokens[0].kind == "raw"
        assert tokens[0].data == "a<b"
        assert tokens[1].data == "x"

    def test_comments_and_doctype_dropped(self):
        tokens = list(tokenize("<!DOCTYPE html><!-- c -->x"))
        assert [t.data for t in tokens] == ["x"]

    def test_attribute_entities_decoded(self):
        (token,) = tokenize('<a href="?a=1&amp;b=2">')
        assert token.attrs["href"] == "?a=1&b=2"

    def test_known_tags(self):
        assert is_known_tag("div")
        assert is_known_tag("mp-common-product")
        assert not is_known_tag("t")


# === Test: Conversion ===


class TestLiteralText:
    def test_generic_type_in_paragraph(self):
        assert fb("<p>Vec<T> is generic</p>") == "Vec&lt;T> is generic"

    def test_generic_type_in_code(self):
        assert fb("<pre><code>List<T> items;</code></pre>") == "```bash\nList<T> items;\n```"

    def test_entities_decoded_once(self):
        assert fb("<p>&amp;lt;b&amp;gt;</p>") == "&amp;lt;b&amp;gt;"
        assert fb("<pre>a &amp;lt; b</pre>") == "```bash\na &lt; b\n```"

    def test_custom_element_content_kept(self):
        assert fb("<mp-style-type>x</mp-style-type>") == "x"

    def test_unterminated_comment(self):
        assert fb("<p>a</p><!-- never closed") == "a"

    def test_style_body_dropped(self):
        assert fb("<style>p > a {}</style><p>x</p>") == "x"


class TestImpliedEndTags:
    def test_unclosed_paragraphs(self):
        assert fb("<p>a<p>b") == "a\n\nb"

    def test_block_closes_paragraph(self):
        assert fb("<p>a<ul><li>b</ul>") == "a\n\n- b"

    def test_unclosed_list_items(self):
        assert fb("<ul><li>a<li>b</ul>") == "- a\n- b"

    def test_unclosed_table_cells(self):
        html = "<table><tr><th>a<th>b<tr><td>1<td>2</table>"
        assert fb(html) == "| a | b |\n| --- | --- |\n| 1 | 2 |"

    def test_stray_end_tag_ignored(self):
        assert fb("<p>a</span>b</p>") == "ab"

    def test_unclosed_at_end(self):
        assert fb("<p><b>x") == "**x**"


class TestCodeLines:
    def test_br_lines(self):
        assert fb("<pre>a<br>b<br/>c</pre>") == "```bash\na\nb\nc\n```"

    def test_div_lines(self):
        assert fb("<pre><code><div>one</div><div>two</div></code></pre>") == "```bash\none\ntwo\n```"

    def test_gutter_skipped(self):
        html = '<pre><span class="linenos">1\n2</span><code>x\ny</code></pre>'
        assert fb(html) == "```bash\nx\ny\n```"

    def test_language_from_first_code(self):
        html = '<pre><code class="language-rust">fn main() {}</code></pre>'
        assert fb(html) == "```rust\nfn main() {}\n```"

    def test_unclosed_pre(self):
        assert fb("<pre>tail") == "```bash\ntail\n```"

    def test_reusable_converter(self):
        converter = FallbackConverter()
        assert converter.convert("<p>a</p>") == "a"
        assert converter.convert("<p>b</p>") == "b"


# === Test: Equivalence with the DOM path ===


CORPUS = [
    "<h1>Title</h1><p>Body <strong>bold</strong> and <em>it</em></p>",
    "<h2>A <code>x</code></h2>\n<p>one<br>two</p>",
    "<ul><li>a<ul><li>b</li></ul></li><li>c</li></ul>",
    '<ol start="3"><li>x</li><li>y</li></ol>',
    "<ul><li><p>first</p><p>second</p></li></ul>",
    "<ul><li><p>p1</p><p>p2</p></li><li>q</li></ul>",
    (
        "<table><thead><tr><th align=\"center\">a</th><th>b</th></tr></thead>"
        "<tbody><tr><td>1</td><td>2|3</td></tr></tbody></table>"
    ),
    "<table><caption>Cap</caption><tr><td>a</td></tr><tr><td>b</td></tr></table>",
    '<pre><code class="language-python">def f():\n    return 1</code></pre>',
    (
        '<pre class="code-snippet__js"><ul class="code-snippet__line-index"><li></li><li></li></ul>'
        "<code><span>const a = 1;</span></code><code><span>  return a;</span></code></pre>"
    ),
    '<pre><code><span style="display:block">a</span><span style="display:block">b</span></code></pre>',
    "<pre>x<br>y</pre>",
    "<pre><code>```js\ncode\n```</code></pre>",
    '<p><a href="http://x.com?a=1&amp;b=2" title="T">link</a> and <a href="javascript:;">js</a></p>',
    '<p><img src="data:image/svg+xml,x" data-src="http://x/real.png" alt="A"></p>',
    '<figure><img src="a.png" alt="A"><figcaption>Caption</figcaption></figure>',
    "<blockquote><p>q1</p><p>q2</p></blockquote><hr><p>after</p>",
    '<p>so <script type="math/tex">x^2</script> holds</p>',
    '<script type="math/tex; mode=display">E = mc^2</script>',
    '<script type="math/tex; mode=display">a <\\/script> b</script>',
    (
        '<p>area <span class="katex"><span class="katex-mathml"><math><semantics>'
        '<mrow><mi>r</mi></mrow><annotation encoding="application/x-tex">\\pi r^2</annotation>'
        '</semantics></math></span><span class="katex-html" aria-hidden="true">πr2</span></span></p>'
    ),
    "<p>*stars* [brackets] &amp;amp; &lt;tag&gt; 1 &lt; 2</p>",
    "<p># hash</p><p>1. not a list</p>",
    "<div><p>x</p>text after</div>",
    "<p>a</p>\n\n<p>b</p>",
    "<p><del>old</del> <s>older</s> <kbd>Ctrl</kbd></p>",
    "<p>a<!-- note -->b</p>",
]


class TestDomEquivalence:
    @pytest.mark.parametrize("html", CORPUS)
    def test_same_output(self, html):
        assert fb(html) == html_to_markdown(html, use_dom=True)
