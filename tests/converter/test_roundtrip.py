"""Tests for Markdown → HTML rendering and HTML normalization.

Tests cover:
- Dialect support (strikethrough, display math, tables, fences, escapes)
- normalize_html idempotence on both converter paths
"""

import pytest

from article_sync.converter.roundtrip import markdown_to_html, normalize_html


class TestMarkdownToHtml:
    def test_empty(self):
        assert markdown_to_html("") == ""

    def test_strikethrough(self):
        assert markdown_to_html("~~gone~~") == "<p><del>gone</del></p>"

    def test_escaped_tildes_stay_literal(self):
        assert markdown_to_html("\\~\\~kept\\~\\~") == "<p>~~kept~~</p>"

    def test_display_math(self):
        html = markdown_to_html("before\n\n$$\nE = mc^2\n$$")
        assert '<script type="math/tex; mode=display">E = mc^2</script>' in html

    def test_unterminated_math_is_paragraph(self):
        assert markdown_to_html("$$\nabc") == "<p>$$\nabc</p>"

    def test_table_with_escaped_pipe(self):
        html = markdown_to_html("| a | b |\n| --- | --- |\n| 1 | 2\\|3 |")
        assert "<td>2|3</td>" in html

    def test_fenced_code_language(self):
        html = markdown_to_html("```python\nx = 1\n```")
        assert html == '<pre><code class="language-python">x = 1\n</code></pre>'


CORPUS = [
    (
        "<h2>Title</h2>"
        '<p>Hello <strong>bold</strong> and <em>it</em> <a href="http://x">link</a></p>'
        "<ul><li>one</li><li>two<ul><li>nested</li></ul></li></ul>"
        '<pre><code class="language-python">def f(x: list[T]) -> T:\n    return x[0]</code></pre>'
        '<table><thead><tr><th align="left">a</th><th>b</th></tr></thead>'
        "<tbody><tr><td>1|2</td><td>3</td></tr></tbody></table>"
        "<blockquote><p>quote</p></blockquote><hr>"
        '<p><img src="http://img/a.png" alt="pic"></p>'
    ),
    "<p>a &lt;b&gt; &amp; c &amp;amp;</p>",
    '<p>so <script type="math/tex">x^2</script> holds</p>',
    '<script type="math/tex; mode=display">\\sum_i x_i</script>',
    "<p><del>old</del> *literal* [x] # 1. text</p>",
    "<p># hash</p><p>1. not a list</p>",
    "<p>one<br>two</p>",
    '<ol start="3"><li>x</li><li>y</li></ol>',
    "<ul><li><p>first</p><p>second</p></li></ul>",
    "<ul><li><p>p1</p><p>p2</p></li><li>q</li></ul>",
    "<pre><code>```js\ncode\n```</code></pre>",
    '<p><a href="http://x.com?a=1&amp;b=2" title="T">link</a></p>',
    '<figure><img src="a.png" alt="A"><figcaption>Caption</figcaption></figure>',
    "<h3>A <code>x</code></h3>",
    "<p>中文段落，<strong>重点</strong>。</p>",
]


class TestNormalizeHtml:
    @pytest.mark.parametrize("html", CORPUS)
    @pytest.mark.parametrize("use_dom", [True, False])
    def test_idempotent(self, html, use_dom):
        once = normalize_html(html, use_dom=use_dom)
        assert normalize_html(once, use_dom=use_dom) == once

    def test_normalized_structure(self):
        once = normalize_html("<div><b>x</b></div>", use_dom=True)
        assert once == "<p><strong>x</strong></p>"

    def test_code_language_defaulted(self):
        once = normalize_html("<pre>ls</pre>", use_dom=True)
        assert once == '<pre><code class="language-bash">ls\n</code></pre>'
