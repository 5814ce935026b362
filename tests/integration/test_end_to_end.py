"""End-to-end integration tests for the article-sync pipeline.

Source HTML → preprocess → Markdown → per-platform render → file export.
"""

from __future__ import annotations

import json

import pytest

from article_sync.content.capabilities import OutputFormat, get_capabilities
from article_sync.content.parser import parse_markdown
from article_sync.content.renderer import render_tree
from article_sync.converter.preprocess import PreprocessConfig, preprocess_for_platform
from article_sync.converter.roundtrip import normalize_html
from article_sync.publisher.pipeline import PublishPipeline


SAMPLE_HTML = """<section>
<h2>第一章</h2>
<p>这是 <strong>重点</strong> 内容</p>
<p><img src="data:image/svg+xml,abc" data-src="http://mmbiz.qpic.cn/a.png"></p>
<pre class="code-snippet__js" data-lang="python"><ul class="code-snippet__line-index"><li></li></ul><code><span>print(1)</span></code></pre>
<mpprofile data-id="x"></mpprofile>
<p><a href="http://other.com">外链</a></p>
</section>
"""


@pytest.fixture
def export_dir(tmp_path, monkeypatch):
    from article_sync.common.config import settings

    monkeypatch.setattr(settings.export, "export_dir", str(tmp_path))
    return tmp_path


class TestPreprocessing:
    """Source HTML cleanup and conversion."""

    def test_cleaned_markdown(self):
        result = preprocess_for_platform(SAMPLE_HTML)

        assert "mpprofile" not in result.html
        assert "## 第一章" in result.markdown
        assert "这是 **重点** 内容" in result.markdown
        assert "![](http://mmbiz.qpic.cn/a.png)" in result.markdown
        assert "```python\nprint(1)\n```" in result.markdown
        assert "[外链](http://other.com)" in result.markdown

    def test_links_removed_for_platform(self):
        result = preprocess_for_platform(SAMPLE_HTML, PreprocessConfig(remove_links=True))
        assert "外链" in result.markdown
        assert "other.com" not in result.markdown

    def test_normalized_html_stable(self):
        html = preprocess_for_platform(SAMPLE_HTML).html
        once = normalize_html(html)
        assert normalize_html(once) == once


class TestPublishing:
    """Markdown published to every built-in platform."""

    def test_export_per_platform(self, export_dir, fake_uploader, no_upload_delay):
        markdown = preprocess_for_platform(SAMPLE_HTML).markdown
        pipeline = PublishPipeline(uploader=fake_uploader)

        results = pipeline.run(markdown, "第一章", platforms=["xiaohongshu", "juejin", "zhihu"])

        assert all(r.success for r in results)
        paths = {r.platform: r.post_url for r in results}

        with open(paths["xiaohongshu"], encoding="utf-8") as f:
            doc = json.load(f)
        assert doc["type"] == "doc"
        assert {"type": "highlight"} in [
            mark for node in doc["content"] if node["type"] == "paragraph"
            for child in node.get("content", []) for mark in child.get("marks", [])
        ]
        assert any(
            node["type"] == "image" and node["attrs"]["imgs"][0]["src"] == "http://cdn/a.png"
            for node in doc["content"]
        )

        with open(paths["juejin"], encoding="utf-8") as f:
            juejin = f.read()
        assert "**重点**" in juejin
        assert "![](http://cdn/a.png)" in juejin
        assert "```python\nprint(1)\n```" in juejin

        with open(paths["zhihu"], encoding="utf-8") as f:
            zhihu = f.read()
        assert "<h2>第一章</h2>" in zhihu
        assert "other.com" not in zhihu
        assert "外链" in zhihu

    def test_formats_follow_capabilities(self):
        tree = parse_markdown(preprocess_for_platform(SAMPLE_HTML).markdown)
        for platform_id, fmt in [
            ("xiaohongshu", OutputFormat.RICH_DOCUMENT),
            ("juejin", OutputFormat.MARKDOWN),
            ("zhihu", OutputFormat.HTML),
            ("weibo_article", OutputFormat.HTML),
        ]:
            assert render_tree(tree, get_capabilities(platform_id)).format == fmt
