"""HTML→Markdown entry points."""

from __future__ import annotations

from article_sync.common.config import settings
from article_sync.common.logging import setup_logging
from article_sync.converter.dom import DomConverter
from article_sync.converter.fallback import FallbackConverter

logger = setup_logging(module_name="converter")


def html_to_markdown_fallback(html: str) -> str:
    """Convert without building a DOM."""
    return FallbackConverter().convert(html)


def html_to_markdown(html: str, use_dom: bool | None = None) -> str:
    """Convert an HTML fragment or document to Markdown.

    Args:
        html: Source HTML.
        use_dom: Force (True) or skip (False) the BeautifulSoup converter.
            Defaults to ``settings.converter.prefer_dom``.

    Returns:
        Markdown text. Empty input gives an empty string.
    """
    if not html or not html.strip():
        return ""
    if use_dom is None:
        use_dom = settings.converter.prefer_dom
    if not use_dom:
        return html_to_markdown_fallback(html)

    try:
        return DomConverter().convert(html)
    except Exception as e:
        # A missing tree builder raises FeatureNotFound; parse failures vary
        logger.warning("DOM conversion failed, using fallback converter: %s", e)
        return html_to_markdown_fallback(html)
