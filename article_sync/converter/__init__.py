# Converter — HTML→Markdown (DOM and DOM-free), preprocessing, round trip
"""
HTML→Markdown conversion for article republishing:
- DomConverter: BeautifulSoup walk, the default path
- FallbackConverter: token-stream converter for when no DOM can be built
- Per-platform HTML preprocessing
- Markdown→HTML rendering and HTML normalization
"""

from .core import html_to_markdown, html_to_markdown_fallback
from .dom import DomConverter
from .fallback import FallbackConverter, tokenize
from .preprocess import (
    PreprocessConfig,
    PreprocessResult,
    preprocess_for_platform,
    preprocess_for_platforms,
)
from .roundtrip import markdown_to_html, normalize_html
from .rules import ElementReducer

__all__ = [
    "DomConverter",
    "ElementReducer",
    "FallbackConverter",
    "PreprocessConfig",
    "PreprocessResult",
    "html_to_markdown",
    "html_to_markdown_fallback",
    "markdown_to_html",
    "normalize_html",
    "preprocess_for_platform",
    "preprocess_for_platforms",
    "tokenize",
]
