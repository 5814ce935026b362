# article-sync — republish one Markdown article to many platforms
"""
Content transformation core for article republishing.

- content: Markdown → Doc-AST, capability registry, degradation, rendering,
  image upload coordination
- converter: HTML → Markdown (DOM and DOM-free), preprocessing
- publisher: platform adapters and the publishing pipeline
"""

from .content import (
    CapabilityDescriptor,
    OutputFormat,
    find_images,
    get_capabilities,
    parse_markdown,
    render,
    render_for_platform,
)
from .converter import html_to_markdown, html_to_markdown_fallback

__version__ = "0.1.0"

__all__ = [
    "CapabilityDescriptor",
    "OutputFormat",
    "find_images",
    "get_capabilities",
    "html_to_markdown",
    "html_to_markdown_fallback",
    "parse_markdown",
    "render",
    "render_for_platform",
]
