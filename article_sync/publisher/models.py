"""Data models for the publisher module."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ExportSuffix(str, Enum):
    """File suffix per output format."""
    RICH_DOCUMENT = ".json"
    MARKDOWN = ".md"
    HTML = ".html"


@dataclass
class PublishResult:
    """Result of handing a rendered document to a platform adapter."""
    success: bool
    platform: str
    post_url: str = ""
    post_id: str = ""
    error: str = ""
    published_at: str = ""
