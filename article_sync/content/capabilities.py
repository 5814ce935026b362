"""Per-platform capability descriptors.

Each descriptor records which constructs a platform renders natively. The
registry is built once at import (built-in platforms plus any declared under
``capabilities:`` in config/settings.yaml) and is read-only afterwards.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict

from article_sync.common.config import settings


class OutputFormat(str, Enum):
    """Target document formats."""
    RICH_DOCUMENT = "rich_document"
    MARKDOWN = "markdown"
    HTML = "html"


class CapabilityDescriptor(BaseModel):
    """What one platform can render natively."""

    model_config = ConfigDict(frozen=True)

    id: str
    output_format: OutputFormat = OutputFormat.MARKDOWN
    max_heading_level: int = 6
    support_nested_list: bool = True
    support_table: bool = True
    support_code_block: bool = True
    support_inline_code: bool = True
    support_link: bool = True
    support_image: bool = True
    support_blockquote: bool = True
    support_horizontal_rule: bool = True
    support_bold: bool = True
    support_italic: bool = True
    support_strikethrough: bool = True
    support_highlight: bool = True
    support_latex: bool = True
    max_image_width: int = 410  # display width images are sized to

    def supports(self, flag: str) -> bool:
        """Look up a ``support_*`` flag by its short name (e.g. ``"table"``)."""
        return bool(getattr(self, f"support_{flag}"))


XIAOHONGSHU_CAPABILITIES = CapabilityDescriptor(
    id="xiaohongshu",
    output_format=OutputFormat.RICH_DOCUMENT,
    max_heading_level=3,
    support_nested_list=False,
    support_table=False,
    support_code_block=False,
    support_inline_code=False,
    support_link=False,  # external links are stripped by the editor
    support_image=True,
    support_blockquote=True,
    support_horizontal_rule=False,
    support_bold=False,  # emphasis is shown with the highlight mark instead
    support_italic=False,
    support_strikethrough=False,
    support_highlight=True,
    support_latex=False,
)

JUEJIN_CAPABILITIES = CapabilityDescriptor(
    id="juejin",
    output_format=OutputFormat.MARKDOWN,
    support_highlight=False,
)

ZHIHU_CAPABILITIES = CapabilityDescriptor(
    id="zhihu",
    output_format=OutputFormat.HTML,
    max_heading_level=4,
    support_nested_list=False,
    support_link=False,  # links are filtered on publish
    support_highlight=False,
)

DEFAULT_CAPABILITIES = CapabilityDescriptor(id="default")


def _build_registry(extra: Mapping[str, Mapping[str, Any]]) -> Mapping[str, CapabilityDescriptor]:
    registry = {
        descriptor.id: descriptor
        for descriptor in (XIAOHONGSHU_CAPABILITIES, JUEJIN_CAPABILITIES, ZHIHU_CAPABILITIES)
    }
    for platform_id, fields in extra.items():
        registry[platform_id] = CapabilityDescriptor(**{**fields, "id": platform_id})
    return MappingProxyType(registry)


PLATFORM_CAPABILITIES = _build_registry(settings.capabilities)


def get_capabilities(platform_id: str) -> CapabilityDescriptor:
    """Return the descriptor for ``platform_id``.

    Unknown ids get ``DEFAULT_CAPABILITIES`` (everything enabled, Markdown
    output).
    """
    return PLATFORM_CAPABILITIES.get(platform_id, DEFAULT_CAPABILITIES)


def list_platforms() -> list[str]:
    """Platform ids with a registered descriptor."""
    return sorted(PLATFORM_CAPABILITIES)
