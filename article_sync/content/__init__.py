# Content — Markdown parsing, capability registry, degradation and rendering
"""
Content transformation core.

Parses canonical article Markdown into a Doc-AST, degrades it against a
platform's capability descriptor, resolves images through an upload
collaborator, and emits a rich-document tree, Markdown or HTML.
"""

from .capabilities import (
    DEFAULT_CAPABILITIES,
    CapabilityDescriptor,
    OutputFormat,
    get_capabilities,
    list_platforms,
)
from .degradation import DEGRADATION_RULES, degrade
from .images import ImageMatch, ImageSyntax, find_images
from .parser import parse_markdown
from .renderer import (
    TargetDocument,
    collect_images,
    render,
    render_for_platform,
    render_tree,
)
from .uploads import (
    ImageUploadCoordinator,
    ReplaceResult,
    UploadedImage,
    replace_image_references,
)

__all__ = [
    "CapabilityDescriptor",
    "DEFAULT_CAPABILITIES",
    "DEGRADATION_RULES",
    "ImageMatch",
    "ImageSyntax",
    "ImageUploadCoordinator",
    "OutputFormat",
    "ReplaceResult",
    "TargetDocument",
    "UploadedImage",
    "collect_images",
    "degrade",
    "find_images",
    "get_capabilities",
    "list_platforms",
    "parse_markdown",
    "render",
    "render_for_platform",
    "render_tree",
    "replace_image_references",
]
