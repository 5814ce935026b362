"""Capability-driven rendering of a Doc-AST into a target document.

Rendering is two pure passes around one asynchronous step:

1. ``collect_images(tree)`` lists the unique image sources.
2. The upload coordinator resolves them (the only suspend points).
3. ``render_tree(tree, capability, resolved)`` degrades the tree and emits
   the target format, substituting resolved image URLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from article_sync.common.errors import UnsupportedOutputFormatError
from article_sync.content.capabilities import (
    CapabilityDescriptor,
    OutputFormat,
    get_capabilities,
)
from article_sync.content.degradation import degrade
from article_sync.content.emitters import HtmlEmitter, MarkdownEmitter, RichDocumentEmitter
from article_sync.content.nodes import Image, Root, walk
from article_sync.content.parser import parse_markdown
from article_sync.content.uploads import (
    ImageUploadCoordinator,
    ImageUploader,
    ProgressCallback,
    UploadedImage,
)

EMITTERS = {
    OutputFormat.RICH_DOCUMENT: RichDocumentEmitter,
    OutputFormat.MARKDOWN: MarkdownEmitter,
    OutputFormat.HTML: HtmlEmitter,
}


@dataclass(frozen=True)
class TargetDocument:
    """One rendered document. Exactly one content field is set."""
    format: OutputFormat
    rich_document: dict[str, Any] | None = None
    markdown: str | None = None
    html: str | None = None

    @property
    def content(self) -> dict[str, Any] | str:
        if self.format == OutputFormat.RICH_DOCUMENT:
            return self.rich_document
        if self.format == OutputFormat.MARKDOWN:
            return self.markdown
        return self.html


def collect_images(tree: Root) -> list[str]:
    """Image sources in document order, each listed once."""
    return list(dict.fromkeys(node.url for node in walk(tree) if isinstance(node, Image) and node.url))


def _output_format(value: OutputFormat | str) -> OutputFormat:
    try:
        return OutputFormat(value)
    except ValueError:
        raise UnsupportedOutputFormatError(value) from None


def render_tree(
    tree: Root,
    capability: CapabilityDescriptor,
    resolved: Mapping[str, UploadedImage] | None = None,
    output_format: OutputFormat | str | None = None,
) -> TargetDocument:
    """Degrade and emit ``tree`` for one platform. Pure; no I/O.

    Args:
        tree: Parsed document.
        capability: Target platform descriptor.
        resolved: Uploaded-image cache from the coordinator. Images missing
            from it keep their original source.
        output_format: Overrides the descriptor's output format.

    Returns:
        The target document.

    Raises:
        UnsupportedOutputFormatError: No emitter exists for the format.
    """
    fmt = _output_format(output_format if output_format is not None else capability.output_format)
    emitter_cls = EMITTERS.get(fmt)
    if emitter_cls is None:
        raise UnsupportedOutputFormatError(fmt)

    degraded = degrade(tree, capability, fmt)
    output = emitter_cls(capability, resolved).emit(degraded)

    if fmt == OutputFormat.RICH_DOCUMENT:
        return TargetDocument(format=fmt, rich_document=output)
    if fmt == OutputFormat.MARKDOWN:
        return TargetDocument(format=fmt, markdown=output)
    return TargetDocument(format=fmt, html=output)


async def render(
    tree: Root,
    capability: CapabilityDescriptor,
    upload_image: ImageUploader | None = None,
    on_progress: ProgressCallback | None = None,
    parallel: bool = False,
    coordinator: ImageUploadCoordinator | None = None,
    output_format: OutputFormat | str | None = None,
) -> TargetDocument:
    """Resolve images, then render ``tree`` for ``capability``.

    Args:
        tree: Parsed document.
        capability: Target platform descriptor.
        upload_image: Upload collaborator. Without one (and without a
            coordinator) images keep their original sources.
        on_progress: ``(completed, total)`` image progress callback.
        parallel: Use the bounded-parallel upload mode.
        coordinator: Preconfigured coordinator, overriding the above.
        output_format: Overrides the descriptor's output format.

    Returns:
        The target document.
    """
    # Fail before any upload when the format cannot be rendered
    _output_format(output_format if output_format is not None else capability.output_format)

    resolved: dict[str, UploadedImage] = {}
    sources = collect_images(tree)
    if sources and capability.support_image:
        if coordinator is None and upload_image is not None:
            if parallel:
                coordinator = ImageUploadCoordinator.parallel(upload_image, on_progress=on_progress)
            else:
                coordinator = ImageUploadCoordinator(upload_image, on_progress=on_progress)
        if coordinator is not None:
            resolved = await coordinator.resolve(sources)

    return render_tree(tree, capability, resolved, output_format)


async def render_for_platform(
    markdown: str,
    platform_id: str,
    upload_image: ImageUploader | None = None,
    on_progress: ProgressCallback | None = None,
    parallel: bool = False,
) -> TargetDocument:
    """Parse ``markdown`` and render it for ``platform_id``.

    Unknown platform ids render with the all-enabled default descriptor.
    """
    tree = parse_markdown(markdown)
    return await render(
        tree,
        get_capabilities(platform_id),
        upload_image,
        on_progress=on_progress,
        parallel=parallel,
    )
