"""Image upload coordination.

The coordinator resolves image sources to hosted URLs through an external
upload collaborator. Uploads run one at a time with a pause between them by
default, to stay under platform rate limits; bulk callers can opt into a
bounded number of concurrent uploads. Either way each unique source is
uploaded at most once per call, and a failed upload only leaves that one
image unresolved.
"""

from __future__ import annotations

import asyncio
import html
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Union

from article_sync.common.config import settings
from article_sync.common.logging import setup_logging
from article_sync.content.images import ImageMatch, ImageSyntax, find_images

logger = setup_logging(module_name="content.uploads")


@dataclass(frozen=True)
class UploadedImage:
    """A resolved image.

    Attributes:
        url: Hosted URL to reference instead of the original source.
        width: Original pixel width, if the uploader reported it.
        height: Original pixel height, if the uploader reported it.
        file_id: Platform-side identifier, if any.
        attrs: Extra attributes for rewritten ``<img>`` tags.
    """
    url: str
    width: int | None = None
    height: int | None = None
    file_id: str | None = None
    attrs: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_result(cls, result: Any) -> UploadedImage:
        """Normalize whatever an uploader returned.

        Accepts an ``UploadedImage``, a mapping with ``url`` and optional
        ``width``/``height``/``fileId``/``file_id``/``attrs``, a bare URL
        string, or an object exposing the same attributes.
        """
        if isinstance(result, UploadedImage):
            return result
        if isinstance(result, str):
            return cls(url=result)
        if isinstance(result, Mapping):
            get = result.get
        else:
            def get(key, default=None):
                return getattr(result, key, default)

        url = get("url")
        if not url:
            raise ValueError(f"Upload result has no url: {result!r}")
        return cls(
            url=str(url),
            width=_as_int(get("width")),
            height=_as_int(get("height")),
            file_id=get("file_id") or get("fileId"),
            attrs=dict(get("attrs") or {}),
        )


def _as_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


ImageUploader = Callable[[str], Union[Awaitable[Any], Any]]
ProgressCallback = Callable[[int, int], None]


class ImageUploadCoordinator:
    """Resolves image sources through an upload collaborator.

    Args:
        uploader: Callable taking a source (URL or data URI) and returning an
            upload result, directly or as an awaitable.
        delay_seconds: Pause between uploads. Defaults to
            ``settings.upload.delay_seconds``; 0 disables it.
        concurrency: Maximum uploads in flight. 1 (the default) uploads
            strictly in order.
        on_progress: Called with ``(completed, total)`` after every
            resolution attempt, successful or not.
    """

    def __init__(
        self,
        uploader: ImageUploader,
        delay_seconds: float | None = None,
        concurrency: int = 1,
        on_progress: ProgressCallback | None = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.uploader = uploader
        self.delay_seconds = settings.upload.delay_seconds if delay_seconds is None else delay_seconds
        self.concurrency = concurrency
        self.on_progress = on_progress

    @classmethod
    def parallel(
        cls,
        uploader: ImageUploader,
        on_progress: ProgressCallback | None = None,
        concurrency: int | None = None,
    ) -> ImageUploadCoordinator:
        """Bounded-parallel coordinator for bulk work."""
        return cls(
            uploader,
            concurrency=concurrency or settings.upload.parallel_concurrency,
            on_progress=on_progress,
        )

    async def resolve(self, sources: Iterable[str]) -> dict[str, UploadedImage]:
        """Upload each unique source once.

        Args:
            sources: Image sources, possibly with duplicates.

        Returns:
            Mapping of source to resolved image. Sources whose upload failed
            are absent.
        """
        unique = [src for src in dict.fromkeys(sources) if src]
        resolved: dict[str, UploadedImage] = {}
        if not unique:
            return resolved

        total = len(unique)
        completed = 0

        def report() -> None:
            nonlocal completed
            completed += 1
            if self.on_progress is not None:
                self.on_progress(completed, total)

        if self.concurrency == 1:
            for index, src in enumerate(unique):
                if index and self.delay_seconds > 0:
                    await asyncio.sleep(self.delay_seconds)
                image = await self._upload_one(src, index, total)
                if image is not None:
                    resolved[src] = image
                report()
            return resolved

        semaphore = asyncio.Semaphore(self.concurrency)

        async def worker(index: int, src: str) -> None:
            async with semaphore:
                image = await self._upload_one(src, index, total)
                if image is not None:
                    resolved[src] = image
                report()
                if self.delay_seconds > 0:
                    # Pace each slot before releasing it
                    await asyncio.sleep(self.delay_seconds)

        await asyncio.gather(*(worker(i, src) for i, src in enumerate(unique)))
        # Keep document order regardless of completion order
        return {src: resolved[src] for src in unique if src in resolved}

    async def _upload_one(self, src: str, index: int, total: int) -> UploadedImage | None:
        label = "data URI" if src.startswith("data:") else src
        logger.debug("Uploading image %d/%d: %s", index + 1, total, label)
        try:
            result = self.uploader(src)
            if inspect.isawaitable(result):
                result = await result
            image = UploadedImage.from_result(result)
        except Exception as e:
            logger.warning("Failed to upload image %s: %s", label, e)
            return None
        logger.debug("Image uploaded: %s", image.url)
        return image


@dataclass
class ReplaceResult:
    """Outcome of ``replace_image_references``."""
    content: str
    uploaded: dict[str, UploadedImage] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _should_skip(src: str, skip_patterns: Iterable[str]) -> bool:
    # Data URIs must always be uploaded; platforms never accept them inline
    if src.startswith("data:"):
        return False
    return any(pattern in src for pattern in skip_patterns)


def _replacement(match: ImageMatch, image: UploadedImage) -> str:
    if match.syntax == ImageSyntax.HTML:
        parts = [f'<img src="{html.escape(image.url)}"']
        if match.alt:
            parts.append(f'alt="{html.escape(match.alt)}"')
        parts.extend(f'{key}="{html.escape(str(value))}"' for key, value in image.attrs.items())
        return " ".join(parts) + " />"
    title = f' "{match.title}"' if match.title else ""
    return f"![{match.alt}]({image.url}{title})"


async def replace_image_references(
    content: str,
    uploader: ImageUploader,
    skip_patterns: Iterable[str] = (),
    on_progress: ProgressCallback | None = None,
    coordinator: ImageUploadCoordinator | None = None,
) -> ReplaceResult:
    """Upload every image referenced in raw Markdown/HTML and rewrite it.

    Args:
        content: Markdown or HTML text.
        uploader: Upload collaborator (used unless ``coordinator`` is given).
        skip_patterns: Substrings marking sources already hosted on the
            target platform. Data URIs are never skipped.
        on_progress: ``(completed, total)`` progress callback.
        coordinator: Preconfigured coordinator (e.g. parallel).

    Returns:
        The rewritten content plus what was uploaded, failed and skipped.
        References whose upload failed are left untouched.
    """
    patterns = tuple(skip_patterns)
    matches = find_images(content, include_html=True)
    result = ReplaceResult(content=content)
    if not matches:
        return result

    sources: list[str] = []
    for match in matches:
        if _should_skip(match.src, patterns):
            if match.src not in result.skipped:
                logger.debug("Skipping matched pattern: %s", match.src)
                result.skipped.append(match.src)
            continue
        sources.append(match.src)

    coordinator = coordinator or ImageUploadCoordinator(uploader, on_progress=on_progress)
    result.uploaded = await coordinator.resolve(sources)
    result.failed = [src for src in dict.fromkeys(sources) if src not in result.uploaded]

    # Splice from the end so earlier offsets stay valid
    rewritten = content
    for match in sorted(matches, key=lambda m: m.start, reverse=True):
        image = result.uploaded.get(match.src)
        if image is None:
            continue
        rewritten = rewritten[:match.start] + _replacement(match, image) + rewritten[match.end:]
    result.content = rewritten
    return result
