"""Full publishing pipeline: canonical Markdown to per-platform output.

Orchestrates the flow:
Markdown → parse → degrade/upload/render per platform → adapter

Usage:
    pipeline = PublishPipeline(uploader=LocalImageUploader())
    results = pipeline.run(markdown, "Post title", platforms=["zhihu", "juejin"])
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Mapping

from article_sync.common.logging import setup_logging
from article_sync.content.capabilities import get_capabilities, list_platforms
from article_sync.content.parser import parse_markdown
from article_sync.content.renderer import render
from article_sync.content.uploads import ImageUploader, ProgressCallback

from .models import PublishResult
from .platforms import FileExportAdapter, PlatformAdapter

logger = setup_logging(module_name="publisher.pipeline")


class PublishPipeline:
    """Renders one article for several platforms and hands each result off.

    Steps:
    1. Parse the Markdown once
    2. Per platform: upload images and render for its capabilities
    3. Publish through the platform's adapter (file export by default)

    A failure on one platform is recorded in its result and does not stop
    the others.
    """

    def __init__(
        self,
        adapters: Mapping[str, PlatformAdapter] | None = None,
        uploader: ImageUploader | None = None,
        parallel_uploads: bool = False,
        on_progress: ProgressCallback | None = None,
    ):
        self.adapters = dict(adapters or {})
        self.uploader = uploader
        self.parallel_uploads = parallel_uploads
        self.on_progress = on_progress

    def adapter_for(self, platform_id: str) -> PlatformAdapter:
        if platform_id not in self.adapters:
            self.adapters[platform_id] = FileExportAdapter(platform_id)
        return self.adapters[platform_id]

    def run(
        self,
        markdown: str,
        title: str,
        platforms: list[str] | None = None,
    ) -> list[PublishResult]:
        """Synchronous wrapper around ``run_async``."""
        return asyncio.run(self.run_async(markdown, title, platforms))

    async def run_async(
        self,
        markdown: str,
        title: str,
        platforms: list[str] | None = None,
    ) -> list[PublishResult]:
        """Execute the publishing pipeline.

        Args:
            markdown: Canonical article Markdown.
            title: Post title.
            platforms: Target platform ids. Defaults to every registered
                platform.

        Returns:
            One PublishResult per platform, in order.
        """
        platforms = platforms or list_platforms()

        logger.info("Step 1: Parsing article...")
        tree = parse_markdown(markdown)

        logger.info("Step 2: Publishing to %s...", ", ".join(platforms))
        results = []
        for platform_id in platforms:
            try:
                document = await render(
                    tree,
                    get_capabilities(platform_id),
                    self.uploader,
                    on_progress=self.on_progress,
                    parallel=self.parallel_uploads,
                )
                result = self.adapter_for(platform_id).publish(document, title)
            except Exception as e:
                logger.error("Publishing to %s failed: %s", platform_id, e)
                result = PublishResult(
                    success=False,
                    platform=platform_id,
                    error=str(e),
                    published_at=datetime.now().isoformat(),
                )
            results.append(result)

        published = sum(1 for r in results if r.success)
        logger.info("Pipeline complete: %d/%d platforms published", published, len(results))
        return results
