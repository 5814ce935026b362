"""Platform adapters.

An adapter takes a rendered ``TargetDocument`` and delivers it. Live
platform clients are outside this package; ``FileExportAdapter`` writes the
document to the export directory for manual upload.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from article_sync.common.config import settings
from article_sync.common.logging import setup_logging
from article_sync.content.capabilities import OutputFormat
from article_sync.content.renderer import TargetDocument

from .models import ExportSuffix, PublishResult

logger = setup_logging(module_name="publisher.platforms")


class PlatformAdapter(ABC):
    """Delivers a rendered document to one platform."""

    platform_id: str = ""

    @abstractmethod
    def publish(self, document: TargetDocument, title: str) -> PublishResult:
        """Publish ``document`` under ``title``."""


class FileExportAdapter(PlatformAdapter):
    """Writes the rendered document to ``<export_dir>/<platform_id>/``.

    Markdown goes to ``.md``, HTML to ``.html`` and rich documents to
    ``.json``.
    """

    def __init__(self, platform_id: str, export_dir: Path | str | None = None):
        self.platform_id = platform_id
        self.export_dir = Path(export_dir or settings.export.export_dir)

    def publish(self, document: TargetDocument, title: str) -> PublishResult:
        """Export content to a file.

        Args:
            document: Rendered document.
            title: Post title, used in the file name.

        Returns:
            PublishResult with the file path as ``post_url``.
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        suffix = ExportSuffix[OutputFormat(document.format).name].value
        filename = f"{self.platform_id}_{_sanitize_filename(title)}_{timestamp}{suffix}"
        output_path = self.export_dir / self.platform_id / filename

        if document.format == OutputFormat.RICH_DOCUMENT:
            body = json.dumps(document.content, ensure_ascii=False, indent=2)
        else:
            body = document.content or ""

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(body)

        logger.info("%s %s exported: %s", self.platform_id, document.format.value, output_path)

        return PublishResult(
            success=True,
            platform=self.platform_id,
            post_url=str(output_path),
            published_at=datetime.now().isoformat(),
        )


def _sanitize_filename(title: str) -> str:
    """Sanitize a title for use as a filename.

    Args:
        title: Raw title string

    Returns:
        Safe filename string
    """
    safe = title.replace(" ", "_")
    safe = "".join(c for c in safe if c.isalnum() or c in ("_", "-"))
    return safe[:50]
