# Publisher — platform adapters, local image uploads, publishing pipeline
"""
Publisher module for delivering rendered articles.

Handles file export per platform (Markdown, HTML or rich-document JSON),
local image re-encoding as an upload collaborator, and the full
publishing pipeline.
"""

from .images import LocalImageUploader, decode_data_uri
from .models import ExportSuffix, PublishResult
from .pipeline import PublishPipeline
from .platforms import FileExportAdapter, PlatformAdapter

__all__ = [
    "ExportSuffix",
    "FileExportAdapter",
    "LocalImageUploader",
    "PlatformAdapter",
    "PublishPipeline",
    "PublishResult",
    "decode_data_uri",
]
