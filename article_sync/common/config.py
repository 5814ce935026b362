"""Project configuration and paths.

Loads settings from config/settings.yaml and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"
DATA_EXPORTS_DIR = DATA_DIR / "exports"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")


class UploadSettings(BaseModel):
    """Image upload coordination settings."""
    delay_seconds: float = 0.3  # pause between sequential uploads
    parallel_concurrency: int = 4


class ConverterSettings(BaseModel):
    """HTML to Markdown converter settings."""
    default_code_language: str = "bash"
    prefer_dom: bool = True
    html_parser: str = "html.parser"  # BeautifulSoup tree builder


class LoggingSettings(BaseModel):
    """Logging settings."""
    level: str = "INFO"


class ExportSettings(BaseModel):
    """Local export settings for the file adapters."""
    export_dir: str = str(DATA_EXPORTS_DIR)
    image_max_width: int = 1200
    image_quality: int = 85


class Settings(BaseModel):
    """Top-level application settings."""
    upload: UploadSettings = Field(default_factory=UploadSettings)
    converter: ConverterSettings = Field(default_factory=ConverterSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    # Extra platform capability descriptors, keyed by platform id
    capabilities: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def load(cls, settings_path: Path | None = None) -> Settings:
        """Load settings from config/settings.yaml, falling back to defaults.

        Environment variables override the file:
        ``ARTICLE_SYNC_UPLOAD_DELAY``, ``ARTICLE_SYNC_UPLOAD_CONCURRENCY``,
        ``ARTICLE_SYNC_LOG_LEVEL`` and ``ARTICLE_SYNC_EXPORT_DIR``.
        """
        settings_path = settings_path or CONFIG_DIR / "settings.yaml"
        data: dict[str, Any] = {}
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        _apply_env_overrides(data)
        return cls(**data)


def _apply_env_overrides(data: dict[str, Any]) -> None:
    overrides = {
        "ARTICLE_SYNC_UPLOAD_DELAY": ("upload", "delay_seconds"),
        "ARTICLE_SYNC_UPLOAD_CONCURRENCY": ("upload", "parallel_concurrency"),
        "ARTICLE_SYNC_LOG_LEVEL": ("logging", "level"),
        "ARTICLE_SYNC_EXPORT_DIR": ("export", "export_dir"),
    }
    for env_name, (section, key) in overrides.items():
        value = os.getenv(env_name)
        if value:
            data.setdefault(section, {})[key] = value


# Singleton settings instance
settings = Settings.load()
