"""Tests for the local image uploader.

Tests cover:
- Data URI and downloaded sources
- Resizing to the configured max width (never upscaling)
- WebP output and reported dimensions
- Errors for non-images and failed downloads
- decode_data_uri
"""

import asyncio
import base64
from io import BytesIO
from unittest.mock import MagicMock

import pytest
import requests
from PIL import Image

from article_sync.content.uploads import UploadedImage
from article_sync.publisher.images import LocalImageUploader, decode_data_uri


# --- Test helpers ---


def _make_test_image(width: int = 1200, height: int = 900, mode: str = "RGB") -> bytes:
    """Create a test image as PNG bytes."""
    color = (128, 100, 80, 255) if mode == "RGBA" else (128, 100, 80)
    img = Image.new(mode, (width, height), color)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _data_uri(raw: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(raw).decode("ascii")


def _session_returning(content: bytes) -> MagicMock:
    session = MagicMock()
    session.get.return_value.content = content
    return session


# --- Upload tests ---


class TestLocalImageUploader:
    def test_data_uri_stored_as_webp(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path, max_width=1200)
        result = uploader.upload(_data_uri(_make_test_image(300, 200)))

        assert isinstance(result, UploadedImage)
        assert (result.width, result.height) == (300, 200)
        stored = tmp_path / "images" / result.file_id
        assert stored.suffix == ".webp"
        assert Image.open(stored).format == "WEBP"
        assert result.url == stored.resolve().as_uri()

    def test_resized_to_max_width(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path, max_width=1200)
        result = uploader.upload(_data_uri(_make_test_image(2400, 1000)))
        assert (result.width, result.height) == (1200, 500)

    def test_rgba_kept(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path)
        result = uploader.upload(_data_uri(_make_test_image(10, 10, mode="RGBA")))
        assert result.width == 10

    def test_base_url(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path, base_url="http://cdn.example.com/")
        result = uploader.upload(_data_uri(_make_test_image(10, 10)))
        assert result.url == f"http://cdn.example.com/{result.file_id}"

    def test_same_source_same_file(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path)
        src = _data_uri(_make_test_image(10, 10))
        assert uploader.upload(src).file_id == uploader.upload(src).file_id
        assert len(list((tmp_path / "images").iterdir())) == 1

    def test_downloaded_source(self, tmp_path):
        session = _session_returning(_make_test_image(50, 40))
        uploader = LocalImageUploader(export_dir=tmp_path, session=session)

        result = uploader.upload("http://img.example.com/a.png")

        session.get.assert_called_once_with("http://img.example.com/a.png", timeout=10)
        assert (result.width, result.height) == (50, 40)

    def test_download_retries_then_fails(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("down")
        uploader = LocalImageUploader(export_dir=tmp_path, session=session)

        with pytest.raises(RuntimeError, match="after 3 attempts"):
            uploader.upload("http://img.example.com/a.png")
        assert session.get.call_count == 3

    def test_not_an_image(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path)
        with pytest.raises(ValueError):
            uploader.upload("data:text/plain,hello")

    def test_async_call(self, tmp_path):
        uploader = LocalImageUploader(export_dir=tmp_path)
        result = asyncio.run(uploader(_data_uri(_make_test_image(20, 10))))
        assert (result.width, result.height) == (20, 10)

    def test_defaults_from_settings(self, tmp_path, monkeypatch):
        from article_sync.common.config import settings

        monkeypatch.setattr(settings.export, "export_dir", str(tmp_path))
        uploader = LocalImageUploader()
        assert uploader.image_dir == tmp_path / "images"
        assert uploader.max_width == settings.export.image_max_width
        assert uploader.quality == settings.export.image_quality


# --- decode_data_uri tests ---


class TestDecodeDataUri:
    def test_base64(self):
        assert decode_data_uri("data:text/plain;base64,aGk=") == b"hi"

    def test_percent_encoded(self):
        assert decode_data_uri("data:text/plain,a%20b") == b"a b"

    def test_malformed(self):
        with pytest.raises(ValueError):
            decode_data_uri("data:nothing")
