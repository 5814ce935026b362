"""Local image uploader.

Stands in for a platform's image host when exporting to files: downloads
each image (or decodes a data URI), re-encodes it and stores it in the
export directory.
    1. Strip EXIF metadata
    2. Downscale to the configured max width (no upscaling)
    3. Convert to WebP

Usage:
    uploader = LocalImageUploader()
    document = await render_for_platform(markdown, "zhihu", upload_image=uploader)
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
from io import BytesIO
from pathlib import Path
from urllib.parse import unquote_to_bytes

import requests
from PIL import Image

from article_sync.common.config import settings
from article_sync.common.logging import setup_logging
from article_sync.content.uploads import UploadedImage

logger = setup_logging(module_name="publisher.images")


class LocalImageUploader:
    """Re-encodes images into ``<export_dir>/images``.

    Args:
        export_dir: Root export directory. Defaults to
            ``settings.export.export_dir``.
        max_width: Downscale wider images to this width.
        quality: WebP quality.
        base_url: Public URL prefix for stored files. Without one the
            result URL is a ``file://`` URI.
    """

    def __init__(
        self,
        export_dir: Path | str | None = None,
        max_width: int | None = None,
        quality: int | None = None,
        base_url: str = "",
        session: requests.Session | None = None,
    ):
        self.image_dir = Path(export_dir or settings.export.export_dir) / "images"
        self.max_width = max_width or settings.export.image_max_width
        self.quality = quality or settings.export.image_quality
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "image/webp,image/apng,image/*,*/*;q=0.8"})

    async def __call__(self, src: str) -> UploadedImage:
        # Blocking I/O stays off the event loop
        return await asyncio.to_thread(self.upload, src)

    def upload(self, src: str) -> UploadedImage:
        """Store one image and report its URL and size.

        Raises:
            ValueError: The source is not a decodable image.
            RuntimeError: The download failed.
        """
        raw = decode_data_uri(src) if src.startswith("data:") else self._download(src)
        try:
            img = Image.open(BytesIO(raw))
            img.load()
        except Exception as e:
            raise ValueError(f"Not an image: {e}") from e

        img = self._strip_exif(img)
        img = self._resize(img)

        filename = hashlib.sha1(src.encode("utf-8")).hexdigest()[:16] + ".webp"
        output_path = self.image_dir / filename
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self._to_webp(img))

        url = f"{self.base_url}/{filename}" if self.base_url else output_path.resolve().as_uri()
        logger.debug("Stored image %s (%dx%d)", output_path, img.width, img.height)
        return UploadedImage(url=url, width=img.width, height=img.height, file_id=filename)

    # --- Pipeline stages ---

    def _strip_exif(self, img: Image.Image) -> Image.Image:
        """Remove EXIF metadata by copying pixel data to a new image."""
        if img.mode not in ("RGB", "RGBA", "L"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
        clean = Image.new(img.mode, img.size)
        clean.paste(img)
        return clean

    def _resize(self, img: Image.Image) -> Image.Image:
        """Fit within ``max_width``, preserving aspect ratio. Never upscales."""
        if img.width <= self.max_width:
            return img
        ratio = self.max_width / img.width
        return img.resize((self.max_width, max(1, int(img.height * ratio))), Image.LANCZOS)

    def _to_webp(self, img: Image.Image) -> bytes:
        buf = BytesIO()
        if img.mode != "RGBA":
            img = img.convert("RGB")
        img.save(buf, format="WEBP", quality=self.quality)
        return buf.getvalue()

    # --- Downloading ---

    def _download(self, url: str, timeout: int = 10, retries: int = 2) -> bytes:
        """Download an image with retry logic."""
        last_err = None
        for attempt in range(retries + 1):
            try:
                resp = self._session.get(url, timeout=timeout)
                resp.raise_for_status()
                return resp.content
            except requests.RequestException as e:
                last_err = e
        raise RuntimeError(f"Failed to download {url} after {retries + 1} attempts: {last_err}")


def decode_data_uri(uri: str) -> bytes:
    """Payload of a ``data:`` URI (base64 or percent-encoded)."""
    header, sep, payload = uri.partition(",")
    if not sep:
        raise ValueError("Malformed data URI")
    if header.endswith(";base64"):
        return base64.b64decode(payload)
    return unquote_to_bytes(payload)
