"""Download, resize and store generated images.

:class:`ImageProcessor` turns the remote URL returned by the generation API
into two local artifacts:

1. the downloaded bytes, stored unmodified as the *original* artifact;
2. a resized PNG, stored as the *processed* artifact.

Resizing depends on the kind:

- **icon** -- scaled and centre-cropped to exactly ``ICON_SIZE`` square;
- **logo** -- scaled to fit inside a ``LOGO_SIZE`` square with the aspect
  ratio preserved.  Smaller sources are enlarged.

Each step is a hard failure point.  Errors are wrapped in
:class:`~logogen.core.errors.ImageProcessingError` and abort the request.
Pillow work runs in a worker thread so the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time

import httpx
from PIL import Image, ImageOps

from logogen.core.config import ImageConfig
from logogen.core.errors import ImageProcessingError
from logogen.core.models import Dimensions, ImageKind, ProcessedImage
from logogen.core.storage import FileStore, sanitize_and_build_filename

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 45.0
SUPPORTED_FORMATS = ["png", "jpg", "jpeg", "webp"]


class DownloadError(Exception):
    """Downloading the generated image failed."""


def _open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def _fit_inside(image: Image.Image, box: int) -> Image.Image:
    """Scale *image* so its longer side equals *box*, allowing enlargement."""
    width, height = image.size
    ratio = min(box / width, box / height)
    new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
    if new_size == image.size:
        return image.copy()
    return image.resize(new_size, Image.Resampling.LANCZOS)


def resize_for_kind(data: bytes, kind: ImageKind, config: ImageConfig) -> tuple[bytes, Dimensions]:
    """Resize encoded image bytes for *kind* and re-encode as PNG.

    Returns:
        Tuple of ``(png_bytes, source_dimensions)``.
    """
    image = _open_image(data)
    source = Dimensions(width=image.width, height=image.height)
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")

    size = config.target_size(kind)
    if kind == ImageKind.ICON:
        resized = ImageOps.fit(
            image,
            (size, size),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
    else:
        resized = _fit_inside(image, size)

    buffer = io.BytesIO()
    resized.save(buffer, format="PNG", compress_level=6)
    return buffer.getvalue(), source


def read_dimensions(data: bytes, fallback: int) -> Dimensions:
    """Read pixel dimensions from encoded bytes.

    Falls back to a ``fallback`` x ``fallback`` square when the bytes cannot
    be introspected.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return Dimensions(width=image.width, height=image.height)
    except Exception as exc:
        logger.warning("Could not read image dimensions (%s), using %spx default", exc, fallback)
        return Dimensions(width=fallback, height=fallback)


class ImageProcessor:
    """Downloads a generated image and stores original and processed copies."""

    def __init__(
        self,
        config: ImageConfig,
        file_store: FileStore,
        client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._files = file_store
        self._client = client

    async def download(self, url: str) -> bytes:
        """Fetch *url*, refusing bodies larger than ``max_file_size``.

        The declared ``Content-Length`` is checked before reading, and the
        streamed byte count is checked while reading, so oversized responses
        are never fully buffered.  ``DOWNLOAD_TIMEOUT`` bounds the whole
        transfer; a server trickling bytes cannot stretch it.
        """
        try:
            data = await asyncio.wait_for(self._fetch(url), DOWNLOAD_TIMEOUT)
        except asyncio.TimeoutError as exc:
            raise DownloadError(
                f"Failed to download image: timed out after {DOWNLOAD_TIMEOUT:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download image: {exc}") from exc

        logger.info("Download completed, size: %d bytes", len(data))
        return data

    async def _fetch(self, url: str) -> bytes:
        limit = self._config.max_file_size
        async with self._client.stream("GET", url, timeout=DOWNLOAD_TIMEOUT) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > limit:
                raise DownloadError(f"Image too large: {declared} bytes (max: {limit})")

            chunks: list[bytes] = []
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > limit:
                    raise DownloadError(f"Image too large: more than {limit} bytes (max: {limit})")
                chunks.append(chunk)
        return b"".join(chunks)

    async def process(
        self,
        remote_url: str,
        kind: ImageKind,
        original_prompt: str,
    ) -> ProcessedImage:
        """Download, store, resize and store again.

        Args:
            remote_url: Image URL returned by the generation API.
            kind: Artifact kind; selects the resize strategy.
            original_prompt: The user's prompt, used for the filenames.

        Returns:
            Metadata for both stored artifacts.

        Raises:
            ImageProcessingError: If any step fails.
        """
        try:
            return await self._process(remote_url, kind, original_prompt)
        except ImageProcessingError:
            raise
        except Exception as exc:
            logger.error("Image processing error: %s", exc)
            raise ImageProcessingError(f"Failed to process image: {exc}") from exc

    async def _process(
        self,
        remote_url: str,
        kind: ImageKind,
        original_prompt: str,
    ) -> ProcessedImage:
        logger.info("Starting download from %s", remote_url)
        raw = await self.download(remote_url)

        timestamp = int(time.time() * 1000)
        filename = sanitize_and_build_filename(original_prompt, kind.value, timestamp)
        original_filename = sanitize_and_build_filename(
            original_prompt, kind.value, timestamp, is_original=True
        )
        paths = self._files.artifact_paths(filename, original_filename)

        await asyncio.to_thread(self._files.persist, paths.original_path, raw)
        logger.info("Original image saved: %s", original_filename)

        processed, source = await asyncio.to_thread(resize_for_kind, raw, kind, self._config)

        await asyncio.to_thread(self._files.persist, paths.processed_path, processed)
        logger.info("Processed image saved: %s", filename)

        dimensions = read_dimensions(processed, self._config.target_size(kind))

        return ProcessedImage(
            filename=filename,
            path=paths.public_processed_path,
            size=len(processed),
            dimensions=dimensions,
            original_filename=original_filename,
            original_path=paths.public_original_path,
            original_size=len(raw),
            original_dimensions=source,
        )

    def processing_config(self) -> dict:
        return {
            "logoSize": self._config.logo_size,
            "iconSize": self._config.icon_size,
            "maxFileSize": self._config.max_file_size,
            "supportedFormats": SUPPORTED_FORMATS,
        }
