"""Image attachment processing.

Attachments are decoded with Pillow, downscaled to the endpoint's bounds and
re-encoded into a format the endpoint accepts. Decoding and encoding are CPU
bound, so the work runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from io import BytesIO
import logging
import math
from typing import TYPE_CHECKING

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from parley.errors import ImageProcessingError

if TYPE_CHECKING:
    from parley.types import MessageFile

log = logging.getLogger(__name__)

_PIL_FORMATS: dict[str, str] = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/webp": "WEBP",
    "image/avif": "AVIF",
    "image/tiff": "TIFF",
    "image/gif": "GIF",
}

# Each pass shrinks both sides by this factor until the byte budget is met.
_SHRINK_FACTOR = 0.75


class ImageProcessorOptions(BaseModel):
    """Limits and formats accepted by an endpoint for image content."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    supported_mime_types: tuple[str, ...] = Field(
        default=(
            "image/png",
            "image/jpeg",
            "image/webp",
            "image/avif",
            "image/tiff",
            "image/gif",
        ),
        alias="supportedMimeTypes",
        min_length=1,
    )
    preferred_mime_type: str = Field(default="image/webp", alias="preferredMimeType")
    max_size_in_mb: float = Field(default=math.inf, gt=0, alias="maxSizeInMB")
    max_width: int = Field(default=4096, gt=0, alias="maxWidth")
    max_height: int = Field(default=4096, gt=0, alias="maxHeight")

    @field_validator("supported_mime_types")
    @classmethod
    def validate_known_formats(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Only formats Pillow can write are accepted."""
        unknown = [m for m in v if m not in _PIL_FORMATS]
        if unknown:
            raise ValueError(f"unsupported image mime types: {', '.join(unknown)}")
        return v

    @model_validator(mode="after")
    def validate_preferred_is_supported(self) -> ImageProcessorOptions:
        """The preferred output format must be one of the supported ones."""
        if self.preferred_mime_type not in self.supported_mime_types:
            raise ValueError(
                f'preferred format "{self.preferred_mime_type}" not found in '
                f"supported mimes: {', '.join(self.supported_mime_types)}"
            )
        return self

    @property
    def max_size_in_bytes(self) -> float:
        """Byte budget for one encoded image (may be infinite)."""
        return self.max_size_in_mb * 1000 * 1000


@dataclass(frozen=True, slots=True)
class ProcessedImage:
    """An encoded image ready to embed in a request."""

    mime: str
    image: bytes


ImageProcessor = Callable[["MessageFile"], Awaitable[ProcessedImage]]


def choose_mime_type(
    options: ImageProcessorOptions, mime: str, *, prefer_size_reduction: bool
) -> str:
    """Pick the output format for an image.

    The input format is kept when the endpoint supports it and nothing needs
    shrinking; otherwise the preferred format is used.
    """
    if not mime.startswith("image/"):
        raise ImageProcessingError(f"Received non-image mime type: {mime}")
    if mime in options.supported_mime_types and not prefer_size_reduction:
        return mime
    return options.preferred_mime_type


def fit_within(width: int, height: int, max_width: int, max_height: int) -> tuple[int, int]:
    """Scale ``(width, height)`` down to fit the bounds, keeping aspect ratio."""
    scale = min(1.0, max_width / width, max_height / height)
    return max(1, int(width * scale)), max(1, int(height * scale))


def _encode(img: Image.Image, mime: str) -> bytes:
    fmt = _PIL_FORMATS[mime]
    if fmt == "JPEG" and img.mode not in {"RGB", "L"}:
        img = img.convert("RGB")
    buffer = BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def process_image(file: MessageFile, options: ImageProcessorOptions) -> ProcessedImage:
    """Resize and transcode one attachment synchronously.

    Images already within bounds and in a supported format pass through
    byte-for-byte.
    """
    try:
        with Image.open(BytesIO(file.value)) as opened:
            opened.load()
            img: Image.Image = opened.copy()
    except (UnidentifiedImageError, OSError) as e:
        raise ImageProcessingError(
            f"Failed to read image {file.name or file.mime}",
            hint="Attach a valid PNG, JPEG, WebP, AVIF, TIFF or GIF file.",
        ) from e

    width, height = img.size
    too_large_in_size = width > options.max_width or height > options.max_height
    too_large_in_bytes = len(file.value) > options.max_size_in_bytes
    output_mime = choose_mime_type(
        options, file.mime, prefer_size_reduction=too_large_in_bytes
    )

    if not (too_large_in_size or too_large_in_bytes) and output_mime == file.mime:
        return ProcessedImage(mime=file.mime, image=file.value)

    if too_large_in_size:
        img = img.resize(fit_within(width, height, options.max_width, options.max_height))

    data = _encode(img, output_mime)
    while len(data) > options.max_size_in_bytes and max(img.size) > 1:
        w, h = img.size
        img = img.resize((max(1, int(w * _SHRINK_FACTOR)), max(1, int(h * _SHRINK_FACTOR))))
        data = _encode(img, output_mime)

    log.debug(
        "Processed image %s: %dx%d %s -> %dx%d %s (%d bytes)",
        file.name or "<inline>",
        width,
        height,
        file.mime,
        img.size[0],
        img.size[1],
        output_mime,
        len(data),
    )
    return ProcessedImage(mime=output_mime, image=data)


def make_image_processor(options: ImageProcessorOptions) -> ImageProcessor:
    """Return an async processor bound to *options*."""

    async def processor(file: MessageFile) -> ProcessedImage:
        return await asyncio.to_thread(process_image, file, options)

    return processor
