"""Image processing tests (Pillow-backed)."""

from __future__ import annotations

from io import BytesIO

from PIL import Image
from pydantic import ValidationError
import pytest

from parley.errors import ImageProcessingError
from parley.images import (
    ImageProcessorOptions,
    choose_mime_type,
    fit_within,
    make_image_processor,
    process_image,
)
from parley.types import MessageFile
from tests.conftest import png_bytes

pytestmark = pytest.mark.unit


def _size_of(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as img:
        return img.size


def test_default_options_match_openai_limits() -> None:
    options = ImageProcessorOptions()

    assert options.preferred_mime_type == "image/webp"
    assert options.max_width == 4096
    assert options.max_height == 4096
    assert options.max_size_in_bytes == float("inf")
    assert "image/gif" in options.supported_mime_types


def test_options_accept_camel_case_aliases() -> None:
    options = ImageProcessorOptions.model_validate(
        {"preferredMimeType": "image/png", "maxWidth": 512, "maxHeight": 256}
    )

    assert options.preferred_mime_type == "image/png"
    assert (options.max_width, options.max_height) == (512, 256)


def test_preferred_mime_must_be_supported() -> None:
    with pytest.raises(ValidationError, match="preferred format"):
        ImageProcessorOptions(
            supported_mime_types=("image/png",), preferred_mime_type="image/webp"
        )


def test_choose_mime_type_keeps_supported_input() -> None:
    options = ImageProcessorOptions()

    assert choose_mime_type(options, "image/png", prefer_size_reduction=False) == "image/png"
    assert choose_mime_type(options, "image/png", prefer_size_reduction=True) == "image/webp"
    assert choose_mime_type(options, "image/bmp", prefer_size_reduction=False) == "image/webp"


def test_choose_mime_type_rejects_non_images() -> None:
    with pytest.raises(ImageProcessingError, match="non-image"):
        choose_mime_type(ImageProcessorOptions(), "text/plain", prefer_size_reduction=False)


def test_fit_within_keeps_aspect_ratio() -> None:
    assert fit_within(2000, 1000, 500, 500) == (500, 250)
    assert fit_within(100, 50, 500, 500) == (100, 50)


def test_image_within_bounds_passes_through_unchanged() -> None:
    data = png_bytes(16, 16)
    file = MessageFile(mime="image/png", value=data, name="small.png")

    processed = process_image(file, ImageProcessorOptions())

    assert processed.mime == "image/png"
    assert processed.image == data


def test_oversized_image_is_downscaled_and_converted() -> None:
    options = ImageProcessorOptions(max_width=32, max_height=32)
    file = MessageFile(mime="image/png", value=png_bytes(128, 64), name="wide.png")

    processed = process_image(file, options)

    assert processed.mime == "image/png"
    assert _size_of(processed.image) == (32, 16)


def test_unsupported_format_is_converted_to_preferred() -> None:
    options = ImageProcessorOptions(
        supported_mime_types=("image/jpeg",), preferred_mime_type="image/jpeg"
    )
    file = MessageFile(mime="image/png", value=png_bytes(8, 8), name="a.png")

    processed = process_image(file, options)

    assert processed.mime == "image/jpeg"
    assert processed.image[:2] == b"\xff\xd8"


def test_byte_budget_shrinks_until_it_fits() -> None:
    noisy = Image.effect_noise((256, 256), 100).convert("RGB")
    buffer = BytesIO()
    noisy.save(buffer, format="PNG")
    data = buffer.getvalue()
    options = ImageProcessorOptions(
        supported_mime_types=("image/png",),
        preferred_mime_type="image/png",
        max_size_in_mb=len(data) / 4 / 1_000_000,
    )

    processed = process_image(MessageFile(mime="image/png", value=data), options)

    assert len(processed.image) <= options.max_size_in_bytes
    assert _size_of(processed.image)[0] < 256


def test_undecodable_image_raises() -> None:
    file = MessageFile(mime="image/png", value=b"not an image", name="broken.png")

    with pytest.raises(ImageProcessingError, match="broken.png"):
        process_image(file, ImageProcessorOptions())


@pytest.mark.asyncio
async def test_make_image_processor_runs_async() -> None:
    processor = make_image_processor(ImageProcessorOptions())
    data = png_bytes(4, 4)

    processed = await processor(MessageFile(mime="image/png", value=data))

    assert processed.image == data


def test_message_file_from_file_guesses_mime(tmp_path) -> None:
    path = tmp_path / "photo.png"
    path.write_bytes(png_bytes())

    file = MessageFile.from_file(path)

    assert file.mime == "image/png"
    assert file.name == "photo.png"
    assert file.is_image
