"""
Image Preparation
=================

Data-URI handling and provider-aware image compression.

Provides functions for:
- Splitting a data URI into MIME type and base64 payload
- MIME type lookup by file extension
- Per-provider image size limits
- Resizing and re-encoding an image to fit those limits

Every failure raises ``MediaError`` so the client can report it before
any network I/O, instead of silently sending a text-only request.
"""

import base64
import binascii
import io
from dataclasses import dataclass
from typing import Union

from PIL import Image, UnidentifiedImageError

from chatbridge.llm.errors import MediaError
from chatbridge.providers.types import Provider
from chatbridge.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_IMAGE_MIME = "image/jpeg"

_MIME_TYPES = {
    # Images
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    # Documents
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "txt": "text/plain",
    # Video
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
}

_PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}


@dataclass(frozen=True)
class ImageLimits:
    """Largest image a provider accepts."""

    max_width: int
    max_height: int
    max_bytes: int


_MB = 1024 * 1024
_DEFAULT_LIMITS = ImageLimits(2048, 2048, 5 * _MB)
_IMAGE_LIMITS: dict[Provider, ImageLimits] = {
    Provider.OPENAI: ImageLimits(3072, 3072, 20 * _MB),
    Provider.AZURE: ImageLimits(3072, 3072, 20 * _MB),
    Provider.ANTHROPIC: ImageLimits(5000, 5000, 5 * _MB),
    Provider.GEMINI: ImageLimits(4096, 4096, 10 * _MB),
    Provider.MISTRAL: ImageLimits(2048, 2048, 5 * _MB),
    Provider.QWEN: ImageLimits(4096, 4096, 10 * _MB),
}


def image_limits_for(provider: Provider | str) -> ImageLimits:
    return _IMAGE_LIMITS.get(Provider.parse(provider), _DEFAULT_LIMITS)


def guess_mime_type(name: str) -> str:
    """
    Guess a MIME type from a file name or URI extension.

    Returns ``application/octet-stream`` for unknown extensions.
    """
    _, dot, extension = name.rpartition(".")
    if not dot:
        return "application/octet-stream"
    return _MIME_TYPES.get(extension.lower(), "application/octet-stream")


def to_data_uri(b64_data: str, mime_type: str = DEFAULT_IMAGE_MIME) -> str:
    return f"data:{mime_type};base64,{b64_data}"


def split_data_uri(data_uri: str) -> tuple[str, str]:
    """
    Split ``data:<mime>;base64,<payload>`` into ``(mime, payload)``.

    The MIME type is what precedes the first ``;``; the payload is what
    follows ``base64,``.

    Raises:
        MediaError: If the URI is not a base64 data URI or the payload
            is not valid base64.
    """
    if not data_uri.startswith("data:") or "base64," not in data_uri:
        raise MediaError("Image must be a base64 data URI")
    mime_type = data_uri.split(";", 1)[0][len("data:"):] or DEFAULT_IMAGE_MIME
    payload = data_uri.split("base64,", 1)[1]
    if not payload:
        raise MediaError("Image data URI has an empty payload")
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MediaError(f"Image payload is not valid base64: {e}") from e
    return mime_type, payload


def _to_bytes(image: Union[bytes, str]) -> bytes:
    """Decode any accepted image input into raw bytes."""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    if image.startswith("data:"):
        _, payload = split_data_uri(image)
        return base64.b64decode(payload)
    try:
        return base64.b64decode(image, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MediaError(f"Image payload is not valid base64: {e}") from e


def prepare_image(
    image: Union[bytes, str],
    provider: Provider | str,
    quality: int = 80,
) -> str:
    """
    Fit an image to a provider's limits and return it as a data URI.

    Images already within the limits keep their original bytes and format
    when that format is JPEG, PNG, GIF or WebP. Larger ones, and other
    formats, are downscaled with Lanczos resampling and re-encoded as JPEG.

    Args:
        image: Raw bytes, a base64 string or a data URI.
        provider: Target provider (decides the limits).
        quality: JPEG quality (1-100) used when re-encoding.

    Returns:
        ``data:<mime>;base64,<payload>`` ready for the request translator.

    Raises:
        MediaError: If the input cannot be decoded as an image or still
            exceeds the byte limit after compression.
    """
    raw = _to_bytes(image)
    if not raw:
        raise MediaError("Image is empty")

    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise MediaError(f"Could not decode image: {e}") from e

    limits = image_limits_for(provider)
    # Formats providers cannot take (BMP, TIFF, ...) are always re-encoded
    mime_type = _PIL_FORMATS.get(img.format or "")
    fits = (
        mime_type is not None
        and img.width <= limits.max_width
        and img.height <= limits.max_height
        and len(raw) <= limits.max_bytes
    )
    if fits:
        return to_data_uri(base64.b64encode(raw).decode("ascii"), mime_type)

    original_size = (img.width, img.height)
    img.thumbnail((limits.max_width, limits.max_height), Image.Resampling.LANCZOS)

    # JPEG has no alpha channel
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    output = io.BytesIO()
    img.save(output, format="JPEG", quality=quality, optimize=True)
    compressed = output.getvalue()

    logger.debug(
        "Image compressed for provider",
        provider=str(provider),
        original_size=f"{original_size[0]}x{original_size[1]}",
        new_size=f"{img.width}x{img.height}",
        original_kb=len(raw) // 1024,
        compressed_kb=len(compressed) // 1024,
    )

    if len(compressed) > limits.max_bytes:
        raise MediaError(
            f"Image is {len(compressed)} bytes after compression; "
            f"{provider} accepts at most {limits.max_bytes}"
        )
    return to_data_uri(base64.b64encode(compressed).decode("ascii"), "image/jpeg")
