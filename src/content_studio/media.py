from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError

from .errors import ValidationError
from .types import ImageArtifact

MAX_SOURCE_IMAGE_BYTES = 5 * 1024 * 1024

ImageSource = ImageArtifact | bytes | str


def _split_data_url(value: str) -> tuple[str | None, str]:
    """Return (mime_type, base64 payload) for a data URL or a bare base64 string."""
    if value.startswith("data:") and "base64," in value:
        header, payload = value.split("base64,", 1)
        mime_type = header[len("data:"):].rstrip(";") or None
        return mime_type, payload
    return None, value


def detect_mime_type(data: bytes) -> str:
    """Identify an image payload with Pillow and return its MIME type."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except UnidentifiedImageError as exc:
        raise ValidationError("Source image is not a recognizable image format") from exc
    mime_type = Image.MIME.get(image_format or "")
    if not mime_type:
        raise ValidationError(f"Unsupported source image format: {image_format}")
    return mime_type


def encoded_size(byte_count: int) -> int:
    """Length of the base64 text that carries ``byte_count`` bytes."""
    return 4 * ((byte_count + 2) // 3)


def _check_size(size: int, max_bytes: int) -> None:
    if size > max_bytes:
        raise ValidationError(f"Source image is {size} bytes base64-encoded; the limit is {max_bytes} bytes")


def load_source_image(source: ImageSource, *, max_bytes: int = MAX_SOURCE_IMAGE_BYTES) -> ImageArtifact:
    """
    Normalize a conditioning image into an ``ImageArtifact``.

    Accepts an artifact, raw bytes, a bare base64 string or a ``data:`` URL. The size
    ceiling applies to the base64 text sent to the service and is checked before the
    payload is decoded or inspected.
    """
    if isinstance(source, ImageArtifact):
        _check_size(encoded_size(source.size), max_bytes)
        return source

    declared_mime: str | None = None
    if isinstance(source, str):
        declared_mime, payload = _split_data_url(source.strip())
        payload = "".join(payload.split())
        _check_size(len(payload), max_bytes)
        try:
            data = base64.b64decode(payload, validate=True)
        except (ValueError, binascii.Error) as exc:
            raise ValidationError("Source image is not valid base64 data") from exc
    else:
        data = bytes(source)
        _check_size(encoded_size(len(data)), max_bytes)

    if not data:
        raise ValidationError("Source image is empty")

    mime_type = declared_mime or detect_mime_type(data)
    return ImageArtifact(mime_type=mime_type, data=data)
