"""Image payload utilities for screenguide.

Decodes the base64 image payloads clients send (optionally prefixed with
a data URI) into raw encoded bytes, sniffs their format, and decodes them
into pixel arrays for frame comparison.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from screenguide.domain.errors import ImageDecodeError, MessageValidationError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

_PIL_FORMATS = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
}


@dataclass(frozen=True)
class EncodedImage:
    """An image as received: raw encoded bytes plus its MIME type."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE
    base64_text: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return self.base64_text or base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def strip_data_uri(payload: str) -> tuple[str, str | None]:
    """Split an optional ``data:<mime>;base64,`` prefix from a payload.

    Returns:
        (base64_text, mime_type) where mime_type is None when no prefix
        declared one.
    """
    match = _DATA_URI_RE.match(payload)
    if match:
        return payload[match.end():], match.group("mime")
    if "base64," in payload:
        return payload.split("base64,", 1)[1], None
    return payload, None


def decode_image_payload(payload: str | None) -> EncodedImage:
    """Decode a client image payload into raw bytes.

    Raises:
        MessageValidationError: If the payload is missing, empty, not
            valid base64, or declares pixel dimensions over Pillow's
            decompression bomb limit.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise MessageValidationError("Image payload is empty", reason="Invalid frame data")

    text, declared_mime = strip_data_uri(payload.strip())
    text = _WHITESPACE_RE.sub("", text)
    if not text:
        raise MessageValidationError("Base64 image data is empty", reason="Invalid frame data")

    try:
        data = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MessageValidationError(
            f"Base64 data appears to be corrupted or invalid: {e}",
            reason="Invalid frame data format",
        ) from e
    if not data:
        raise MessageValidationError("Base64 image data is empty", reason="Invalid frame data")

    sniffed = sniff_mime_type(data)
    mime_type = declared_mime or sniffed
    logger.debug("Decoded image payload: %d bytes (%s)", len(data), mime_type)
    return EncodedImage(data=data, mime_type=mime_type, base64_text=text)


def sniff_mime_type(data: bytes) -> str:
    """Detect the MIME type of encoded image bytes, defaulting to JPEG.

    Raises:
        MessageValidationError: If the header declares more pixels than
            Pillow is willing to open.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except Image.DecompressionBombError as e:
        raise MessageValidationError(str(e), reason="Invalid frame data") from e
    except (UnidentifiedImageError, OSError, ValueError):
        return DEFAULT_MIME_TYPE
    return _PIL_FORMATS.get(fmt or "", DEFAULT_MIME_TYPE)


def load_pixels(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into a BGR numpy array.

    Raises:
        ImageDecodeError: If the bytes are empty or not a decodable image.
    """
    if not data:
        raise ImageDecodeError("Image data is empty")
    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"OpenCV failed to decode {len(data)} bytes: {e}") from e
    if image is None:
        raise ImageDecodeError(f"{len(data)} bytes are not a supported image")
    return image


def decode_pixels(data: bytes) -> np.ndarray | None:
    """Like load_pixels, but returns None for undecodable bytes."""
    try:
        return load_pixels(data)
    except ImageDecodeError as e:
        logger.debug("%s", e.detail)
        return None
