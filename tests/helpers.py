"""Image and clock helpers shared by tests and fixtures."""

from __future__ import annotations

import base64
import struct
import zlib
from datetime import datetime, timedelta, timezone

import cv2
import numpy as np

BLUE = (255, 0, 0)  # BGR
RED = (0, 0, 255)


def solid_image(color: tuple[int, int, int], width: int = 100, height: int = 100) -> np.ndarray:
    """A BGR image filled with one color."""
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, :] = color
    return image


def to_png_base64(image: np.ndarray, data_uri: bool = False) -> str:
    success, buffer = cv2.imencode(".png", image)
    assert success
    text = base64.b64encode(buffer.tobytes()).decode("ascii")
    return f"data:image/png;base64,{text}" if data_uri else text


def to_jpeg_base64(image: np.ndarray) -> str:
    success, buffer = cv2.imencode(".jpg", image)
    assert success
    return base64.b64encode(buffer.tobytes()).decode("ascii")


def oversized_png_base64(width: int = 20000, height: int = 20000) -> str:
    """A header-only PNG declaring dimensions over Pillow's pixel limit."""

    def chunk(tag: bytes, body: bytes) -> bytes:
        crc = zlib.crc32(tag + body) & 0xFFFFFFFF
        return struct.pack(">I", len(body)) + tag + body + struct.pack(">I", crc)

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    data = (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(b""))
        + chunk(b"IEND", b"")
    )
    return base64.b64encode(data).decode("ascii")


class FakeClock:
    """A manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.start = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.now = self.start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += timedelta(milliseconds=ms)

    def at(self, ms: float) -> None:
        """Jump to ``ms`` milliseconds after the start."""
        self.now = self.start + timedelta(milliseconds=ms)
