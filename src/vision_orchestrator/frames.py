"""Frame references from the extraction stage and loaded frame images."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from .exceptions import ImageValidationError

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    "pdf": "application/pdf",
}


@dataclass
class FrameRef:
    """A frame written to disk by the extraction stage."""

    path: str
    index: int
    timestamp: float = 0.0  # Seconds from the start of the recording


@dataclass
class FrameImage:
    """Encoded image bytes plus the metadata providers are filtered on."""

    data: bytes
    format: str  # Lowercase extension without the dot, e.g. "png"
    index: int = 0
    timestamp: float = 0.0
    width: int = 0
    height: int = 0

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES.get(self.format, "application/octet-stream")

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    @classmethod
    def from_bytes(
        cls, data: bytes, fmt: str, index: int = 0, timestamp: float = 0.0
    ) -> FrameImage:
        if not data:
            raise ImageValidationError("Frame image is empty")
        width, height = decode_resolution(data)
        return cls(
            data=data,
            format=normalize_format(fmt),
            index=index,
            timestamp=timestamp,
            width=width,
            height=height,
        )


def normalize_format(fmt: str) -> str:
    return fmt.lower().lstrip(".").strip()


def decode_resolution(data: bytes) -> tuple[int, int]:
    """(width, height) of an encoded image, or (0, 0) if OpenCV can't read it."""
    buf = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    if image is None:
        return 0, 0
    h, w = image.shape[:2]
    return int(w), int(h)


def load_frame(ref: FrameRef) -> FrameImage:
    path = Path(ref.path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageValidationError(f"Cannot read frame {path}: {e}") from e
    return FrameImage.from_bytes(
        data, path.suffix or "png", index=ref.index, timestamp=ref.timestamp
    )
