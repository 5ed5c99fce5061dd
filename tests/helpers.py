"""Synthetic pixel helpers shared by the test modules."""

from __future__ import annotations

import io

import numpy as np
from PIL import Image


def solid_pixels(width: int, height: int, rgb: tuple[int, int, int]) -> np.ndarray:
    """Uniform ``uint8`` RGB array."""
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:, :] = rgb
    return pixels


def encode_pixels(pixels: np.ndarray, fmt: str = "PNG", **save_kwargs) -> bytes:
    """Encode an array to image bytes in memory."""
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format=fmt, **save_kwargs)
    return buffer.getvalue()
