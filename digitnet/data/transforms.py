"""Conversions from raw images and labels to network inputs and targets."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ..core.matrix import Matrix
from ..core.types import Array

TARGET_ON = 0.99
TARGET_OFF = 0.01


def normalize_pixels(pixels: Sequence[int] | Array | bytes) -> Array:
    """Map bytes ``0..255`` to float32 values in ``[0.01, 1.0]``."""

    if isinstance(pixels, (bytes, bytearray, memoryview)):
        values = np.frombuffer(bytes(pixels), dtype=np.uint8)
    else:
        values = np.asarray(pixels).reshape(-1)
    return (values.astype(np.float32) / np.float32(255.0) * np.float32(0.99)
            + np.float32(0.01)).astype(np.float32)


def normalize_image(pixels: Sequence[int] | Array | bytes) -> Matrix:
    return Matrix.column(normalize_pixels(pixels), dtype=np.float32)


def one_hot_target(label: int, width: int = 10) -> Matrix:
    label = int(label)
    if not 0 <= label < width:
        raise ValueError(f"label {label} out of range for {width} classes")
    values = np.full(width, TARGET_OFF, dtype=np.float32)
    values[label] = TARGET_ON
    return Matrix.column(values, dtype=np.float32)


def canvas_input(buffer: bytes | Sequence[int], width: int = 28, height: int = 28) -> Matrix:
    """Normalise a drawn ``width x height`` greyscale buffer for querying."""

    if len(buffer) != width * height:
        raise ValueError(
            f"canvas buffer holds {len(buffer)} bytes, expected {width}x{height}"
        )
    return normalize_image(buffer)


__all__ = [
    "TARGET_OFF",
    "TARGET_ON",
    "canvas_input",
    "normalize_image",
    "normalize_pixels",
    "one_hot_target",
]
