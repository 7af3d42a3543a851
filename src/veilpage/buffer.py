"""Owned RGBA pixel surface mutated in place by redaction and watermarking."""

from __future__ import annotations

from typing import Optional

import numpy as np
from PIL import Image


class ImageBuffer:
    """Mutable 8-bit RGBA pixel buffer.

    The pixels live in a ``numpy.uint8`` array of shape ``(height, width, 4)``.
    Redaction and watermarking receive the buffer, mutate ``pixels`` in place
    and must not keep references to it. Once :meth:`release` has been called
    the buffer is unusable.
    """

    def __init__(self, pixels: np.ndarray) -> None:
        if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
            raise ValueError(
                f"expected uint8 array of shape (h, w, 4), got {pixels.dtype} {pixels.shape}"
            )
        self._pixels: Optional[np.ndarray] = pixels

    @classmethod
    def from_image(cls, img: Image.Image) -> "ImageBuffer":
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return cls(np.array(img, dtype=np.uint8))

    @classmethod
    def blank(cls, width: int, height: int, color=(255, 255, 255, 255)) -> "ImageBuffer":
        arr = np.empty((height, width, 4), dtype=np.uint8)
        arr[...] = color
        return cls(arr)

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise RuntimeError("ImageBuffer has been released")
        return self._pixels

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def released(self) -> bool:
        return self._pixels is None

    def to_image(self, mode: str = "RGBA") -> Image.Image:
        img = Image.fromarray(self.pixels)
        return img if mode == "RGBA" else img.convert(mode)

    def copy(self) -> "ImageBuffer":
        return ImageBuffer(self.pixels.copy())

    def release(self) -> None:
        self._pixels = None

    def __enter__(self) -> "ImageBuffer":
        return self

    def __exit__(self, *exc) -> None:
        self.release()


__all__ = ["ImageBuffer"]
