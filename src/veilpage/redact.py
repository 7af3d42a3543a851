"""Redaction routines.

Irreversibly pixelates rectangular regions of an :class:`ImageBuffer` in
place. Each region is cut into square blocks and every block is flattened to
the colour of its top-left pixel, so the original content cannot be recovered
by sharpening or deblurring.
"""

from typing import Iterable, Tuple, Union

import numpy as np

from .buffer import ImageBuffer
from .errors import RegionOutOfBoundsError
from .models import BoundingBox, RedactionBox

MIN_BLOCK_SIZE = 1
MAX_BLOCK_SIZE = 50


def _clamp(box: BoundingBox, W: int, H: int) -> Tuple[int, int, int, int]:
    """Clamp a rectangle to image bounds.

    Parameters
    ----------
    box:
        Rectangle to clamp.
    W:
        Image width.
    H:
        Image height.

    Returns
    -------
    tuple
        Clamped ``(x0, y0, x1, y1)``.

    Raises
    ------
    RegionOutOfBoundsError
        When the rectangle is inverted or does not intersect the image.
    """
    if box.x1 < box.x0 or box.y1 < box.y0:
        raise RegionOutOfBoundsError(f"Inverted region {box.to_dict()}")
    if box.x0 >= W or box.y0 >= H or box.x1 < 0 or box.y1 < 0:
        raise RegionOutOfBoundsError(
            f"Region {box.to_dict()} lies outside the {W}x{H} image"
        )
    x0 = min(max(box.x0, 0), W)
    y0 = min(max(box.y0, 0), H)
    x1 = min(max(box.x1, 0), W)
    y1 = min(max(box.y1, 0), H)
    return x0, y0, x1, y1


def pixelate_region(buffer: ImageBuffer, box: BoundingBox, block_size: int) -> None:
    """Flatten one region of ``buffer`` into ``block_size`` squares.

    Blocks sit on a grid anchored at the image origin, so a pixel at
    ``(y, x)`` takes the colour of ``(y - y % step, x - x % step)``. Anchor
    pixels map onto themselves and never change, which makes the result
    independent of the order in which overlapping boxes are applied. Alpha
    is left untouched; blocks are clipped to the region.
    """
    if not MIN_BLOCK_SIZE <= int(block_size) <= MAX_BLOCK_SIZE:
        raise ValueError(
            f"block_size must be in [{MIN_BLOCK_SIZE}, {MAX_BLOCK_SIZE}], got {block_size}"
        )
    x0, y0, x1, y1 = _clamp(box, buffer.width, buffer.height)
    if x1 == x0 or y1 == y0:
        return
    step = int(block_size)
    ys = np.arange(y0, y1)
    xs = np.arange(x0, x1)
    rgb = buffer.pixels[..., :3]
    rgb[y0:y1, x0:x1] = rgb[(ys - ys % step)[:, None], (xs - xs % step)[None, :]]


def pixelate_regions(
    buffer: ImageBuffer,
    boxes: Iterable[Union[RedactionBox, BoundingBox]],
    block_size: int = 20,
) -> int:
    """Pixelate every box in place and return how many were processed.

    Parameters
    ----------
    buffer:
        Image to mutate.
    boxes:
        Redaction boxes (or bare bounding boxes). Duplicates and overlaps are tolerated;
        the result does not depend on box order.
    block_size:
        Side of the square blocks, in ``[1, 50]``.
    """
    count = 0
    for item in boxes:
        bbox = item.bbox if isinstance(item, RedactionBox) else item
        pixelate_region(buffer, bbox, block_size)
        count += 1
    return count


__all__ = ["pixelate_region", "pixelate_regions", "MIN_BLOCK_SIZE", "MAX_BLOCK_SIZE"]
