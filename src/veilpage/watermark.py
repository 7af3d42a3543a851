"""Tiled demo watermark.

The label is drawn repeatedly on a square layer large enough to cover the
image after rotation, rotated about the image centre, then blended with a
"difference" operator against white so the mark stays visible on both light
and dark backgrounds. Pixel dimensions and alpha never change.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .buffer import ImageBuffer

EFFECTIVE_FONT_SIZE = 16
MAX_OPACITY = 0.1
TILE_GAP_PX = 40
LAYER_MARGIN_PX = 8


@dataclass(frozen=True)
class WatermarkStyle:
    font_size: int = 32
    opacity: float = 0.25
    # canvas convention: positive angles turn clockwise
    angle_degrees: float = -45.0


def _load_font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def _tile_layer(side: int, label: str, font, font_px: int) -> Image.Image:
    layer = Image.new("L", (side, side), 0)
    draw = ImageDraw.Draw(layer)
    spacing_x = draw.textlength(label, font=font) + TILE_GAP_PX
    spacing_y = font_px + TILE_GAP_PX
    y = 0.0
    while y < side:
        x = 0.0
        while x < side:
            draw.text((x, y), label, fill=255, font=font)
            x += spacing_x
        y += spacing_y
    return layer


def stamp_watermark(
    buffer: ImageBuffer, label: str, style: WatermarkStyle = WatermarkStyle()
) -> None:
    """Tile ``label`` across the whole of ``buffer`` in place.

    Font size is capped at 16 px and opacity at 0.1 whatever the style asks
    for. Calling this twice stacks two marks; callers apply it once per run.
    """
    opacity = max(0.0, min(float(style.opacity), MAX_OPACITY))
    if not label or opacity == 0.0:
        return
    W, H = buffer.width, buffer.height
    font_px = max(1, min(int(style.font_size), EFFECTIVE_FONT_SIZE))
    font = _load_font(font_px)

    # a centred square of side >= diagonal still covers the image after any
    # rotation; the margin absorbs bilinear edge fade
    side = int(math.ceil(math.hypot(W, H))) + LAYER_MARGIN_PX
    layer = _tile_layer(side, label, font, font_px)
    rotated = layer.rotate(
        -float(style.angle_degrees),
        resample=Image.Resampling.BILINEAR,
        center=(side / 2, side / 2),
    )
    left = (side - W) // 2
    top = (side - H) // 2
    mask = rotated.crop((left, top, left + W, top + H))

    coverage = np.asarray(mask, dtype=np.float32)[..., None] * (opacity / 255.0)
    rgb = buffer.pixels[..., :3].astype(np.float32)
    inverted = np.abs(255.0 - rgb)
    blended = rgb + (inverted - rgb) * coverage
    buffer.pixels[..., :3] = np.clip(np.rint(blended), 0, 255).astype(np.uint8)


__all__ = ["WatermarkStyle", "stamp_watermark", "EFFECTIVE_FONT_SIZE", "MAX_OPACITY"]
