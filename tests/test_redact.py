import numpy as np
import pytest

from veilpage.buffer import ImageBuffer
from veilpage.errors import RegionOutOfBoundsError
from veilpage.models import BoundingBox, RedactionBox, SpanKind
from veilpage.redact import pixelate_region, pixelate_regions


def _noisy(width=64, height=48, seed=0) -> ImageBuffer:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    return ImageBuffer(pixels)


def test_blocks_take_top_left_colour():
    buf = _noisy()
    before = buf.pixels.copy()
    pixelate_region(buf, BoundingBox(10, 10, 30, 30), 10)
    assert (buf.pixels[10:20, 10:20, :3] == before[10, 10, :3]).all()
    assert (buf.pixels[20:30, 20:30, :3] == before[20, 20, :3]).all()


def test_grid_is_anchored_at_image_origin():
    buf = _noisy()
    before = buf.pixels.copy()
    pixelate_region(buf, BoundingBox(8, 8, 28, 28), 10)
    assert (buf.pixels[8:10, 8:10, :3] == before[0, 0, :3]).all()
    assert (buf.pixels[10:20, 10:20, :3] == before[10, 10, :3]).all()
    assert (buf.pixels[20:28, 20:28, :3] == before[20, 20, :3]).all()


def test_overlapping_boxes_are_order_independent():
    a = _noisy(width=60, height=40, seed=3)
    b = a.copy()
    first = BoundingBox(0, 0, 30, 20)
    second = BoundingBox(5, 3, 45, 25)
    pixelate_regions(a, [first, second], 10)
    pixelate_regions(b, [second, first], 10)
    assert (a.pixels == b.pixels).all()


def test_outside_region_and_alpha_untouched():
    buf = _noisy()
    before = buf.pixels.copy()
    pixelate_region(buf, BoundingBox(10, 10, 30, 30), 7)
    assert (buf.pixels[..., 3] == before[..., 3]).all()
    mask = np.ones(before.shape[:2], dtype=bool)
    mask[10:30, 10:30] = False
    assert (buf.pixels[mask] == before[mask]).all()


def test_redaction_is_idempotent():
    buf = _noisy()
    box = RedactionBox(BoundingBox(3, 5, 40, 33), SpanKind.EMAIL, "x", 90.0)
    pixelate_regions(buf, [box], 6)
    once = buf.pixels.copy()
    pixelate_regions(buf, [box, box], 6)
    assert (buf.pixels == once).all()


def test_partial_overhang_is_clamped():
    buf = _noisy(width=20, height=20)
    pixelate_region(buf, BoundingBox(15, 15, 40, 40), 10)
    assert (buf.pixels[15:20, 15:20, :3] == buf.pixels[15, 15, :3]).all()


def test_zero_area_box_is_noop():
    buf = _noisy()
    before = buf.pixels.copy()
    pixelate_region(buf, BoundingBox(5, 5, 5, 20), 4)
    assert (buf.pixels == before).all()


@pytest.mark.parametrize(
    "box",
    [BoundingBox(30, 5, 10, 20), BoundingBox(100, 100, 120, 120), BoundingBox(-20, -20, -1, -1)],
)
def test_invalid_regions_raise(box):
    with pytest.raises(RegionOutOfBoundsError):
        pixelate_region(_noisy(), box, 5)


@pytest.mark.parametrize("size", [0, 51])
def test_block_size_bounds(size):
    with pytest.raises(ValueError):
        pixelate_region(_noisy(), BoundingBox(0, 0, 10, 10), size)


def test_pixelate_regions_counts_boxes():
    buf = _noisy()
    n = pixelate_regions(buf, [BoundingBox(0, 0, 10, 10), BoundingBox(20, 20, 30, 30)])
    assert n == 2
