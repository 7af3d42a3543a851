"""Export collaborators.

Encodes an :class:`ImageBuffer` to an image format with Pillow, or wraps it
as a single-page PDF with ``img2pdf`` where one pixel maps to one point so
the page has the image's pixel dimensions.
"""

from __future__ import annotations

import io
from typing import Dict

import img2pdf
from PIL import Image

from .buffer import ImageBuffer

FORMATS: Dict[str, Dict[str, str]] = {
    "jpeg": {"pil": "JPEG", "mime": "image/jpeg", "ext": ".jpg"},
    "png": {"pil": "PNG", "mime": "image/png", "ext": ".png"},
    "webp": {"pil": "WEBP", "mime": "image/webp", "ext": ".webp"},
}

PDF_MIME = "application/pdf"
THUMBNAIL_MAX_SIDE = 512
THUMBNAIL_QUALITY = 0.5


def _pil_quality(quality: float) -> int:
    return max(1, min(100, int(round(float(quality) * 100))))


class Exporter:
    """Default export collaborator backed by Pillow and img2pdf."""

    def encode(self, buffer: ImageBuffer, fmt: str = "jpeg", quality: float = 0.92) -> bytes:
        """Encode ``buffer`` to ``fmt`` (``jpeg``, ``png`` or ``webp``)."""
        spec = FORMATS.get(fmt)
        if spec is None:
            raise ValueError(f"Unsupported output format: {fmt}")
        img = buffer.to_image()
        if spec["pil"] == "JPEG":
            img = img.convert("RGB")
        out = io.BytesIO()
        if spec["pil"] == "PNG":
            img.save(out, format="PNG", optimize=True)
        else:
            img.save(out, format=spec["pil"], quality=_pil_quality(quality))
        return out.getvalue()

    def to_pdf(self, buffer: ImageBuffer, quality: float = 0.92) -> bytes:
        """Wrap ``buffer`` as a one-page PDF sized to its pixel dimensions."""
        jpeg = self.encode(buffer, "jpeg", quality)
        layout = img2pdf.get_fixed_dpi_layout_fun((72, 72))
        return img2pdf.convert(jpeg, layout_fun=layout)

    def thumbnail(self, buffer: ImageBuffer) -> bytes:
        """Small JPEG preview of the current buffer."""
        img = buffer.to_image("RGB")
        img.thumbnail((THUMBNAIL_MAX_SIDE, THUMBNAIL_MAX_SIDE), Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=_pil_quality(THUMBNAIL_QUALITY))
        return out.getvalue()


__all__ = ["Exporter", "FORMATS", "PDF_MIME"]
