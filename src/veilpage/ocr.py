"""OCR utilities.

Functions in this module rasterize the first page of a PDF into an image and
extract word-level text with confidence and bounding boxes using Tesseract.

Enhancements for difficult documents:
- Optional preprocessing (grayscale, binarize) using OpenCV. Only
  geometry-preserving steps are applied so word boxes stay valid on the
  original image.
- Optional auto-PSM retry to maximize token recovery on noisy pages
"""

from __future__ import annotations

import io
import os
from typing import Any, Callable, Dict, List, Optional

import cv2
import numpy as np
import pandas as pd
import pytesseract
from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFInfoNotInstalledError
from PIL import Image, ImageOps

from .logging import get_logger
from .models import BoundingBox, OcrResult, RecognizedWord

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]


def rasterize_first_page(data: bytes, dpi: int = 144) -> Image.Image:
    """Render the first page of a PDF into a PIL image.

    Attempts to use ``pdf2image`` first (requires Poppler). If Poppler is
    unavailable, falls back to rasterization via PyMuPDF.

    Parameters
    ----------
    data:
        Raw PDF bytes.
    dpi:
        Rasterization resolution in dots per inch.

    Environment
    -----------
    POPPLER_PATH:
        Optional explicit path to the Poppler binaries for pdf2image.
    """
    poppler_path = os.environ.get("POPPLER_PATH")
    kwargs: Dict[str, Any] = {"dpi": dpi, "first_page": 1, "last_page": 1}
    if poppler_path:
        kwargs["poppler_path"] = poppler_path
    try:
        pages = convert_from_bytes(data, **kwargs)
    except PDFInfoNotInstalledError:
        logger.info("Poppler not found, rasterizing with PyMuPDF")
        return _rasterize_with_pymupdf(data, dpi)
    if not pages:
        raise ValueError("PDF has no pages")
    return pages[0]


def _rasterize_with_pymupdf(data: bytes, dpi: int) -> Image.Image:
    import fitz  # PyMuPDF

    with fitz.open(stream=data, filetype="pdf") as doc:
        if doc.page_count == 0:
            raise ValueError("PDF has no pages")
        zoom = dpi / 72.0
        pix = doc[0].get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        mode = "RGB" if pix.n < 4 else "RGBA"
        return Image.frombytes(mode, (pix.width, pix.height), pix.samples)


def _preprocess_image(img: Image.Image, *, binarize: bool = True) -> Image.Image:
    """Grayscale and optionally binarize with an adaptive threshold."""
    arr = np.array(img.convert("RGB"))
    gray = cv2.cvtColor(arr, cv2.COLOR_RGB2GRAY)
    if binarize:
        gray = cv2.adaptiveThreshold(
            gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, 35, 15
        )
    return Image.fromarray(gray)


def words_from_tsv(tsv: pd.DataFrame) -> List[RecognizedWord]:
    """Convert Tesseract ``image_to_data`` rows into recognized words.

    Only word-level rows (``level == 5``) with non-blank text are kept.
    """
    if tsv.empty:
        return []
    rows = tsv[(tsv["level"] == 5) & tsv["text"].astype(str).str.strip().astype(bool)]
    words: List[RecognizedWord] = []
    for row in rows.itertuples(index=False):
        words.append(
            RecognizedWord(
                text=str(row.text).strip(),
                confidence=max(0.0, min(100.0, float(row.conf))),
                bbox=BoundingBox.from_ltwh(row.left, row.top, row.width, row.height),
            )
        )
    return words


def text_from_tsv(tsv: pd.DataFrame) -> str:
    """Rebuild page text, one line per Tesseract line, words space-joined."""
    if tsv.empty:
        return ""
    rows = tsv[(tsv["level"] == 5) & tsv["text"].astype(str).str.strip().astype(bool)]
    lines = (
        rows.assign(text=rows["text"].astype(str).str.strip())
        .groupby(["block_num", "par_num", "line_num"], sort=True)["text"]
        .apply(" ".join)
    )
    return "\n".join(lines.tolist())


class OcrEngine:
    """OCR collaborator interface."""

    def initialize(self) -> None:
        """Prepare the engine. Implement in subclasses when needed."""

    def recognize(
        self,
        img: Image.Image,
        language: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OcrResult:  # noqa: D401
        """Recognize text and words. Implement in subclasses."""
        raise NotImplementedError

    def terminate(self) -> None:
        """Release engine resources."""


class TesseractEngine(OcrEngine):
    """Tesseract-backed OCR via ``pytesseract``.

    ``language`` accepts Tesseract's multi-language syntax (``fra+eng``).
    """

    def __init__(
        self,
        psm: int = 3,
        *,
        preprocess: bool = True,
        binarize: bool = True,
        auto_psm: bool = True,
        tess_configs: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.psm = psm
        self.preprocess = preprocess
        self.binarize = binarize
        self.auto_psm = auto_psm
        self.tess_configs = tess_configs
        self.version: Optional[str] = None

    def initialize(self) -> None:
        self.version = str(pytesseract.get_tesseract_version())
        logger.info("Tesseract ready", extra={"extra": {"version": self.version}})

    def _config(self, psm: int) -> str:
        config = f"--oem 1 --psm {psm}"
        # Preserve spaces to help span alignment
        cfg: Dict[str, Any] = {"preserve_interword_spaces": 1}
        if self.tess_configs:
            cfg.update(self.tess_configs)
        for k, v in cfg.items():
            config += f" -c {k}={v}"
        return config

    def _run(self, img: Image.Image, language: str, psm: int) -> pd.DataFrame:
        tsv = pytesseract.image_to_data(
            img,
            lang=language,
            config=self._config(psm),
            output_type=pytesseract.Output.DATAFRAME,
        )
        return tsv.dropna(subset=["text"]).reset_index(drop=True)

    def recognize(
        self,
        img: Image.Image,
        language: str = "fra+eng",
        on_progress: Optional[ProgressCallback] = None,
    ) -> OcrResult:
        if on_progress:
            on_progress(0.0)
        work = _preprocess_image(img, binarize=self.binarize) if self.preprocess else img
        tsv = self._run(work, language, self.psm)
        # Auto-PSM retry: if too few tokens, re-run with alternates and pick best
        if self.auto_psm and len(tsv) < 5:
            if on_progress:
                on_progress(0.5)
            best, best_len = tsv, len(tsv)
            for alt in (6, 4, 11):
                alt_df = self._run(work, language, alt)
                if len(alt_df) > best_len:
                    best, best_len = alt_df, len(alt_df)
            tsv = best
        words = words_from_tsv(tsv)
        confidence = (
            float(sum(w.confidence for w in words) / len(words)) if words else 0.0
        )
        if on_progress:
            on_progress(1.0)
        return OcrResult(text=text_from_tsv(tsv), confidence=confidence, words=words)


def load_image(data: bytes) -> Image.Image:
    """Decode raster image bytes with Pillow, honouring EXIF orientation."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return ImageOps.exif_transpose(img)


__all__ = [
    "OcrEngine",
    "TesseractEngine",
    "rasterize_first_page",
    "load_image",
    "words_from_tsv",
    "text_from_tsv",
]
