from typing import Any, Dict, List, Optional

import pytest
from PIL import Image

from veilpage.models import BoundingBox, OcrResult, RecognizedWord
from veilpage.ocr import OcrEngine
from veilpage.settings import ServiceSettings, reset_settings_cache
from veilpage.spacy_detect import EntityRecognizer


class FakeOcrEngine(OcrEngine):
    """Returns a canned result; reports progress like Tesseract does."""

    def __init__(self, text: str = "", words: Optional[List[RecognizedWord]] = None, fail: Optional[Exception] = None):
        self.text = text
        self.words = words or []
        self.fail = fail
        self.initialized = False
        self.terminated = False
        self.calls = 0

    def initialize(self) -> None:
        self.initialized = True

    def recognize(self, img, language, on_progress=None):
        self.calls += 1
        if on_progress:
            on_progress(0.0)
        if self.fail is not None:
            raise self.fail
        if on_progress:
            on_progress(1.0)
        return OcrResult(text=self.text, confidence=91.0, words=list(self.words))

    def terminate(self) -> None:
        self.terminated = True


class FakeRecognizer(EntityRecognizer):
    def __init__(self, groups: Optional[Dict[str, List[Dict[str, Any]]]] = None, fail: Optional[Exception] = None):
        self.groups = groups or {}
        self.fail = fail
        self.calls = 0

    def analyze(self, text):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return self.groups


def make_words(line: str, y: int = 10, height: int = 20) -> List[RecognizedWord]:
    """Lay out space-separated words left to right, 12 px per character."""
    words = []
    x = 10
    for token in line.split():
        width = 12 * len(token)
        words.append(RecognizedWord(token, 90.0, BoundingBox(x, y, x + width, y + height)))
        x += width + 12
    return words


def png_bytes(width: int = 400, height: int = 80, color=(255, 255, 255)) -> bytes:
    import io

    out = io.BytesIO()
    Image.new("RGB", (width, height), color).save(out, format="PNG")
    return out.getvalue()


@pytest.fixture
def settings(tmp_path, monkeypatch) -> ServiceSettings:
    monkeypatch.setenv("VEILPAGE_DATA_DIR", str(tmp_path / "data"))
    reset_settings_cache()
    yield ServiceSettings(data_dir=tmp_path / "data", use_spacy=False)
    reset_settings_cache()
