import pandas as pd
from PIL import Image

from veilpage import ocr
from veilpage.models import BoundingBox
from veilpage.ocr import TesseractEngine, text_from_tsv, words_from_tsv


def _tsv():
    rows = [
        # level, block, par, line, left, top, width, height, conf, text
        (4, 1, 1, 1, 10, 10, 300, 20, -1, ""),
        (5, 1, 1, 1, 10, 10, 60, 20, 96.0, "Marie"),
        (5, 1, 1, 1, 80, 10, 70, 20, 91.5, "Dupont"),
        (5, 1, 1, 2, 10, 40, 50, 20, 88.0, " "),
        (5, 1, 1, 2, 10, 40, 120, 20, 72.0, "0612345678"),
    ]
    cols = ["level", "block_num", "par_num", "line_num", "left", "top", "width", "height", "conf", "text"]
    return pd.DataFrame(rows, columns=cols)


def test_words_from_tsv_keeps_word_rows():
    words = words_from_tsv(_tsv())
    assert [w.text for w in words] == ["Marie", "Dupont", "0612345678"]
    assert words[1].bbox == BoundingBox(80, 10, 150, 30)
    assert words[0].confidence == 96.0


def test_text_from_tsv_rebuilds_lines():
    assert text_from_tsv(_tsv()) == "Marie Dupont\n0612345678"


def test_empty_tsv():
    empty = _tsv().iloc[0:0]
    assert words_from_tsv(empty) == []
    assert text_from_tsv(empty) == ""


def test_recognize_reports_progress_and_mean_confidence(monkeypatch):
    calls = []
    monkeypatch.setattr(
        ocr.pytesseract, "image_to_data", lambda img, lang, config, output_type: calls.append(lang) or _tsv()
    )
    engine = TesseractEngine(preprocess=False, auto_psm=False)
    progress = []
    result = engine.recognize(Image.new("RGB", (200, 80), "white"), "fra", progress.append)
    assert calls == ["fra"]
    assert progress == [0.0, 1.0]
    assert result.text == "Marie Dupont\n0612345678"
    assert round(result.confidence, 2) == round((96.0 + 91.5 + 72.0) / 3, 2)


def test_auto_psm_retry_keeps_richest_result(monkeypatch):
    configs = []

    def fake(img, lang, config, output_type):
        configs.append(config)
        return _tsv() if "--psm 6" in config else _tsv().iloc[0:1]

    monkeypatch.setattr(ocr.pytesseract, "image_to_data", fake)
    engine = TesseractEngine(preprocess=True)
    progress = []
    result = engine.recognize(Image.new("RGB", (200, 80), "white"), "fra+eng", progress.append)
    assert len(configs) == 4
    assert progress == [0.0, 0.5, 1.0]
    assert len(result.words) == 3


def test_load_image_decodes_bytes():
    from conftest import png_bytes

    img = ocr.load_image(png_bytes(30, 20))
    assert img.size == (30, 20)


def test_load_image_applies_exif_orientation():
    import io

    exif = Image.Exif()
    exif[0x0112] = 6  # rotated 90 degrees clockwise
    out = io.BytesIO()
    Image.new("RGB", (30, 20), "white").save(out, format="JPEG", exif=exif)
    img = ocr.load_image(out.getvalue())
    assert img.size == (20, 30)
