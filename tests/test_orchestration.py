import io

import numpy as np
import pytest
from PIL import Image

from veilpage.buffer import ImageBuffer
from veilpage.errors import (
    CollaboratorError,
    FileTooLargeError,
    InvalidOptionsError,
    PipelineStateError,
    UnsupportedFileTypeError,
)
from veilpage.license import FreeLicense, PremiumLicense
from veilpage.pipeline import InputFile, Orchestrator, output_filename
from veilpage.pipeline import orchestration

from conftest import FakeOcrEngine, FakeRecognizer, make_words, png_bytes

PII_TEXT = "Contact: jean@example.com, tel 0612345678"


def _engine(settings, text=PII_TEXT, license_state=None, recognizer=None, **ocr):
    ocr_engine = FakeOcrEngine(text=text, words=make_words(text), **ocr)
    orch = Orchestrator(
        license_state,
        ocr_engine=ocr_engine,
        recognizer=recognizer or FakeRecognizer(),
        settings=settings,
    )
    events = []
    orch.on_progress(lambda step, progress, message: events.append((step, progress)))
    return orch.initialize(), events


def _scan():
    return InputFile("scan.png", png_bytes(600, 60))


def test_progress_is_monotonic_and_ends_complete(settings):
    orch, events = _engine(settings)
    orch.process(_scan(), {"anonymize": True})
    values = [p for _, p in events]
    assert values == sorted(values)
    assert events[-1] == ("complete", 1.0)
    steps = [s for s, _ in events]
    assert steps == [
        "mime_detection",
        "image_load",
        "ocr_start",
        "ocr_processing",
        "ocr_processing",
        "ocr_complete",
        "nlp_analysis",
        "nlp_complete",
        "blur_start",
        "blur_complete",
        "watermark",
        "export",
        "complete",
    ]


def test_email_and_phone_are_redacted_end_to_end(settings):
    orch, _ = _engine(settings)
    done = []
    orch.on_complete(done.append)
    result = orch.process(_scan(), {"anonymize": True})
    assert result.entities_found == 2
    assert result.boxes_applied == 2
    assert {b["source_text"] for b in result.boxes} == {"jean@example.com,", "0612345678"}
    assert result.watermarked
    assert result.encoded_file.name == "scan_anonymized.jpg"
    assert result.encoded_file.mime_type == "image/jpeg"
    assert "jean@example.com" not in result.masked_text
    assert result.thumbnail
    assert done == [result]


def test_anonymize_off_skips_detection(settings):
    recognizer = FakeRecognizer()
    orch, events = _engine(settings, recognizer=recognizer)
    result = orch.process(_scan())
    steps = [s for s, _ in events]
    assert not any(s.startswith(("nlp_", "blur_")) for s in steps)
    assert recognizer.calls == 0
    assert result.entities_found == 0
    assert result.encoded_file.name == "scan_processed.jpg"


def test_no_targets_leaves_pixels_untouched(settings):
    orch, events = _engine(settings, text="Bonjour tout le monde", license_state=PremiumLicense())
    result = orch.process(_scan(), {"anonymize": True, "output_format": "png"})
    assert ("blur_skip", 0.80) in events
    assert "watermark" not in [s for s, _ in events]
    assert not result.watermarked
    out = np.array(Image.open(io.BytesIO(result.encoded_file.data)).convert("RGB"))
    assert out.shape == (60, 600, 3)
    assert (out == 255).all()


def test_policy_option_filters_kinds(settings):
    orch, events = _engine(settings, license_state=PremiumLicense())
    result = orch.process(_scan(), {"anonymize": True, "policy": "financial"})
    assert result.entities_found == 0
    assert ("blur_skip", 0.80) in events


def test_entities_from_recognizer_are_counted(settings):
    text = "Signé Marie Dupont"
    recognizer = FakeRecognizer({"person": [{"text": "Marie Dupont", "start": 6}]})
    orch, _ = _engine(settings, text=text, recognizer=recognizer, license_state=PremiumLicense())
    result = orch.process(_scan(), {"anonymize": True})
    assert result.entities_found == 1
    assert sorted(b["source_text"] for b in result.boxes) == ["Dupont", "Marie"]


def test_text_only_stops_after_ocr(settings):
    orch, events = _engine(settings)
    result = orch.process(_scan(), {"extract_text_only": True})
    assert result.encoded_file.name == "scan.txt"
    assert result.encoded_file.mime_type == "text/plain"
    assert result.encoded_file.data.decode("utf-8") == PII_TEXT
    assert result.thumbnail is None
    assert "export" not in [s for s, _ in events]
    assert events[-1] == ("complete", 1.0)


def test_pdf_input_exports_pdf(settings, monkeypatch):
    monkeypatch.setattr(
        orchestration, "rasterize_first_page", lambda data, dpi: Image.new("RGB", (600, 60), "white")
    )
    orch, _ = _engine(settings, license_state=PremiumLicense())
    result = orch.process(InputFile("contrat.pdf", b"%PDF-1.4 fake"), {"anonymize": True})
    assert result.encoded_file.name == "contrat_anonymized.pdf"
    assert result.encoded_file.mime_type == "application/pdf"
    assert result.encoded_file.data.startswith(b"%PDF")


def test_collaborator_failure_cleans_up_and_reports(settings, monkeypatch):
    released = []
    original = ImageBuffer.release

    def spy(self):
        released.append(True)
        original(self)

    monkeypatch.setattr(ImageBuffer, "release", spy)
    orch, events = _engine(settings, fail=RuntimeError("tesseract crashed"))
    errors = []
    orch.on_error(errors.append)
    with pytest.raises(CollaboratorError) as exc_info:
        orch.process(_scan(), {"anonymize": True})
    assert exc_info.value.stage == "ocr"
    assert "tesseract crashed" in str(exc_info.value)
    assert errors == [exc_info.value]
    assert released == [True]
    assert events[-1][0] == "ocr_processing"
    assert not orch.is_processing

    orch.ocr_engine.fail = None
    assert orch.process(_scan()).encoded_file.name == "scan_processed.jpg"


def test_recognizer_failure_is_wrapped(settings):
    orch, _ = _engine(settings, recognizer=FakeRecognizer(fail=OSError("model missing")))
    with pytest.raises(CollaboratorError) as exc_info:
        orch.process(_scan(), {"anonymize": True})
    assert exc_info.value.stage == "nlp_analysis"


def test_process_requires_initialize(settings):
    orch = Orchestrator(ocr_engine=FakeOcrEngine(), recognizer=FakeRecognizer(), settings=settings)
    with pytest.raises(PipelineStateError):
        orch.process(_scan())


def test_concurrent_process_and_destroy_are_rejected(settings):
    orch, _ = _engine(settings)
    seen = []

    def reenter(step, progress, message):
        if step == "image_load":
            for call in (lambda: orch.process(_scan()), orch.destroy):
                try:
                    call()
                except PipelineStateError as exc:
                    seen.append(exc)

    orch.on_progress(reenter)
    orch.process(_scan())
    assert len(seen) == 2
    orch.destroy()
    assert orch.ocr_engine.terminated
    assert not orch.initialized


def test_unsupported_type_rejected(settings):
    orch, events = _engine(settings)
    errors = []
    orch.on_error(errors.append)
    with pytest.raises(UnsupportedFileTypeError) as exc_info:
        orch.process(InputFile("notes.txt", b"hello"))
    assert exc_info.value.mime_type == "text/plain"
    assert len(errors) == 1
    assert orch.ocr_engine.calls == 0


def test_file_too_large_for_free_tier(settings):
    orch, _ = _engine(settings, license_state=FreeLicense(quota_remaining=5, max_file_size=10))
    with pytest.raises(FileTooLargeError):
        orch.process(_scan())
    orch.license_state = PremiumLicense()
    orch.process(_scan())


@pytest.mark.parametrize(
    "options",
    [
        {"blur_block_size": 0},
        {"blur_block_size": 51},
        {"output_quality": 0},
        {"output_format": "gif"},
        {"unknown": True},
        {"policy": "no-such-policy"},
    ],
)
def test_invalid_options_rejected_before_running(settings, options):
    orch = Orchestrator(ocr_engine=FakeOcrEngine(), recognizer=FakeRecognizer(), settings=settings)
    with pytest.raises(InvalidOptionsError):
        orch.process(_scan(), options)


def test_output_filename():
    assert output_filename("a.pdf", True, True) == "a_anonymized.pdf"
    assert output_filename("photo.jpeg", False, False, "png") == "photo_processed.png"
    assert output_filename("scan.v2.webp", True, False, "webp") == "scan.v2_anonymized.webp"


def test_process_path_reuses_given_orchestrator(settings, tmp_path):
    from veilpage.core import process_path

    src = tmp_path / "scan.png"
    src.write_bytes(png_bytes(600, 60))
    orch, _ = _engine(settings, license_state=PremiumLicense())
    result = process_path(src, {"anonymize": True}, orchestrator=orch)
    summary = result.summary()
    assert summary["entities_found"] == 2
    assert summary["file"]["name"] == "scan_anonymized.jpg"
    assert "data" not in summary["file"]
    assert orch.initialized
