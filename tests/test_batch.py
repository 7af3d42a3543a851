import pytest

from veilpage.batch import collect_inputs, run_batch
from veilpage.errors import QuotaExceededError
from veilpage.license import LicenseManager
from veilpage.pipeline import InputFile, Orchestrator

from conftest import FakeOcrEngine, FakeRecognizer, png_bytes


@pytest.fixture
def manager(tmp_path):
    m = LicenseManager(tmp_path / "license.db", daily_quota=2, max_file_size=2000)
    yield m
    m.close()


@pytest.fixture
def orchestrator(settings):
    return Orchestrator(
        ocr_engine=FakeOcrEngine(text="rien"),
        recognizer=FakeRecognizer(),
        settings=settings,
    ).initialize()


def _png(name):
    return InputFile(name, png_bytes(40, 20))


def test_batch_stops_when_quota_runs_out(orchestrator, manager):
    files = [_png(f"p{i}.png") for i in range(4)]
    seen = []
    report = run_batch(files, orchestrator, manager, on_file=seen.append)
    assert report.succeeded == 2
    assert report.skipped == 2
    assert isinstance(report.quota_error, QuotaExceededError)
    assert [f.name for f in seen] == ["p0.png", "p1.png"]
    assert manager.check().quota_remaining == 0


def test_rejected_files_do_not_consume_credits(orchestrator, manager):
    files = [
        InputFile("notes.txt", b"hello"),
        InputFile("huge.png", b"\x89PNG" + b"0" * 5000),
        _png("ok.png"),
    ]
    report = run_batch(files, orchestrator, manager)
    assert report.succeeded == 1
    assert [name for name, _ in report.errors] == ["notes.txt", "huge.png"]
    assert "Unsupported file type" in report.errors[0][1]
    assert "File too large" in report.errors[1][1]
    assert report.skipped == 0
    assert manager.check().quota_remaining == 1


def test_processing_errors_are_reported(orchestrator, manager):
    report = run_batch([InputFile("broken.png", b"not an image")], orchestrator, manager)
    assert report.failed == 1
    assert "image_load" in report.errors[0][1]
    assert report.summary()["failed"] == 1


def test_results_are_watermarked_on_free_tier(orchestrator, manager):
    report = run_batch([_png("a.png")], orchestrator, manager)
    (_, result), = report.results
    assert result.watermarked


def test_collect_inputs_expands_directories(tmp_path):
    (tmp_path / "a.png").write_bytes(png_bytes(10, 10))
    (tmp_path / "b.pdf").write_bytes(b"%PDF-1.4")
    (tmp_path / "c.txt").write_text("skip me")
    names = [f.name for f in collect_inputs([str(tmp_path)])]
    assert names == ["a.png", "b.pdf"]
    globbed = [f.name for f in collect_inputs([str(tmp_path / "*.png")])]
    assert globbed == ["a.png"]
