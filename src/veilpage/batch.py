"""Sequential batch runner with per-file checks and quota accounting.

Files are processed one after another through a single orchestrator. Each
file is checked for type and size first; a credit is consumed only for files
that pass. When the free quota runs out the rest of the batch is skipped and
no credits are taken for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from glob import glob
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import FileTooLargeError, QuotaExceededError, UnsupportedFileTypeError
from .export import PDF_MIME
from .license import LicenseManager
from .logging import get_logger
from .pipeline import InputFile, Orchestrator, PipelineOptions, ProcessResult
from .pipeline.config import MIME_BY_EXTENSION

logger = get_logger(__name__)


@dataclass
class BatchReport:
    results: List[Tuple[InputFile, ProcessResult]] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)
    skipped: int = 0
    quota_error: Optional[QuotaExceededError] = None

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def summary(self) -> Dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": [{"file": name, "message": msg} for name, msg in self.errors],
        }


def run_batch(
    files: Sequence[InputFile],
    orchestrator: Orchestrator,
    manager: LicenseManager,
    options: Union[PipelineOptions, Dict[str, Any], None] = None,
    *,
    on_file: Optional[Callable[[InputFile], None]] = None,
) -> BatchReport:
    """Process ``files`` in order and return a report.

    Parameters
    ----------
    files:
        Inputs in processing order.
    orchestrator:
        Initialized orchestrator; its license state is refreshed per file.
    manager:
        License manager providing the state and the daily credits.
    options:
        Options applied to every file.
    on_file:
        Called after each attempted file (for progress bars).
    """
    opts = options if isinstance(options, PipelineOptions) else PipelineOptions.parse(options)
    report = BatchReport()
    for index, file in enumerate(files):
        state = manager.check()
        mime_type = file.detect_mime_type()
        if not mime_type.startswith("image/") and mime_type != PDF_MIME:
            report.errors.append((file.name, str(UnsupportedFileTypeError(mime_type))))
            _notify(on_file, file)
            continue
        if not state.allows_file_size(file.size):
            err = FileTooLargeError(file.size, getattr(state, "max_file_size", 0))
            report.errors.append((file.name, str(err)))
            _notify(on_file, file)
            continue
        if not manager.consume_credit():
            report.quota_error = QuotaExceededError()
            report.skipped = len(files) - index
            logger.warning(
                "Daily quota reached, skipping remaining files",
                extra={"extra": {"skipped": report.skipped}},
            )
            break
        orchestrator.license_state = manager.check()
        try:
            result = orchestrator.process(file, opts)
        except Exception as exc:
            report.errors.append((file.name, str(exc)))
        else:
            report.results.append((file, result))
        _notify(on_file, file)
    logger.info("Batch finished", extra={"extra": report.summary()})
    return report


def _notify(callback: Optional[Callable[[InputFile], None]], file: InputFile) -> None:
    if callback is not None:
        callback(file)


def collect_inputs(paths: Iterable[str]) -> List[InputFile]:
    """Expand files, directories and glob patterns into input files."""
    found: List[str] = []
    for raw in paths:
        p = Path(raw)
        if p.is_dir():
            found.extend(
                str(fp)
                for fp in sorted(p.iterdir())
                if fp.suffix.lower().lstrip(".") in MIME_BY_EXTENSION
            )
        elif p.exists():
            found.append(str(p))
        else:
            found.extend(sorted(glob(raw)))
    return [InputFile.from_path(fp) for fp in found]


__all__ = ["BatchReport", "run_batch", "collect_inputs"]
