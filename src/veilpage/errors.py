"""Exception types raised by the anonymization pipeline."""

from __future__ import annotations

from typing import Optional


class VeilpageError(Exception):
    """Base class for all Veilpage errors."""


class InputError(VeilpageError, ValueError):
    """The caller handed in something the pipeline cannot process."""


class UnsupportedFileTypeError(InputError):
    def __init__(self, mime_type: str) -> None:
        super().__init__(f"Unsupported file type: {mime_type}")
        self.mime_type = mime_type


class FileTooLargeError(InputError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"File too large: {size} bytes exceeds the {limit} byte limit"
        )
        self.size = size
        self.limit = limit


class InvalidOptionsError(InputError):
    """Processing options failed validation."""


class CollaboratorError(VeilpageError, RuntimeError):
    """An external collaborator (OCR, NER, rasterizer, export) failed."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"{stage} failed: {cause}")
        self.stage = stage
        self.cause = cause


class PipelineStateError(VeilpageError, RuntimeError):
    """Operation called in the wrong orchestrator state."""


class QuotaExceededError(VeilpageError):
    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or "Daily file quota exhausted")


class RegionOutOfBoundsError(VeilpageError, ValueError):
    """A redaction region does not intersect the image."""


class WorkerError(VeilpageError, RuntimeError):
    """A run failed inside the background worker."""

    def __init__(self, message: str, step: Optional[str] = None) -> None:
        super().__init__(message)
        self.step = step
