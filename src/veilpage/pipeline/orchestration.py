"""High-level orchestration for Veilpage anonymization runs.

A run moves through fixed stages, each reported with a progress fraction:

==============  =====================================
step            progress
==============  =====================================
mime_detection  0.10
image_load      0.15
ocr_start       0.20
ocr_processing  0.20 + ocr_fraction * 0.40
ocr_complete    0.60
nlp_analysis    0.65 (anonymize only)
nlp_complete    0.70 (anonymize only)
blur_start      0.75 then blur_complete 0.85, or blur_skip 0.80
watermark       0.90 (free license only)
export          0.95
complete        1.00
==============  =====================================

Text-only runs stop after ``ocr_complete``.
"""

from __future__ import annotations

import threading
from contextlib import ExitStack
from typing import Any, Callable, Dict, Optional, Union
from uuid import uuid4

import regex as re
from PIL import Image

from veilpage.align import map_spans_to_words, mask_text
from veilpage.buffer import ImageBuffer
from veilpage.errors import (
    CollaboratorError,
    FileTooLargeError,
    InvalidOptionsError,
    PipelineStateError,
    UnsupportedFileTypeError,
    VeilpageError,
)
from veilpage.export import FORMATS, PDF_MIME, Exporter
from veilpage.license import FreeLicense, LicenseState
from veilpage.logging import get_logger
from veilpage.ocr import OcrEngine, TesseractEngine, load_image, rasterize_first_page
from veilpage.policy import Policy, resolve_policy
from veilpage.redact import pixelate_regions
from veilpage.settings import ServiceSettings, get_settings
from veilpage.spacy_detect import EntityRecognizer, SpacyRecognizer
from veilpage.watermark import WatermarkStyle, stamp_watermark

from .config import EncodedFile, InputFile, PipelineOptions, ProcessResult
from .detection import AnalysisResult, analyze_text
from .events import EventChannel

logger = get_logger("veilpage")

OCR_BASE = 0.20
OCR_RANGE = 0.40

ProgressCallback = Callable[[str, float, str], None]
CompleteCallback = Callable[[ProcessResult], None]
ErrorCallback = Callable[[BaseException], None]


def output_filename(name: str, anonymized: bool, is_pdf: bool, fmt: str = "jpeg") -> str:
    base = re.sub(r"\.\w+$", "", name)
    suffix = "_anonymized" if anonymized else "_processed"
    ext = ".pdf" if is_pdf else FORMATS[fmt]["ext"]
    return f"{base}{suffix}{ext}"


class Orchestrator:
    """Runs OCR, detection, redaction, watermarking and export for one file.

    One run at a time per instance; use separate instances for concurrent
    runs. Collaborators default to Tesseract, spaCy and Pillow/img2pdf and can
    be injected.

    Parameters
    ----------
    license_state:
        Decides the watermark and the file size limit. Defaults to a free
        license built from settings.
    ocr_engine, recognizer, exporter:
        External collaborators. ``recognizer=None`` uses spaCy when enabled in
        settings; pass ``use_ner=False`` to run regex detection only.
    policy:
        Default redaction policy, overridable per run via options.
    """

    def __init__(
        self,
        license_state: Optional[LicenseState] = None,
        *,
        ocr_engine: Optional[OcrEngine] = None,
        recognizer: Optional[EntityRecognizer] = None,
        exporter: Optional[Exporter] = None,
        settings: Optional[ServiceSettings] = None,
        policy: Optional[Policy] = None,
        use_ner: bool = True,
        watermark_style: WatermarkStyle = WatermarkStyle(),
    ) -> None:
        self.settings = settings or get_settings()
        self.license_state: LicenseState = license_state or FreeLicense(
            quota_remaining=self.settings.free_daily_quota,
            max_file_size=self.settings.free_max_file_size,
            daily_quota=self.settings.free_daily_quota,
        )
        self.ocr_engine = ocr_engine or TesseractEngine()
        if recognizer is None and use_ner and self.settings.use_spacy:
            recognizer = SpacyRecognizer(self.settings.spacy_model)
        self.recognizer = recognizer if use_ner else None
        self.exporter = exporter or Exporter()
        self.policy = policy
        self.watermark_style = watermark_style

        self.current_step: Optional[str] = None
        self.progress: float = 0.0
        self._progress: EventChannel[ProgressCallback] = EventChannel()
        self._complete: EventChannel[CompleteCallback] = EventChannel()
        self._error: EventChannel[ErrorCallback] = EventChannel()
        self._state_lock = threading.Lock()
        self._initialized = False
        self._busy = False
        self._run_id: Optional[str] = None

    # -- subscriptions -----------------------------------------------------

    def on_progress(self, callback: ProgressCallback) -> "Orchestrator":
        self._progress.subscribe(callback)
        return self

    def on_complete(self, callback: CompleteCallback) -> "Orchestrator":
        self._complete.subscribe(callback)
        return self

    def on_error(self, callback: ErrorCallback) -> "Orchestrator":
        self._error.subscribe(callback)
        return self

    # -- lifecycle ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def is_processing(self) -> bool:
        return self._busy

    def initialize(self) -> "Orchestrator":
        """Prepare the OCR engine. Must be called before :meth:`process`."""
        if self._initialized:
            return self
        try:
            self.ocr_engine.initialize()
        except Exception as exc:
            raise CollaboratorError("ocr_init", exc) from exc
        self._initialized = True
        return self

    def destroy(self) -> None:
        """Release collaborator resources; the instance needs re-initializing."""
        with self._state_lock:
            if self._busy:
                raise PipelineStateError("Cannot destroy while a run is in progress")
            self._initialized = False
        self.ocr_engine.terminate()

    # -- events ------------------------------------------------------------

    def _emit_progress(self, step: str, progress: float, message: str) -> None:
        self.current_step = step
        self.progress = progress
        logger.info(
            message,
            extra={"extra": {"run_id": self._run_id, "step": step, "progress": round(progress, 4)}},
        )
        self._progress.emit(step, progress, message)

    def _ocr_progress(self, fraction: float) -> None:
        f = max(0.0, min(1.0, float(fraction)))
        self._emit_progress(
            "ocr_processing",
            OCR_BASE + f * OCR_RANGE,
            f"OCR Processing... {round(f * 100)}%",
        )

    # -- run ---------------------------------------------------------------

    def _resolve_run_policy(self, opts: PipelineOptions) -> Optional[Policy]:
        if not opts.policy:
            return self.policy
        try:
            return resolve_policy(opts.policy)
        except FileNotFoundError as exc:
            raise InvalidOptionsError(str(exc)) from exc

    def process(
        self,
        file: InputFile,
        options: Union[PipelineOptions, Dict[str, Any], None] = None,
    ) -> ProcessResult:
        """Process one document and return the encoded result.

        Raises
        ------
        InvalidOptionsError
            Options out of range; nothing runs.
        PipelineStateError
            Not initialized, or another run is in flight on this instance.
        UnsupportedFileTypeError, FileTooLargeError
            Input rejected during ``mime_detection``.
        CollaboratorError
            OCR, NER, rasterization or export failed.
        """
        opts = options if isinstance(options, PipelineOptions) else PipelineOptions.parse(options)
        policy = self._resolve_run_policy(opts)
        with self._state_lock:
            if not self._initialized:
                raise PipelineStateError(
                    "Orchestrator.initialize() must be called before process()"
                )
            if self._busy:
                raise PipelineStateError("A run is already in progress on this orchestrator")
            self._busy = True
        self._run_id = uuid4().hex[:12]
        self.current_step = None
        self.progress = 0.0
        try:
            with ExitStack() as stack:
                result = self._run(file, opts, policy, stack)
        except Exception as exc:
            logger.error(
                "Run failed",
                extra={"extra": {"run_id": self._run_id, "step": self.current_step, "error": str(exc)}},
            )
            self._error.emit(exc)
            raise
        finally:
            self._busy = False
        self._complete.emit(result)
        return result

    def _call(self, stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except VeilpageError:
            raise
        except Exception as exc:
            raise CollaboratorError(stage, exc) from exc

    def _load_image(self, file: InputFile, is_pdf: bool) -> Image.Image:
        if is_pdf:
            return rasterize_first_page(file.data, dpi=self.settings.pdf_dpi)
        return load_image(file.data)

    def _run(
        self,
        file: InputFile,
        opts: PipelineOptions,
        policy: Optional[Policy],
        stack: ExitStack,
    ) -> ProcessResult:
        self._emit_progress("mime_detection", 0.10, "Detecting file type...")
        mime_type = file.detect_mime_type()
        is_pdf = mime_type == PDF_MIME
        if not mime_type.startswith("image/") and not is_pdf:
            raise UnsupportedFileTypeError(mime_type)
        if not self.license_state.allows_file_size(file.size):
            raise FileTooLargeError(file.size, self.license_state.max_file_size)

        self._emit_progress("image_load", 0.15, "Loading image...")
        img = self._call("image_load", self._load_image, file, is_pdf)
        buffer = stack.enter_context(ImageBuffer.from_image(img))
        img.close()

        self._emit_progress("ocr_start", OCR_BASE, "Reading image...")
        language = opts.language or self.settings.ocr_lang
        ocr = self._call(
            "ocr", self.ocr_engine.recognize, buffer.to_image("RGB"), language, self._ocr_progress
        )
        self._emit_progress(
            "ocr_complete",
            OCR_BASE + OCR_RANGE,
            f"Text extracted with {round(ocr.confidence)}% confidence",
        )

        if opts.extract_text_only:
            encoded = EncodedFile(
                name=f"{file.stem}.txt",
                mime_type="text/plain",
                data=ocr.text.encode("utf-8"),
            )
            self._emit_progress("complete", 1.0, "Text extraction complete")
            return ProcessResult(encoded_file=encoded, text=ocr.text, confidence=ocr.confidence)

        analysis: Optional[AnalysisResult] = None
        boxes = []
        if opts.anonymize:
            self._emit_progress("nlp_analysis", 0.65, "Extracting names...")
            analysis = self._call("nlp_analysis", analyze_text, ocr.text, self.recognizer, policy)
            self._emit_progress(
                "nlp_complete", 0.70, f"{analysis.total} sensitive entities detected"
            )
            if analysis.total > 0:
                self._emit_progress("blur_start", 0.75, "Anonymizing...")
                boxes = map_spans_to_words(analysis.targets, ocr.words)
                pixelate_regions(buffer, boxes, opts.blur_block_size)
                self._emit_progress("blur_complete", 0.85, "Anonymization complete")
            else:
                self._emit_progress("blur_skip", 0.80, "No sensitive data detected")

        watermarked = bool(self.license_state.requires_watermark)
        if watermarked:
            self._emit_progress("watermark", 0.90, "Adding watermark...")
            stamp_watermark(buffer, self.settings.watermark_text, self.watermark_style)

        self._emit_progress("export", 0.95, "Generating file...")
        name = output_filename(file.name, opts.anonymize, is_pdf, opts.output_format)
        if is_pdf:
            data = self._call("export", self.exporter.to_pdf, buffer, opts.output_quality)
            out_mime = PDF_MIME
        else:
            data = self._call(
                "export", self.exporter.encode, buffer, opts.output_format, opts.output_quality
            )
            out_mime = FORMATS[opts.output_format]["mime"]
        thumbnail = self._call("export", self.exporter.thumbnail, buffer)

        self._emit_progress("complete", 1.0, "Processing complete!")
        return ProcessResult(
            encoded_file=EncodedFile(name=name, mime_type=out_mime, data=data),
            thumbnail=thumbnail,
            text=ocr.text,
            confidence=ocr.confidence,
            entities_found=analysis.total if analysis is not None else 0,
            watermarked=watermarked,
            masked_text=mask_text(ocr.text, analysis.targets) if analysis is not None else None,
            boxes_applied=len(boxes),
            boxes=[b.to_dict() for b in boxes],
        )


__all__ = ["Orchestrator", "output_filename"]
