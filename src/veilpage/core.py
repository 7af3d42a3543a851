"""Top-level entry points for the Veilpage pipeline.

The implementation lives in ``veilpage.pipeline`` modules split by
responsibility (options, detection, orchestration, worker). This module
re-exports the public surface area expected by callers, plus
:func:`process_path` for one-shot use from scripts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

from .license import LicenseState
from .pipeline import (
    AnalysisResult,
    EncodedFile,
    InputFile,
    Orchestrator,
    PipelineOptions,
    PipelineWorker,
    ProcessResult,
    analyze_text,
)


def process_path(
    input_path: Union[str, Path],
    options: Union[PipelineOptions, Dict[str, Any], None] = None,
    *,
    license_state: Optional[LicenseState] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> ProcessResult:
    """Process a file on disk with a throwaway (or supplied) orchestrator."""
    engine = orchestrator or Orchestrator(license_state)
    engine.initialize()
    try:
        return engine.process(InputFile.from_path(input_path), options)
    finally:
        if orchestrator is None:
            engine.destroy()


__all__ = [
    "PipelineOptions",
    "InputFile",
    "EncodedFile",
    "ProcessResult",
    "AnalysisResult",
    "analyze_text",
    "Orchestrator",
    "PipelineWorker",
    "process_path",
]
