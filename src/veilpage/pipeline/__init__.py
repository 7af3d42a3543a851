"""Composable building blocks for the Veilpage anonymization pipeline."""

from .config import EncodedFile, InputFile, PipelineOptions, ProcessResult
from .detection import AnalysisResult, analyze_text
from .events import EventChannel
from .orchestration import Orchestrator, output_filename
from .worker import PipelineWorker, WorkerClient, WorkerCommand, WorkerEvent

__all__ = [
    "PipelineOptions",
    "InputFile",
    "EncodedFile",
    "ProcessResult",
    "AnalysisResult",
    "analyze_text",
    "EventChannel",
    "Orchestrator",
    "output_filename",
    "PipelineWorker",
    "WorkerCommand",
    "WorkerEvent",
    "WorkerClient",
]
