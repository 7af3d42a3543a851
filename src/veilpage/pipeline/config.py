"""Configuration primitives and payloads for the Veilpage pipeline."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from veilpage.errors import InvalidOptionsError

MIME_BY_EXTENSION: Dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "pdf": "application/pdf",
}


class PipelineOptions(BaseModel):
    """User-tunable configuration for one run.

    Out-of-range values are rejected rather than clamped.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    anonymize: bool = False
    blur_block_size: int = Field(20, ge=1, le=50)
    output_quality: float = Field(0.92, gt=0.0, le=1.0)
    extract_text_only: bool = False
    output_format: Literal["jpeg", "png", "webp"] = "jpeg"
    language: Optional[str] = None
    policy: Optional[str] = None

    @classmethod
    def parse(cls, data: Optional[Dict[str, Any]] = None) -> "PipelineOptions":
        """Build options from a plain dict, raising :class:`InvalidOptionsError`."""
        try:
            return cls(**(data or {}))
        except ValidationError as exc:
            raise InvalidOptionsError(f"Invalid options: {exc}") from exc


@dataclass(frozen=True)
class InputFile:
    """A document handed to the pipeline."""

    name: str
    data: bytes
    mime_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: str | Path) -> "InputFile":
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Input not found: {path}")
        return cls(name=p.name, data=p.read_bytes())

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    def detect_mime_type(self) -> str:
        """Declared type first, then the file extension."""
        if self.mime_type:
            return self.mime_type
        ext = Path(self.name).suffix.lower().lstrip(".")
        if ext in MIME_BY_EXTENSION:
            return MIME_BY_EXTENSION[ext]
        return mimetypes.guess_type(self.name)[0] or "application/octet-stream"


@dataclass(frozen=True)
class EncodedFile:
    name: str
    mime_type: str
    data: bytes

    def write_to(self, path: str | Path) -> Path:
        out = Path(path)
        out.write_bytes(self.data)
        return out


class ProcessResult(BaseModel):
    """Outcome of one pipeline run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    encoded_file: EncodedFile
    thumbnail: Optional[bytes] = None
    text: str
    confidence: float
    entities_found: int = 0
    watermarked: bool = False
    masked_text: Optional[str] = None
    boxes_applied: int = 0
    boxes: List[Dict[str, Any]] = Field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly view without binary payloads."""
        return {
            "file": {
                "name": self.encoded_file.name,
                "mime_type": self.encoded_file.mime_type,
                "size": len(self.encoded_file.data),
            },
            "confidence": self.confidence,
            "entities_found": self.entities_found,
            "watermarked": self.watermarked,
            "boxes_applied": self.boxes_applied,
            "boxes": self.boxes,
        }


__all__ = [
    "PipelineOptions",
    "InputFile",
    "EncodedFile",
    "ProcessResult",
    "MIME_BY_EXTENSION",
]
