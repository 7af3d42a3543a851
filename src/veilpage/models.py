"""Value types shared by OCR, detection, alignment and redaction."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SpanKind(str, Enum):
    """Category of a sensitive text span."""

    PERSON = "person"
    PLACE = "place"
    ORGANIZATION = "organization"
    EMAIL = "email"
    PHONE = "phone"
    IBAN = "iban"
    NATIONAL_ID = "national_id"
    CREDIT_CARD = "credit_card"
    POSTAL_CODE = "postal_code"
    INVOICE_REF = "invoice_ref"
    AMOUNT = "amount"
    DATE = "date"
    SIRET = "siret"
    SIREN = "siren"
    TAX_ID = "tax_id"


ENTITY_KINDS = (SpanKind.PERSON, SpanKind.PLACE, SpanKind.ORGANIZATION)


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned pixel rectangle; ``x1`` and ``y1`` are exclusive."""

    x0: int
    y0: int
    x1: int
    y1: int

    @classmethod
    def from_ltwh(cls, left: int, top: int, width: int, height: int) -> "BoundingBox":
        return cls(int(left), int(top), int(left) + int(width), int(top) + int(height))

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0

    def to_dict(self) -> Dict[str, int]:
        return {"x0": self.x0, "y0": self.y0, "x1": self.x1, "y1": self.y1}


@dataclass(frozen=True)
class RecognizedWord:
    text: str
    confidence: float
    bbox: BoundingBox
    baseline: Optional[BoundingBox] = None


@dataclass(frozen=True)
class TextSpan:
    """A sensitive span of the page text.

    ``offset`` is the index of the first character of ``text`` in the source
    string. Spans may overlap when a pattern nests inside a named entity.
    """

    kind: SpanKind
    text: str
    offset: int
    length: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")
        if self.length <= 0:
            raise ValueError(f"length must be > 0, got {self.length}")

    @property
    def end(self) -> int:
        return self.offset + self.length

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "text": self.text,
            "offset": self.offset,
            "length": self.length,
        }


@dataclass(frozen=True)
class RedactionBox:
    """A word box selected for redaction.

    ``bbox`` is always the recognized word's own box.
    """

    bbox: BoundingBox
    kind: SpanKind
    source_text: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bbox": self.bbox.to_dict(),
            "kind": self.kind.value,
            "source_text": self.source_text,
            "confidence": self.confidence,
        }


@dataclass
class OcrResult:
    text: str
    confidence: float
    words: List[RecognizedWord] = field(default_factory=list)


__all__ = [
    "SpanKind",
    "ENTITY_KINDS",
    "BoundingBox",
    "RecognizedWord",
    "TextSpan",
    "RedactionBox",
    "OcrResult",
]
