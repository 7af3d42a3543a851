"""Map sensitive text spans onto OCR word boxes to produce redaction boxes.

OCR text and NER/regex offsets rarely agree character for character (OCR
inserts line breaks, NER may normalise whitespace), so the mapping works on
normalised strings instead of offsets: a word is redacted when its normalised
text is contained in the normalised text of a sensitive span.
"""

from __future__ import annotations

import unicodedata
from typing import Any, Iterable, List, Mapping, Sequence

import regex as re

from .logging import get_logger
from .models import RecognizedWord, RedactionBox, SpanKind, TextSpan

logger = get_logger(__name__)

_COMBINING_RE = re.compile(r"\p{Mn}+")
_PUNCT_RE = re.compile(r"[^\w\s]+")

MASK_CHAR = "█"


def normalize(value: str) -> str:
    """Lower-case, strip diacritics and punctuation.

    ``"Hélène-Marie."`` becomes ``"helenemarie"``; whitespace is preserved.
    """
    decomposed = unicodedata.normalize("NFD", (value or "").lower())
    return _PUNCT_RE.sub("", _COMBINING_RE.sub("", decomposed))


def entity_spans(
    groups: Mapping[str, Iterable[Mapping[str, Any]]], text: str
) -> List[TextSpan]:
    """Convert grouped NER output into spans over ``text``.

    Parameters
    ----------
    groups:
        Mapping of entity kind (``person``, ``place``, ``organization``) to
        span dicts carrying at least ``text`` and optionally ``start``.
    text:
        The text the recognizer ran on.

    Returns
    -------
    list[TextSpan]
        Entity spans. Missing offsets are recomputed with a first-occurrence
        search; spans whose text cannot be located are dropped.
    """
    spans: List[TextSpan] = []
    for kind_name, items in groups.items():
        kind = SpanKind(kind_name)
        for item in items:
            value = str(item.get("text") or "")
            if not value.strip():
                continue
            start = item.get("start")
            if not isinstance(start, int) or text[start : start + len(value)] != value:
                start = text.find(value)
            if start < 0:
                logger.warning(
                    "Entity text not found in page text",
                    extra={"extra": {"kind": kind.value, "length": len(value)}},
                )
                continue
            spans.append(TextSpan(kind=kind, text=value, offset=start, length=len(value)))
    return spans


def merge_targets(
    entities: Sequence[TextSpan], sensitive: Sequence[TextSpan]
) -> List[TextSpan]:
    """Concatenate entity spans and sensitive-value spans.

    No deduplication: a token flagged by both sources yields two targets,
    which is harmless because word mapping is idempotent per word.
    """
    return [*entities, *sensitive]


def map_spans_to_words(
    targets: Sequence[TextSpan], words: Sequence[RecognizedWord]
) -> List[RedactionBox]:
    """Select the OCR words covered by each target span.

    A word is selected for a target when ``normalize(word.text)`` is a
    substring of ``normalize(target.text)``. This is a containment test, so
    short words may also match inside longer sensitive strings; the result
    errs towards over-redaction. Words that normalise to an empty string
    (pure punctuation) never match.

    Returns
    -------
    list[RedactionBox]
        One box per (target, word) match, in target order. The same word box
        can appear several times.
    """
    normalized_words = [(w, normalize(w.text).strip()) for w in words]
    boxes: List[RedactionBox] = []
    for target in targets:
        norm_target = normalize(target.text)
        for word, norm_word in normalized_words:
            if norm_word and norm_word in norm_target:
                boxes.append(
                    RedactionBox(
                        bbox=word.bbox,
                        kind=target.kind,
                        source_text=word.text,
                        confidence=word.confidence,
                    )
                )
    return boxes


def mask_text(text: str, targets: Sequence[TextSpan]) -> str:
    """Replace every target range of ``text`` with block characters.

    Targets are applied from the highest offset down so earlier offsets stay
    valid; overlapping targets are simply masked twice.
    """
    masked = text
    for span in sorted(targets, key=lambda s: s.offset, reverse=True):
        masked = masked[: span.offset] + MASK_CHAR * span.length + masked[span.end :]
    return masked


__all__ = [
    "normalize",
    "entity_spans",
    "merge_targets",
    "map_spans_to_words",
    "mask_text",
]
