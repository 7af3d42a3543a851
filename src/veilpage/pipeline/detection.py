"""Detection step combining named entities and regex sensitive values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from veilpage.align import entity_spans, merge_targets
from veilpage.logging import get_logger
from veilpage.models import TextSpan
from veilpage.policy import Policy
from veilpage.regex_detect import regex_findall
from veilpage.spacy_detect import EntityRecognizer

logger = get_logger(__name__)


@dataclass
class AnalysisResult:
    entities: List[TextSpan] = field(default_factory=list)
    sensitive: List[TextSpan] = field(default_factory=list)
    targets: List[TextSpan] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.targets)


def analyze_text(
    text: str,
    recognizer: Optional[EntityRecognizer],
    policy: Optional[Policy] = None,
) -> AnalysisResult:
    """Run NER and the regex detector over ``text`` and merge their spans.

    Blank text short-circuits without calling the recognizer. When a policy is
    given, targets of kinds it does not redact are dropped.
    """
    if not text or not text.strip():
        return AnalysisResult()
    entities: List[TextSpan] = []
    if recognizer is not None:
        entities = entity_spans(recognizer.analyze(text), text)
    sensitive = regex_findall(text)
    targets = merge_targets(entities, sensitive)
    if policy is not None:
        targets = [t for t in targets if policy.should_redact(t.kind)]
    logger.debug(
        "Detection finished",
        extra={
            "extra": {
                "entities": len(entities),
                "sensitive": len(sensitive),
                "targets": len(targets),
            }
        },
    )
    return AnalysisResult(entities=entities, sensitive=sensitive, targets=targets)


__all__ = ["AnalysisResult", "analyze_text"]
