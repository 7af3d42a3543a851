"""spaCy-based named entity recognition.

Graceful fallbacks:
- Try the requested model name (or a model directory path).
- If unavailable, try the small French then English pipelines.
- If still unavailable, fall back to ``spacy.blank`` (no NER) and return no
  entities so upstream logic can proceed deterministically.

The recognizer groups entities into the three kinds the word mapper knows:
``person``, ``place`` and ``organization``.
"""

from __future__ import annotations

import os
import warnings
from functools import lru_cache
from importlib import import_module
from pathlib import Path
from typing import Any, Dict, List

import spacy

from .models import ENTITY_KINDS, SpanKind

LABEL_KINDS: Dict[str, SpanKind] = {
    "PERSON": SpanKind.PERSON,
    "PER": SpanKind.PERSON,
    "GPE": SpanKind.PLACE,
    "LOC": SpanKind.PLACE,
    "FAC": SpanKind.PLACE,
    "ORG": SpanKind.ORGANIZATION,
}


@lru_cache(maxsize=4)
def _load_spacy(nlp_name: str):
    """Load and cache a spaCy pipeline.

    Loading strategy:
    - If name is a valid path, load from path
    - Try spacy.load(name)
    - Try importing the package and calling its .load()
    - Fall back to language-matched small models
    - Fall back to blank()
    """
    name = (nlp_name or "").strip()
    errors = []
    p = Path(name)
    if name and p.exists():
        try:
            return spacy.load(str(p))
        except Exception as e:
            errors.append(f"path load failed: {e}")
    if name:
        try:
            return spacy.load(name)
        except Exception as e:
            errors.append(f"spacy.load failed: {e}")
        # Wheel installed but not registered as a spaCy package
        try:
            pkg = import_module(name)
            if hasattr(pkg, "load"):
                return pkg.load()
        except Exception as e:
            errors.append(f"import_module failed: {e}")
    lang_hint = "fr"
    for token in [name, os.environ.get("VEILPAGE_OCR_LANG", ""), os.environ.get("LANG", "")]:
        t = (token or "").lower()
        if t.startswith("en"):
            lang_hint = "en"
            break
        if t.startswith("fr"):
            lang_hint = "fr"
            break
    if lang_hint == "fr":
        fallback_models = ["fr_core_news_sm", "en_core_web_sm"]
    else:
        fallback_models = ["en_core_web_sm", "fr_core_news_sm"]
    for fb in fallback_models:
        if fb == name:
            continue
        try:
            return spacy.load(fb)
        except Exception as e:
            errors.append(f"{fb} load failed: {e}")
    msg = (
        f"spaCy model '{name}' not found and no fallback model is installed; "
        f"falling back to blank('{lang_hint}') without NER."
    )
    if os.environ.get("VEILPAGE_DEBUG"):
        msg += f" details: {errors}"
    warnings.warn(msg)
    return spacy.blank(lang_hint)


class EntityRecognizer:
    """NER collaborator interface."""

    def analyze(self, text: str) -> Dict[str, List[Dict[str, Any]]]:  # noqa: D401
        """Return entity spans grouped by kind. Implement in subclasses."""
        raise NotImplementedError


class SpacyRecognizer(EntityRecognizer):
    """Named entities from a spaCy pipeline.

    Parameters
    ----------
    model:
        spaCy model name or path, e.g. ``fr_core_news_sm``.
    """

    def __init__(self, model: str = "fr_core_news_sm") -> None:
        self.model = model

    def analyze(self, text: str) -> Dict[str, List[Dict[str, Any]]]:
        """Extract entities grouped into ``person``, ``place`` and ``organization``.

        Returns
        -------
        dict
            Kind name to list of span dicts with keys ``text``, ``start``,
            ``end`` and ``label``. Every kind is present, possibly empty. If
            the pipeline has no NER component all lists are empty.
        """
        groups: Dict[str, List[Dict[str, Any]]] = {k.value: [] for k in ENTITY_KINDS}
        if not text or not text.strip():
            return groups
        nlp = _load_spacy(self.model)
        if "ner" not in nlp.pipe_names:
            return groups
        doc = nlp(text)
        for ent in doc.ents:
            kind = LABEL_KINDS.get(ent.label_)
            if kind is None:
                continue
            groups[kind.value].append(
                {
                    "text": ent.text,
                    "start": ent.start_char,
                    "end": ent.end_char,
                    "label": ent.label_,
                }
            )
        return groups


__all__ = ["EntityRecognizer", "SpacyRecognizer", "LABEL_KINDS"]
