"""Deterministic regex-based sensitive value detectors.

This module uses the third-party ``regex`` package and returns
:class:`~veilpage.models.TextSpan` values that the word mapper consumes.
Patterns target French administrative and commercial documents (phone
numbers, social security numbers, SIRET/SIREN, VAT ids, euro amounts).
"""

from typing import List, Tuple

import regex as re

from .models import SpanKind, TextSpan


EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(?<!\d)(?:\+33\s?|0)[1-9](?:[\s.-]?\d{2}){4}(?!\d)")
IBAN_RE = re.compile(r"\b[A-Z]{2}\d{2}(?: ?[A-Z0-9]{4}){2,7}(?: ?[A-Z0-9]{1,3})?\b")
# French NIR (numero de securite sociale)
NATIONAL_ID_RE = re.compile(
    r"\b[12]\s?\d{2}\s?\d{2}\s?\d{2}\s?\d{3}\s?\d{3}\s?\d{2}\b"
)
CREDIT_RE = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
POSTAL_CODE_RE = re.compile(r"\b\d{5}\b")
INVOICE_RE = re.compile(
    r"\b(?:N[°o]?\s*|Facture[\s:-]*|Invoice[\s:#-]*|Ref[\s:-]*|Commande[\s:-]*)\d{3,12}\b",
    re.I,
)
AMOUNT_RE = re.compile(r"\b\d{1,3}(?:[\s.,]\d{3})*(?:[.,]\d{2})?\s*(?:€|EUR\b)")
DATE_RE = re.compile(r"\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b")
SIRET_RE = re.compile(r"\b\d{3}\s?\d{3}\s?\d{3}\s?\d{5}\b")
SIREN_RE = re.compile(r"\b\d{3}\s?\d{3}\s?\d{3}\b")
TAX_ID_RE = re.compile(r"\bFR\s?\d{2}\s?\d{3}\s?\d{3}\s?\d{3}\b", re.I)

PATTERNS: List[Tuple[SpanKind, "re.Pattern[str]"]] = [
    (SpanKind.EMAIL, EMAIL_RE),
    (SpanKind.PHONE, PHONE_RE),
    (SpanKind.IBAN, IBAN_RE),
    (SpanKind.NATIONAL_ID, NATIONAL_ID_RE),
    (SpanKind.CREDIT_CARD, CREDIT_RE),
    (SpanKind.POSTAL_CODE, POSTAL_CODE_RE),
    (SpanKind.INVOICE_REF, INVOICE_RE),
    (SpanKind.AMOUNT, AMOUNT_RE),
    (SpanKind.DATE, DATE_RE),
    (SpanKind.SIRET, SIRET_RE),
    (SpanKind.SIREN, SIREN_RE),
    (SpanKind.TAX_ID, TAX_ID_RE),
]


def regex_findall(text: str) -> List[TextSpan]:
    """Find sensitive values using regular expressions.

    Every pattern scans the whole text independently, so spans of different
    kinds may overlap. No deduplication or ranking happens here.

    Parameters
    ----------
    text:
        Input text to scan.

    Returns
    -------
    list[TextSpan]
        One span per match, grouped by pattern kind in declaration order.
        Empty for empty or blank input.
    """
    if not text or not text.strip():
        return []
    out: List[TextSpan] = []
    for kind, pat in PATTERNS:
        for m in pat.finditer(text):
            if m.end() <= m.start():
                continue
            out.append(
                TextSpan(
                    kind=kind,
                    text=m.group(0),
                    offset=m.start(),
                    length=m.end() - m.start(),
                )
            )
    return out
