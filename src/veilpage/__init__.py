"""Veilpage Offline

On-device document anonymization: OCR + PII detection + pixel redaction with
an optional demo watermark, gated by a short-lived activation token. See the
``veilpage.core`` module for the composable pipeline APIs and ``veilpage.cli``
for the command-line entrypoint.
"""

__all__ = [
    "core",
    "models",
    "errors",
    "buffer",
    "ocr",
    "spacy_detect",
    "regex_detect",
    "align",
    "redact",
    "watermark",
    "export",
    "license",
    "policy",
    "audit",
    "batch",
    "logging",
    "settings",
]

__version__ = "0.1.0"
