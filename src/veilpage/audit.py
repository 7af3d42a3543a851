"""Audit logging for Veilpage runs.

Produces an audit JSON alongside the output file including an options
snapshot, hashes, version, redaction counts by kind, and an optional HMAC
signature when a signing key is configured (``VEILPAGE_HMAC_KEY``).
No page text or matched values are written.
"""

from __future__ import annotations

import getpass
import hashlib
import hmac
import socket
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from .pipeline.config import InputFile, ProcessResult


def _sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def build_audit_record(
    input_file: InputFile,
    result: ProcessResult,
    options: Dict[str, Any],
    policy: Optional[Dict[str, Any]] = None,
    errors: Optional[List[str]] = None,
    hmac_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Return the audit record for one run."""
    from veilpage import __version__ as version

    by_kind: Dict[str, int] = {}
    for box in result.boxes:
        kind = box.get("kind", "other")
        by_kind[kind] = by_kind.get(kind, 0) + 1

    record: Dict[str, Any] = {
        "version": version,
        "timestamp": int(time.time()),
        "user": getpass.getuser(),
        "host": socket.gethostname(),
        "input": {
            "name": input_file.name,
            "size": input_file.size,
            "sha256": _sha256_bytes(input_file.data),
        },
        "output": {
            "name": result.encoded_file.name,
            "mime_type": result.encoded_file.mime_type,
            "sha256": _sha256_bytes(result.encoded_file.data),
        },
        "options": options,
        "policy": policy,
        "result": {
            "entities_found": result.entities_found,
            "boxes": result.boxes_applied,
            "by_kind": by_kind,
            "watermarked": result.watermarked,
            "ocr_confidence": result.confidence,
        },
        "errors": errors or [],
    }

    # Optional HMAC signature for tamper detection
    if hmac_key:
        sig = hmac.new(hmac_key.encode("utf-8"), orjson.dumps(record), hashlib.sha256).hexdigest()
        record["hmac"] = {"alg": "HMAC-SHA256", "key_hint": "env:VEILPAGE_HMAC_KEY", "value": sig}
    return record


def write_audit(
    input_file: InputFile,
    output_path: str | Path,
    result: ProcessResult,
    options: Dict[str, Any],
    policy: Optional[Dict[str, Any]] = None,
    hmac_key: Optional[str] = None,
) -> Path:
    """Write an audit JSON next to the output file and return its path."""
    audit_path = Path(output_path).with_suffix(".audit.json")
    record = build_audit_record(input_file, result, options, policy, hmac_key=hmac_key)
    audit_path.write_bytes(orjson.dumps(record, option=orjson.OPT_INDENT_2))
    return audit_path


def verify_audit(record: Dict[str, Any], hmac_key: str) -> bool:
    """Check the HMAC of a record produced by :func:`build_audit_record`."""
    sig = record.get("hmac", {}).get("value")
    if not sig:
        return False
    unsigned = {k: v for k, v in record.items() if k != "hmac"}
    expected = hmac.new(hmac_key.encode("utf-8"), orjson.dumps(unsigned), hashlib.sha256).hexdigest()
    return hmac.compare_digest(sig, expected)
