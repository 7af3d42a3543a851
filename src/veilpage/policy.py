"""Redaction policy management.

Provides a simple allow/deny policy over span kinds with YAML/JSON loaders and
a `should_redact` decision helper. Policies ship as package data and can be
selected by name or loaded from a path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import orjson
import yaml


@dataclass
class Policy:
    """Span-kind redaction policy.

    Attributes
    ----------
    name:
        Human-friendly identifier for the policy.
    allowed_categories:
        If set, only these kinds are redacted; all others are ignored.
    denied_categories:
        Kinds explicitly not redacted (overrides allowed when both set).
    default_redact:
        Default decision when a kind is not found in either list.
    metadata:
        Free-form metadata (e.g., version, jurisdiction).
    """

    name: str = "default"
    allowed_categories: Optional[List[str]] = None
    denied_categories: Optional[List[str]] = None
    default_redact: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def should_redact(self, category: str) -> bool:
        """Return True if the given kind should be redacted under this policy."""
        c = (getattr(category, "value", category) or "").lower()
        if self.denied_categories and c in set(x.lower() for x in self.denied_categories):
            return False
        if self.allowed_categories is not None:
            return c in set(x.lower() for x in self.allowed_categories)
        return self.default_redact

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "allowed_categories": self.allowed_categories,
            "denied_categories": self.denied_categories,
            "default_redact": self.default_redact,
            "metadata": self.metadata,
        }

    @staticmethod
    def from_file(path: Union[str, Path, Traversable]) -> "Policy":
        if isinstance(path, Traversable) and not isinstance(path, Path):
            text = path.read_text(encoding="utf-8")
            stem = Path(path.name).stem
            suffix = Path(path.name).suffix.lower()
        else:
            p = Path(path)
            if not p.exists():
                raise FileNotFoundError(f"Policy file not found: {path}")
            text = p.read_text(encoding="utf-8")
            stem = p.stem
            suffix = p.suffix.lower()
        data: Dict[str, Any]
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        else:
            data = orjson.loads(text)
        return Policy(
            name=data.get("name", stem),
            allowed_categories=data.get("allowed_categories"),
            denied_categories=data.get("denied_categories"),
            default_redact=bool(data.get("default_redact", True)),
            metadata=data.get("metadata", {}),
        )


def find_builtin_policy(name: str) -> Optional[Traversable]:
    """Locate a packaged builtin policy by name."""
    ref = resources.files("veilpage.data").joinpath("policies", f"{name}.yaml")
    if ref.is_file():
        return ref
    return None


def resolve_policy(name_or_path: Optional[str]) -> Optional[Policy]:
    """Load a policy from a file path or a builtin name; ``None`` passes through."""
    if not name_or_path:
        return None
    path = Path(name_or_path)
    if path.exists():
        return Policy.from_file(path)
    found = find_builtin_policy(name_or_path)
    if found is None:
        raise FileNotFoundError(f"Unknown policy: {name_or_path}")
    return Policy.from_file(found)
