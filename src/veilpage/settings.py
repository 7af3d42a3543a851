"""Runtime configuration helpers.

This module centralises configuration that would otherwise rely on scattered
environment variable lookups. It is intentionally lightweight so it can be
imported from the CLI, the worker and tests without side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional
import os

DEFAULT_LICENSE_SALT = "LocalSeal_V2_Secret_Salt_2026"


def _parse_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    v = value.strip().lower()
    if v in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def _parse_int(value: str | None, *, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value.strip())


@dataclass
class ServiceSettings:
    """Runtime settings for on-device processing."""

    data_dir: Path = Path("~/.veilpage").expanduser()
    ocr_lang: str = "fra+eng"
    spacy_model: str = "fr_core_news_sm"
    use_spacy: bool = True
    pdf_dpi: int = 144
    free_daily_quota: int = 5
    free_max_file_size: int = 2 * 1024 * 1024
    license_salt: str = DEFAULT_LICENSE_SALT
    watermark_text: str = "Veilpage - Demo Version"
    hmac_key: Optional[str] = None

    @property
    def license_db_path(self) -> Path:
        return self.data_dir / "license.db"

    @staticmethod
    def from_env() -> "ServiceSettings":
        data_dir = os.environ.get("VEILPAGE_DATA_DIR") or "~/.veilpage"
        settings = ServiceSettings(
            data_dir=Path(data_dir).expanduser(),
            ocr_lang=os.environ.get("VEILPAGE_OCR_LANG") or "fra+eng",
            spacy_model=os.environ.get("VEILPAGE_SPACY_MODEL") or "fr_core_news_sm",
            use_spacy=_parse_bool(os.environ.get("VEILPAGE_USE_SPACY"), default=True),
            pdf_dpi=_parse_int(os.environ.get("VEILPAGE_PDF_DPI"), default=144),
            free_daily_quota=_parse_int(
                os.environ.get("VEILPAGE_FREE_DAILY_QUOTA"), default=5
            ),
            free_max_file_size=_parse_int(
                os.environ.get("VEILPAGE_FREE_MAX_FILE_SIZE"),
                default=2 * 1024 * 1024,
            ),
            license_salt=os.environ.get("VEILPAGE_LICENSE_SALT")
            or DEFAULT_LICENSE_SALT,
            watermark_text=os.environ.get("VEILPAGE_WATERMARK_TEXT")
            or "Veilpage - Demo Version",
            hmac_key=os.environ.get("VEILPAGE_HMAC_KEY"),
        )
        return settings


@lru_cache(maxsize=1)
def get_settings() -> ServiceSettings:
    """Return cached settings."""
    return ServiceSettings.from_env()


def reset_settings_cache() -> None:
    """Reset cached settings (useful in tests)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
