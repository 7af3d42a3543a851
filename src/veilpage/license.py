"""License state, activation tokens and the daily free quota.

Activation tokens look like ``AAAA-BBBB-CCCC-DDDD``:

- group 2 is the issuing minute (minutes since the Unix epoch, low 16 bits,
  upper-case hex),
- group 4 is a 16-bit rolling checksum of groups 1-3 plus a secret salt.

A token is accepted only within five minutes of issue and only once; used
tokens are recorded in a durable SQLite replay store. The checksum is a
low-assurance integrity check, not a cryptographic signature: anyone holding
the salt can mint tokens.
"""

from __future__ import annotations

import secrets
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import regex as re

from .logging import get_logger
from .settings import DEFAULT_LICENSE_SALT

logger = get_logger(__name__)

CREDENTIAL_RE = re.compile(r"[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}")
VALIDITY_WINDOW_MINUTES = 5
TIME_MODULUS = 0x10000
PREMIUM_DURATION = timedelta(days=365)

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


# ---------------------------------------------------------------------------
# License state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FreeLicense:
    quota_remaining: int
    max_file_size: int
    daily_quota: int = 5

    requires_watermark = True
    is_premium = False

    def allows_file_size(self, size: int) -> bool:
        return size <= self.max_file_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": "free",
            "quota_remaining": self.quota_remaining,
            "max_file_size": self.max_file_size,
            "daily_quota": self.daily_quota,
        }


@dataclass(frozen=True)
class PremiumLicense:
    activated_at: Optional[datetime] = None

    requires_watermark = False
    is_premium = True

    def allows_file_size(self, size: int) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": "premium",
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
        }


LicenseState = Union[FreeLicense, PremiumLicense]


def license_state_from_dict(data: Optional[Dict[str, Any]]) -> LicenseState:
    """Rebuild a license state sent across a message boundary.

    Missing or unknown payloads map to a default free license.
    """
    if data and data.get("tier") == "premium":
        raw = data.get("activated_at")
        return PremiumLicense(activated_at=datetime.fromisoformat(raw) if raw else None)
    data = data or {}
    return FreeLicense(
        quota_remaining=int(data.get("quota_remaining", 5)),
        max_file_size=int(data.get("max_file_size", 2 * 1024 * 1024)),
        daily_quota=int(data.get("daily_quota", 5)),
    )


# ---------------------------------------------------------------------------
# Token algorithm
# ---------------------------------------------------------------------------


def _int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def compute_checksum(payload: str, salt: str = DEFAULT_LICENSE_SALT) -> str:
    """Four hex digits derived from ``payload + salt``.

    ``h = h * 31 + ord(c)`` with signed 32-bit wraparound, then the absolute
    value in upper-case hex, zero-padded to four digits, last four kept.
    Deterministic; distinct payloads usually differ but collisions exist.
    """
    h = 0
    for ch in payload + salt:
        h = _int32(h * 31 + ord(ch))
    return format(abs(h), "X").zfill(4)[-4:]


def minute_code(now: Optional[float] = None) -> int:
    """Minutes since the epoch, folded into the 16-bit token field."""
    ts = time.time() if now is None else now
    return int(ts // 60) % TIME_MODULUS


def issue_credential(
    now: Optional[float] = None, salt: str = DEFAULT_LICENSE_SALT
) -> str:
    """Mint a token valid for the next five minutes."""
    g1 = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    g2 = format(minute_code(now), "04X")
    g3 = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    payload = f"{g1}-{g2}-{g3}"
    return f"{payload}-{compute_checksum(payload, salt)}"


class ReplayStore:
    """Durable set of already-used tokens.

    ``record_if_new`` is an atomic check-and-insert, serialized by a lock and
    by the table's primary key, so two callers can never both claim a token.
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._db = sqlite3.connect(str(path), check_same_thread=False)
        self._db.execute(
            "CREATE TABLE IF NOT EXISTS used_keys ("
            " key TEXT PRIMARY KEY,"
            " used_at REAL NOT NULL)"
        )
        self._db.commit()

    def contains(self, key: str) -> bool:
        with self._lock:
            row = self._db.execute(
                "SELECT 1 FROM used_keys WHERE key = ?", (key,)
            ).fetchone()
        return row is not None

    def record_if_new(self, key: str) -> bool:
        with self._lock:
            cur = self._db.execute(
                "INSERT OR IGNORE INTO used_keys (key, used_at) VALUES (?, ?)",
                (key, time.time()),
            )
            self._db.commit()
            return cur.rowcount == 1

    def close(self) -> None:
        self._db.close()


def validate_credential(
    key: str,
    store: ReplayStore,
    *,
    salt: str = DEFAULT_LICENSE_SALT,
    now: Optional[float] = None,
) -> bool:
    """Validate an activation token and consume it.

    Checks run in order (shape, checksum, time window, replay) and the first
    failure returns ``False`` before the replay store is written.

    Parameters
    ----------
    key:
        Candidate token.
    store:
        Replay store; the token is recorded there on success.
    salt:
        Secret mixed into the checksum.
    now:
        Current Unix time in seconds (defaults to ``time.time()``).
    """
    if not isinstance(key, str) or not CREDENTIAL_RE.fullmatch(key):
        return False
    g1, g2, g3, g4 = key.split("-")
    if compute_checksum(f"{g1}-{g2}-{g3}", salt) != g4:
        logger.warning("License token checksum mismatch")
        return False
    try:
        issued = int(g2, 16)
    except ValueError:
        return False
    diff = (minute_code(now) - issued) % TIME_MODULUS
    if diff > VALIDITY_WINDOW_MINUTES:
        logger.warning("License token expired or issued in the future")
        return False
    if not store.record_if_new(key):
        logger.warning("License token already used")
        return False
    return True


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class LicenseManager:
    """Tracks the license tier and the daily free quota on disk.

    Parameters
    ----------
    db_path:
        SQLite file shared with the replay store.
    daily_quota:
        Files per calendar day for the free tier.
    max_file_size:
        Largest accepted input for the free tier, in bytes.
    salt:
        Token checksum salt.
    clock:
        Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        *,
        daily_quota: int = 5,
        max_file_size: int = 2 * 1024 * 1024,
        salt: str = DEFAULT_LICENSE_SALT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.daily_quota = int(daily_quota)
        self.max_file_size = int(max_file_size)
        self.salt = salt
        self.clock = clock
        self.replay_store = ReplayStore(db_path)
        self._lock = threading.Lock()
        self._db = sqlite3.connect(str(Path(db_path).expanduser()), check_same_thread=False)
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS daily_counter (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                day TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS activation (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                key TEXT NOT NULL,
                activated_at REAL NOT NULL,
                expires_at REAL NOT NULL
            );
            """
        )
        self._db.commit()

    @classmethod
    def from_settings(cls, settings) -> "LicenseManager":
        return cls(
            settings.license_db_path,
            daily_quota=settings.free_daily_quota,
            max_file_size=settings.free_max_file_size,
            salt=settings.license_salt,
        )

    def _today(self) -> str:
        return date.fromtimestamp(self.clock()).isoformat()

    def _count_today(self) -> int:
        today = self._today()
        row = self._db.execute("SELECT day, count FROM daily_counter WHERE id = 1").fetchone()
        if row is None or row[0] != today:
            self._db.execute(
                "INSERT OR REPLACE INTO daily_counter (id, day, count) VALUES (1, ?, 0)",
                (today,),
            )
            self._db.commit()
            return 0
        return int(row[1])

    def _premium(self) -> Optional[PremiumLicense]:
        row = self._db.execute(
            "SELECT activated_at, expires_at FROM activation WHERE id = 1"
        ).fetchone()
        if row is None or row[1] <= self.clock():
            return None
        return PremiumLicense(activated_at=datetime.fromtimestamp(row[0], tz=timezone.utc))

    def check(self) -> LicenseState:
        """Return the current state, resetting the free counter on a new day."""
        with self._lock:
            premium = self._premium()
            if premium is not None:
                return premium
            used = self._count_today()
            return FreeLicense(
                quota_remaining=max(0, self.daily_quota - used),
                max_file_size=self.max_file_size,
                daily_quota=self.daily_quota,
            )

    def consume_credit(self) -> bool:
        """Take one file credit; ``False`` once the free quota is exhausted."""
        with self._lock:
            if self._premium() is not None:
                return True
            used = self._count_today()
            if used >= self.daily_quota:
                return False
            self._db.execute(
                "UPDATE daily_counter SET count = count + 1 WHERE id = 1"
            )
            self._db.commit()
            return True

    def activate(self, key: str) -> bool:
        """Validate ``key`` and switch to premium on success."""
        now = self.clock()
        if not validate_credential(key, self.replay_store, salt=self.salt, now=now):
            return False
        with self._lock:
            self._db.execute(
                "INSERT OR REPLACE INTO activation (id, key, activated_at, expires_at) "
                "VALUES (1, ?, ?, ?)",
                (key, now, now + PREMIUM_DURATION.total_seconds()),
            )
            self._db.commit()
        logger.info("Premium license activated")
        return True

    def reset(self) -> None:
        """Drop any activation and return to the free tier."""
        with self._lock:
            self._db.execute("DELETE FROM activation")
            self._db.commit()

    def close(self) -> None:
        self.replay_store.close()
        self._db.close()


__all__ = [
    "FreeLicense",
    "PremiumLicense",
    "LicenseState",
    "license_state_from_dict",
    "compute_checksum",
    "minute_code",
    "issue_credential",
    "ReplayStore",
    "validate_credential",
    "LicenseManager",
]
