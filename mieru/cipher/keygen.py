"""Key derivation and time based salts used to build cipher blocks."""

from __future__ import annotations

import hashlib
import math
from datetime import datetime

# Both values are part of the wire protocol and must not change.
DEFAULT_ITER = 4096
REFRESH_INTERVAL = 60  # seconds

_UINT64_MASK = (1 << 64) - 1


def derive_key(
    password: bytes,
    salt: bytes,
    key_len: int = 32,
    iterations: int = DEFAULT_ITER,
) -> bytes:
    """Derive a key from the password with PBKDF2-HMAC-SHA256."""
    if not password:
        raise ValueError("password is empty")
    return hashlib.pbkdf2_hmac("sha256", bytes(password), bytes(salt), iterations, key_len)


def _to_seconds(t: datetime | float | int) -> float:
    if isinstance(t, datetime):
        return t.timestamp()
    return float(t)


def salts_from_time(t: datetime | float | int) -> list[bytes]:
    """Return three 32 byte salts for the minute before, at and after ``t``.

    ``t`` is rounded to the nearest minute, halfway values rounding up.
    """
    seconds = _to_seconds(t)
    rounded = math.floor(seconds / REFRESH_INTERVAL + 0.5) * REFRESH_INTERVAL
    salts = []
    for offset in (-REFRESH_INTERVAL, 0, REFRESH_INTERVAL):
        unix = int(rounded + offset) & _UINT64_MASK
        salts.append(hashlib.sha256(unix.to_bytes(8, "big")).digest())
    return salts