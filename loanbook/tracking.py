"""Tracking links and access codes handed to friends."""

import re
import secrets
import string
import time

TRACKING_CODE_RE = re.compile(r"^\d{4}$")
TRACKING_URL_RE = re.compile(r"^[A-Za-z0-9]{12}-[a-z0-9]+$")
_TOKEN_ALPHABET = string.ascii_letters + string.digits
_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_tracking_code() -> str:
    return str(1000 + secrets.randbelow(9000))


def is_valid_tracking_code(code: str) -> bool:
    return bool(TRACKING_CODE_RE.match(code))


def generate_tracking_url(now_ms: int | None = None) -> str:
    """12 random alphanumerics plus a base36 millisecond timestamp."""
    token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(12))
    stamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    return f"{token}-{_to_base36(stamp)}"


def is_valid_tracking_url(url: str) -> bool:
    return bool(TRACKING_URL_RE.match(url))


def full_tracking_url(base_url: str, tracking_url: str) -> str:
    return f"{base_url.rstrip('/')}/track/{tracking_url}"
