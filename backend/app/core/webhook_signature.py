"""Paddle webhook signature verification.

Paddle signs every delivery with a ``Paddle-Signature`` header of the form
``ts=<unix seconds>;h1=<hex HMAC-SHA256>``. The signed message is
``<ts>:<raw body>``, keyed with the endpoint's webhook secret.
"""

import hashlib
import hmac
import re
import time

DEFAULT_TOLERANCE_SECONDS = 300

_TIMESTAMP_RE = re.compile(r"[0-9]+")


def parse_signature_header(header: str) -> dict[str, str]:
    """Split ``k=v;k=v`` into a dict.

    Only whole segments are trimmed; keys and values are taken verbatim, so
    ``ts = 1`` does not yield a ``ts`` entry. Segments without '=' are ignored.
    """
    parts: dict[str, str] = {}
    for segment in header.split(";"):
        key, sep, value = segment.strip().partition("=")
        if not sep:
            continue
        parts[key] = value
    return parts


def compute_signature(timestamp: str, raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``<timestamp>:<raw_body>``."""
    message = timestamp.encode("utf-8") + b":" + raw_body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_paddle_signature(
    signature_header: str | None,
    raw_body: bytes,
    secret: str,
    *,
    now: float | None = None,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> bool:
    """Return True only for a fresh, matching signature.

    Fails closed: any parse problem, missing field, stale or future
    timestamp, or mismatch returns False. Never raises.
    """
    header = (signature_header or "").strip()
    if not header or not secret:
        return False

    parts = parse_signature_header(header)
    timestamp = parts.get("ts", "")
    provided = parts.get("h1", "")
    if not timestamp or not provided:
        return False

    if not _TIMESTAMP_RE.fullmatch(timestamp):
        return False
    signed_at = int(timestamp)

    current = time.time() if now is None else now
    if abs(int(current) - signed_at) > tolerance_seconds:
        return False

    expected = compute_signature(timestamp, raw_body, secret)
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
