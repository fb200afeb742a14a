"""
Content normalization and fingerprinting for ingested documents.
"""

import hashlib
import re
from typing import Optional

# C0 control characters other than tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

HASH_ALGORITHMS = ("polynomial", "sha256")


def sanitize(text: Optional[str]) -> str:
    """Strip null bytes and control characters, then surrounding whitespace."""
    if not text:
        return ""
    return _CONTROL_CHARS.sub("", text).strip()


def truncate(text: str, limit: int) -> str:
    return text[:limit] if limit and len(text) > limit else text


def _polynomial_hash(text: str) -> str:
    """
    Rolling hash `h = h*31 + unit` over UTF-16 code units, wrapped to a
    signed 32-bit integer and rendered as hex (negative values keep the sign).
    """
    data = text.encode("utf-16-le", errors="surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF

    if h >= 0x80000000:
        h -= 0x100000000
    return format(h, "x")


def content_hash(text: str, algorithm: str = "polynomial") -> str:
    """
    Deterministic fingerprint used for deduplication.

    Args:
        text: Sanitized content
        algorithm: "polynomial" (compact, collision tolerant) or "sha256"

    Returns:
        Hex digest string
    """
    if algorithm == "polynomial":
        return _polynomial_hash(text)
    if algorithm == "sha256":
        return hashlib.sha256(text.encode("utf-8", errors="surrogatepass")).hexdigest()
    raise ValueError(f"Unknown hash algorithm: {algorithm}")
