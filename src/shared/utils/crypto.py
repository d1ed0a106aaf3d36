# /src/shared/utils/crypto.py
"""
Crypto helpers. No secrets logged.

- sha256_hex(data)
- hmac_sha256_hex(key, data)
- signature_header(key, data)      -> "sha256=<hex>"
- verify_signature_header(key, data, header) -> bool (constant time)
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


def _b(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sha256_hex(data: bytes | str) -> str:
    return hashlib.sha256(_b(data)).hexdigest()


def hmac_sha256_hex(key: bytes | str, data: bytes | str) -> str:
    return hmac.new(_b(key), _b(data), hashlib.sha256).hexdigest()


def signature_header(key: bytes | str, data: bytes | str) -> str:
    return SIGNATURE_PREFIX + hmac_sha256_hex(key, data)


def verify_signature_header(key: bytes | str, data: bytes, header: Optional[str]) -> bool:
    """Check a `sha256=<hex>` header against the HMAC of the exact bytes received."""
    if not key or not header or not header.startswith(SIGNATURE_PREFIX):
        return False
    provided = header[len(SIGNATURE_PREFIX):].strip().lower()
    expected = hmac_sha256_hex(key, data)
    return hmac.compare_digest(provided.encode("ascii", "replace"), expected.encode("ascii"))


def constant_time_equals(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
