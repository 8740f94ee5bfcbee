"""
Utility functions for the zerotrust protocol core.

Provides encoding, time and comparison helpers shared by the signing,
padding and envelope layers.
"""

import hmac
import secrets
import time
from typing import Union


def now_epoch() -> int:
    """Get current Unix timestamp as integer."""
    return int(time.time())


def to_bytes(data: Union[bytes, str]) -> bytes:
    """Encode str as UTF-8, pass bytes through."""
    if isinstance(data, str):
        return data.encode('utf-8')
    return data


def hex_decode(s: str, expected_bytes: int = None) -> bytes:
    """
    Decode a hex string, optionally enforcing the decoded length.

    Raises:
        ValueError: If the string is not hex or has the wrong length
    """
    if not isinstance(s, str):
        raise ValueError("hex value must be a string")
    raw = bytes.fromhex(s)
    if expected_bytes is not None and len(raw) != expected_bytes:
        raise ValueError(f"expected {expected_bytes} bytes, got {len(raw)}")
    return raw


def constant_time_compare(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """
    Compare two strings/bytes in constant time to prevent timing attacks.
    """
    return hmac.compare_digest(to_bytes(a), to_bytes(b))


def random_hex(length: int) -> str:
    """Return exactly ``length`` random hexadecimal characters."""
    if length <= 0:
        return ""
    return secrets.token_hex((length + 1) // 2)[:length]
