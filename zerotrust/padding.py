"""
Payload Padding Codec.

Normalizes the size of a signed payload to hide the true payload length:

    {"data": <signed payload>, "padding": "<random hex>", "originalSize": N}

Padding is applied AFTER signing and stripped BEFORE verification, so it
never contributes to the authenticated bytes. ``originalSize`` is the byte
length of the canonical encoding of ``data``. The padding is sized so that
the canonical encoding of the whole padded structure is exactly
``target_size`` bytes; payloads with no room left pass through with empty
padding.
"""

from typing import Any, Dict

from .canonicalization import canonicalize
from .errors import MalformedRequest, Layer
from .util import random_hex

DEFAULT_TARGET_SIZE = 4096


def _wrapper_size(data: Any, original_size: int, padding: str = "") -> int:
    return len(canonicalize({"data": data, "originalSize": original_size, "padding": padding}))


def pad(payload: Any, target_size: int = DEFAULT_TARGET_SIZE) -> Dict[str, Any]:
    """
    Pad a payload to ``target_size`` canonical bytes.

    Args:
        payload: The signed logical payload (any JSON value)
        target_size: Desired total canonical size in bytes

    Returns:
        Padded payload dict

    Raises:
        ValueError: If the payload is not canonicalizable
    """
    original_size = len(canonicalize(payload))
    # hex characters are one byte each, so the overhead is linear in padding length
    room = target_size - _wrapper_size(payload, original_size)
    return {
        "data": payload,
        "padding": random_hex(room) if room > 0 else "",
        "originalSize": original_size,
    }


def unpad(padded: Any) -> Any:
    """
    Recover the payload from a padded structure.

    Raises:
        MalformedRequest: If the structure is not a padded payload
    """
    if not isinstance(padded, dict) or "data" not in padded:
        raise MalformedRequest("protected_payload is not a padded payload", Layer.TOKEN)
    padding = padded.get("padding", "")
    if not isinstance(padding, str):
        raise MalformedRequest("padding is not a string", Layer.TOKEN)
    original_size = padded.get("originalSize")
    if original_size is not None and (isinstance(original_size, bool) or not isinstance(original_size, int)):
        raise MalformedRequest("originalSize is not an integer", Layer.TOKEN)
    return padded["data"]
