"""
Envelope Authenticator.

The edge wraps each client request exactly once:

    {
      "original_request": {"meta": {...}, "protected_payload": ..., "user_signature": "..."},
      "gateway_metadata": {"arrival_time": ..., "route_id": ..., "gateway_id": ..., "client_ip": ...}
    }

and authenticates it with HMAC-SHA256 over the canonical bytes of the whole
envelope. The backend recomputes the tag over the envelope exactly as
received and compares in constant time. Any byte change anywhere in the
envelope, including gateway metadata, breaks the tag.
"""

import copy
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from .canonicalization import canonicalize
from .errors import MalformedRequest, Layer
from .util import constant_time_compare, now_epoch, to_bytes

logger = logging.getLogger(__name__)

ENVELOPE_KEY = "gateway_envelope"
HMAC_KEY = "gateway_hmac"
ORIGINAL_REQUEST = "original_request"
GATEWAY_METADATA = "gateway_metadata"


def build_gateway_metadata(
    endpoint: str,
    gateway_id: str,
    client_ip: Optional[str],
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Build the edge-attested metadata block.

    ``arrival_time`` is recorded for audit only; freshness is enforced on the
    client timestamp inside the signed payload.
    """
    return {
        "arrival_time": now_epoch() if now is None else int(now),
        "route_id": f"route_{endpoint}",
        "gateway_id": gateway_id,
        "client_ip": client_ip or "unknown",
    }


def is_envelope(obj: Any) -> bool:
    """True if obj is already an envelope or sealed envelope."""
    return isinstance(obj, dict) and (
        ENVELOPE_KEY in obj or HMAC_KEY in obj or ORIGINAL_REQUEST in obj or GATEWAY_METADATA in obj
    )


def wrap(original_request: Dict[str, Any], gateway_metadata: Dict[str, Any]) -> Dict[str, Any]:
    """
    Wrap a client request into an envelope.

    Raises:
        MalformedRequest: If the request is not an object, lacks
            ``protected_payload`` or ``user_signature``, or is already an envelope
    """
    if not isinstance(original_request, dict):
        raise MalformedRequest("request body is not an object", Layer.GATEWAY)
    if is_envelope(original_request):
        raise MalformedRequest("request is already an envelope", Layer.GATEWAY)
    if "protected_payload" not in original_request:
        raise MalformedRequest("missing protected_payload", Layer.GATEWAY)
    if not isinstance(original_request.get("user_signature"), str):
        raise MalformedRequest("missing user_signature", Layer.GATEWAY)

    meta = original_request.get("meta")
    return {
        ORIGINAL_REQUEST: {
            "meta": copy.deepcopy(meta) if isinstance(meta, dict) else {},
            "protected_payload": copy.deepcopy(original_request["protected_payload"]),
            "user_signature": original_request["user_signature"],
        },
        GATEWAY_METADATA: dict(gateway_metadata),
    }


def compute_tag(envelope: Dict[str, Any], secret: str) -> str:
    """
    Compute the envelope HMAC.

    Raises:
        ValueError: If the envelope is not canonicalizable
    """
    return hmac.new(to_bytes(secret), canonicalize(envelope), hashlib.sha256).hexdigest()


def authenticate(envelope: Any, tag: Any, secret: str) -> bool:
    """
    Check an envelope tag in constant time.

    Never raises: non-string tags and non-canonicalizable envelopes yield False.
    """
    if not isinstance(tag, str) or not isinstance(envelope, dict):
        return False
    try:
        expected = compute_tag(envelope, secret)
    except (ValueError, TypeError) as e:
        logger.debug(f"Envelope not canonicalizable: {e}")
        return False
    return constant_time_compare(expected, tag)


def seal(envelope: Dict[str, Any], secret: str) -> Dict[str, Any]:
    """Produce the forwarded wire body ``{gateway_envelope, gateway_hmac}``."""
    return {
        ENVELOPE_KEY: envelope,
        HMAC_KEY: compute_tag(envelope, secret),
    }
