"""
Request Builder (client side).

Produces the two client messages of the protocol:

    login_request()        {"username", "timestamp", "signature"}
    build_request(...)     {"meta", "protected_payload", "user_signature"}

A request is built in a fixed order: stamp ``data.timestamp``, sign the
body ``{"token", "data"}``, and only then pad it. The signature therefore
covers the logical payload and never the padding.
"""

import copy
from typing import Any, Callable, Dict, Optional

from .login import login_message
from .padding import DEFAULT_TARGET_SIZE, pad
from .signing import ED25519, get_scheme, sign
from .util import now_epoch


class RequestBuilder:
    """
    Builds signed, padded requests for one identity.

    Usage:
        builder = RequestBuilder("alice", private_key_hex)
        login = builder.login_request()
        request = builder.build_request(token, {"action": "transfer", "amount": 500})
    """

    def __init__(
        self,
        username: str,
        private_key_hex: str,
        key_type: str = ED25519,
        target_size: int = DEFAULT_TARGET_SIZE,
        clock: Callable[[], int] = now_epoch,
    ):
        get_scheme(key_type)
        self.username = username
        self.private_key_hex = private_key_hex
        self.key_type = key_type
        self.target_size = target_size
        self.clock = clock

    def login_request(self) -> Dict[str, Any]:
        timestamp = self.clock()
        message = login_message(self.username, timestamp)
        return {
            **message,
            "signature": sign(message, self.private_key_hex, self.key_type),
        }

    def build_request(
        self,
        token: str,
        data: Dict[str, Any],
        meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Build a wire request.

        Args:
            token: Credential from login
            data: Logical payload; ``timestamp`` is added if absent
            meta: Unsigned, unpadded metadata

        Returns:
            Request ready to send to the edge
        """
        if not isinstance(data, dict):
            raise ValueError("data must be an object")
        data = copy.deepcopy(data)
        data.setdefault("timestamp", self.clock())

        signed_body = {"token": token, "data": data}
        signature = sign(signed_body, self.private_key_hex, self.key_type)

        return {
            "meta": dict(meta or {}),
            "protected_payload": pad(signed_body, self.target_size),
            "user_signature": signature,
        }
