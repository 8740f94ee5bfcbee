"""
Error taxonomy for the verification layers.

Every rejection is a ProtocolError carrying:
- the coarse layer name surfaced to callers,
- the HTTP status the outer surface maps it to,
- a public message that never names the failing field or byte,
- an internal ``detail`` that is only ever written to the audit log.

Nothing here is retryable except ResolverUnavailable.
"""

from enum import Enum
from typing import Any, Dict, Optional


class Layer(str, Enum):
    """Verification layer names used in error responses."""
    GATEWAY = "gateway_verification"
    TOKEN = "token_verification"
    USER_SIGNATURE = "user_signature_verification"
    LOGIN = "login"


class ProtocolError(Exception):
    """Base class for all terminal verification failures."""

    code = "PROTOCOL_ERROR"
    status_code = 401
    default_layer: Optional[Layer] = None
    public_message = "Request rejected"
    retryable = False

    def __init__(self, detail: str = "", layer: Optional[Layer] = None):
        self.detail = detail
        self.layer = layer or self.default_layer
        super().__init__(f"{self.code}: {detail}" if detail else self.code)

    def to_response(self) -> Dict[str, Any]:
        """Wire body for this failure. ``detail`` is deliberately absent."""
        body: Dict[str, Any] = {"success": False, "error": self.public_message}
        if self.layer is not None:
            body["layer"] = self.layer.value
        return body


class MalformedRequest(ProtocolError):
    code = "MALFORMED_REQUEST"
    status_code = 400
    public_message = "Invalid request structure"


class GatewayAuthFailed(ProtocolError):
    code = "GATEWAY_AUTH_FAILED"
    default_layer = Layer.GATEWAY
    public_message = "Gateway authentication failed"


class TokenMalformed(ProtocolError):
    code = "TOKEN_MALFORMED"
    default_layer = Layer.TOKEN
    public_message = "Invalid or expired token"


class InvalidTokenSignature(ProtocolError):
    code = "INVALID_TOKEN_SIGNATURE"
    default_layer = Layer.TOKEN
    public_message = "Invalid or expired token"


class TokenExpired(ProtocolError):
    code = "TOKEN_EXPIRED"
    default_layer = Layer.TOKEN
    public_message = "Invalid or expired token"


class TokenRevoked(ProtocolError):
    code = "TOKEN_REVOKED"
    default_layer = Layer.TOKEN
    public_message = "Invalid or expired token"


class ReplayDetected(ProtocolError):
    code = "REPLAY_DETECTED"
    default_layer = Layer.TOKEN
    public_message = "Request timestamp outside the accepted window"


class KeyRotated(ProtocolError):
    code = "KEY_ROTATED"
    default_layer = Layer.USER_SIGNATURE
    public_message = "Public key has been rotated - please login again"


class IdentityNotFound(ProtocolError):
    code = "IDENTITY_NOT_FOUND"
    default_layer = Layer.USER_SIGNATURE
    public_message = "User not found or key revoked"


class InvalidUserSignature(ProtocolError):
    code = "INVALID_USER_SIGNATURE"
    default_layer = Layer.USER_SIGNATURE
    public_message = "Invalid user signature"


class InvalidLoginCredentials(ProtocolError):
    code = "INVALID_LOGIN_CREDENTIALS"
    default_layer = Layer.LOGIN
    public_message = "Invalid credentials"


class ResolverUnavailable(ProtocolError):
    code = "RESOLVER_UNAVAILABLE"
    status_code = 503
    default_layer = Layer.USER_SIGNATURE
    public_message = "Key directory unavailable"
    retryable = True


class InternalError(ProtocolError):
    code = "INTERNAL_ERROR"
    status_code = 500
    public_message = "Internal verification error"
