"""
Login Service.

Exchanges a holder-of-key login proof for a credential. The client signs

    {"username": ..., "timestamp": ...}

with its registered private key. The proof must be fresh within the login
window (300 s by default, inclusive) and verify under the identity's current
key. Unknown users and bad signatures are indistinguishable to the caller.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict

from .credentials import CredentialAuthority
from .errors import InvalidLoginCredentials, MalformedRequest, Layer
from .ledger import Ledger
from .logging_config import audit_log
from .signing import verify
from .util import now_epoch
from .validation import validate_hex, validate_username

DEFAULT_LOGIN_WINDOW = 300


@dataclass(frozen=True)
class LoginResult:
    token: str
    user_id: Any
    username: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "token": self.token,
            "user": {"id": self.user_id, "username": self.username},
        }


def login_message(username: str, timestamp: int) -> Dict[str, Any]:
    """The structure a login proof signs."""
    return {"username": username, "timestamp": timestamp}


class LoginService:
    """Verifies login proofs and issues credentials."""

    def __init__(
        self,
        ledger: Ledger,
        authority: CredentialAuthority,
        window_seconds: int = DEFAULT_LOGIN_WINDOW,
        clock: Callable[[], int] = now_epoch,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.ledger = ledger
        self.authority = authority
        self.window_seconds = window_seconds
        self.clock = clock

    def login(self, username: Any, timestamp: Any, signature: Any) -> LoginResult:
        """
        Verify a login proof and issue a credential.

        Raises:
            MalformedRequest: Missing, mistyped or badly formatted fields
            InvalidLoginCredentials: Stale proof, unknown user or bad signature
        """
        validate_username(username, layer=Layer.LOGIN)
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise MalformedRequest("timestamp is not an integer", Layer.LOGIN)
        signature = validate_hex(signature, "signature", layer=Layer.LOGIN)

        now = self.clock()
        if abs(now - timestamp) > self.window_seconds:
            audit_log.login_attempt(username, False, "stale")
            raise InvalidLoginCredentials(f"login timestamp {timestamp} outside window (now {now})")

        identity = self.ledger.lookup_identity(username)
        if identity is None:
            audit_log.login_attempt(username, False, "unknown_user")
            raise InvalidLoginCredentials(f"unknown user {username}")

        if not verify(login_message(username, timestamp), signature, identity.public_key, identity.key_type):
            audit_log.login_attempt(username, False, "bad_signature")
            raise InvalidLoginCredentials(f"login signature invalid for {username}")

        token = self.authority.issue(identity)
        self.ledger.record_login(username)
        audit_log.login_attempt(username, True)
        return LoginResult(token=token, user_id=identity.id, username=identity.username)
