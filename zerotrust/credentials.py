"""
Credential Authority.

Issues and verifies self-contained HS256 bearer credentials (compact JWT,
via PyJWT). Claims bind the session to a snapshot of the identity's public
key at issuance:

    {userId, username, publicKeySnapshot, keyType, iat, exp}

The credential secret is a service-held symmetric key, a different trust
domain from both the gateway HMAC secret and the user's asymmetric key.
Expiry is the only built-in deactivation path; the secret provider's
revocation hook is checked after a credential verifies.
"""

from typing import Any, Callable, Dict, Optional

import jwt

from .errors import InvalidTokenSignature, TokenExpired, TokenMalformed, TokenRevoked
from .ledger import Identity
from .secret_provider import CREDENTIAL_SECRET, SecretProvider
from .util import now_epoch

DEFAULT_TTL_SECONDS = 3600
ALGORITHM = "HS256"
TOKEN_TYPE = "JWT"
REQUIRED_CLAIMS = ("userId", "username", "publicKeySnapshot", "keyType", "iat", "exp")

# Expiry is checked against the injected clock, not PyJWT's wall clock
DECODE_OPTIONS = {
    "require": list(REQUIRED_CLAIMS),
    "verify_exp": False,
    "verify_iat": False,
    "verify_nbf": False,
}


def issue_credential(
    identity: Identity,
    secret: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: Optional[int] = None,
) -> str:
    """
    Issue a credential for an identity.

    Args:
        identity: The authenticated identity
        secret: Credential HMAC secret
        ttl_seconds: Lifetime in seconds
        now: Issue time (default: current time)

    Returns:
        Wire-format token string
    """
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")
    iat = now_epoch() if now is None else int(now)
    claims = {
        "userId": identity.id,
        "username": identity.username,
        "publicKeySnapshot": identity.public_key,
        "keyType": identity.key_type,
        "iat": iat,
        "exp": iat + ttl_seconds,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM, headers={"typ": TOKEN_TYPE})


def verify_credential(token: str, secret: str, now: Optional[int] = None) -> Dict[str, Any]:
    """
    Verify a credential and return its claims.

    Order: structure -> header -> tag -> claim types -> expiry.
    A credential is still valid in the second its ``exp`` names.

    Raises:
        TokenMalformed: Structure, encoding, header or claim types invalid
        InvalidTokenSignature: Tag mismatch
        TokenExpired: ``exp < now``
    """
    if not isinstance(token, str):
        raise TokenMalformed("token is not a string")
    try:
        header = jwt.get_unverified_header(token)
        if header.get("alg") != ALGORITHM or header.get("typ") != TOKEN_TYPE:
            raise TokenMalformed(f"unsupported header: {header}")
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM], options=DECODE_OPTIONS)
    except jwt.InvalidSignatureError as e:
        raise InvalidTokenSignature("credential tag mismatch") from e
    except jwt.InvalidTokenError as e:
        raise TokenMalformed(f"{type(e).__name__}: {e}") from e

    for name in ("iat", "exp"):
        if isinstance(claims[name], bool) or not isinstance(claims[name], int):
            raise TokenMalformed(f"claim {name} must be an integer")
    for name in ("username", "publicKeySnapshot", "keyType"):
        if not isinstance(claims[name], str) or not claims[name]:
            raise TokenMalformed(f"claim {name} must be a non-empty string")

    current = now_epoch() if now is None else int(now)
    if claims["exp"] < current:
        raise TokenExpired(f"expired at {claims['exp']} (now {current})")

    return claims


class CredentialAuthority:
    """
    Credential issuer/verifier bound to a secret provider.

    The secret is fetched on every call so an externally rotated secret
    takes effect without restarting.
    """

    def __init__(
        self,
        secret_provider: SecretProvider,
        secret_name: str = CREDENTIAL_SECRET,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], int] = now_epoch,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.secret_provider = secret_provider
        self.secret_name = secret_name
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def issue(self, identity: Identity, ttl_seconds: Optional[int] = None) -> str:
        return issue_credential(
            identity,
            self.secret_provider.get(self.secret_name),
            self.ttl_seconds if ttl_seconds is None else ttl_seconds,
            now=self.clock(),
        )

    def verify(self, token: str) -> Dict[str, Any]:
        """Verify a token and consult the revocation hook."""
        claims = verify_credential(token, self.secret_provider.get(self.secret_name), now=self.clock())
        if self.secret_provider.is_revoked(claims):
            raise TokenRevoked(f"credential for {claims.get('username')} revoked")
        return claims
