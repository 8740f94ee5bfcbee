"""
zerotrust - Layered Request-Authentication Protocol

Version: 1.0.0

Lets an edge gateway and a backend service establish trust in a request's
origin, freshness and integrity through three independent layers, each
failing closed:

    1. Envelope HMAC        edge <-> service trust (shared secret)
    2. Bearer credential    session authorization (HS256, key snapshot)
    3. Holder-of-key proof  end-user signature (ed25519 / secp256k1)

A credential snapshots the user's public key at login. If the key registered
in the ledger changes, every outstanding credential for that user is
rejected, even when the request signature is valid under the new key.

Usage:
    from zerotrust import (
        ProtocolConfig,
        StaticSecretProvider,
        InMemoryLedger,
        CredentialAuthority,
        PublicKeyResolver,
        VerificationPipeline,
    )

    config = ProtocolConfig.from_env()
    authority = CredentialAuthority(secrets, ttl_seconds=config.credential_ttl_seconds)
    resolver = PublicKeyResolver(ledger, max_credential_ttl=config.credential_ttl_seconds)
    resolver.attach(ledger)
    pipeline = VerificationPipeline(config, secrets, authority, resolver)

    decision = pipeline.verify(forwarded_body)
    if decision.accepted:
        handle(decision.identity, decision.payload)
    else:
        respond(decision.status_code, decision.to_response())

The HTTP apps live in ``zerotrust.gateway``, ``zerotrust.service`` and
``zerotrust.auth_server`` and are imported separately;
``zerotrust.main`` assembles all three from the environment.
"""

__version__ = "1.0.0"

# Canonicalization
from .canonicalization import canonicalize, canonicalize_str, canonical_size

# Errors
from .errors import (
    Layer,
    ProtocolError,
    MalformedRequest,
    GatewayAuthFailed,
    TokenMalformed,
    InvalidTokenSignature,
    TokenExpired,
    TokenRevoked,
    ReplayDetected,
    KeyRotated,
    IdentityNotFound,
    InvalidUserSignature,
    InvalidLoginCredentials,
    ResolverUnavailable,
    InternalError,
)

# Signing
from .signing import (
    ED25519,
    SECP256K1,
    KeyPair,
    CanonicalSigner,
    generate_keypair,
    public_key_from_private,
    sign,
    verify,
)

# Credentials
from .credentials import (
    CredentialAuthority,
    issue_credential,
    verify_credential,
)

# Envelope and padding
from .envelope import build_gateway_metadata, wrap, compute_tag, authenticate, seal
from .padding import pad, unpad

# Collaborators
from .secret_provider import (
    SecretProvider,
    StaticSecretProvider,
    EnvSecretProvider,
    SecretNotFound,
)
from .ledger import (
    Ledger,
    InMemoryLedger,
    Identity,
    Transaction,
    LedgerError,
    LedgerUnavailable,
)

# Resolver and pipeline
from .resolver import PublicKeyResolver, PublicKeyCacheEntry
from .pipeline import (
    VerificationPipeline,
    VerificationContext,
    VerificationDecision,
    VerifiedIdentity,
    StageResult,
)

# Login and client
from .login import LoginService, LoginResult
from .client import RequestBuilder

# Configuration
from .config import ProtocolConfig


__all__ = [
    # Version
    "__version__",

    # Canonicalization
    "canonicalize",
    "canonicalize_str",
    "canonical_size",

    # Errors
    "Layer",
    "ProtocolError",
    "MalformedRequest",
    "GatewayAuthFailed",
    "TokenMalformed",
    "InvalidTokenSignature",
    "TokenExpired",
    "TokenRevoked",
    "ReplayDetected",
    "KeyRotated",
    "IdentityNotFound",
    "InvalidUserSignature",
    "InvalidLoginCredentials",
    "ResolverUnavailable",
    "InternalError",

    # Signing
    "ED25519",
    "SECP256K1",
    "KeyPair",
    "CanonicalSigner",
    "generate_keypair",
    "public_key_from_private",
    "sign",
    "verify",

    # Credentials
    "CredentialAuthority",
    "issue_credential",
    "verify_credential",

    # Envelope and padding
    "build_gateway_metadata",
    "wrap",
    "compute_tag",
    "authenticate",
    "seal",
    "pad",
    "unpad",

    # Collaborators
    "SecretProvider",
    "StaticSecretProvider",
    "EnvSecretProvider",
    "SecretNotFound",
    "Ledger",
    "InMemoryLedger",
    "Identity",
    "Transaction",
    "LedgerError",
    "LedgerUnavailable",

    # Resolver and pipeline
    "PublicKeyResolver",
    "PublicKeyCacheEntry",
    "VerificationPipeline",
    "VerificationContext",
    "VerificationDecision",
    "VerifiedIdentity",
    "StageResult",

    # Login and client
    "LoginService",
    "LoginResult",
    "RequestBuilder",

    # Configuration
    "ProtocolConfig",
]
