"""
Canonical Signer.

Holder-of-key signatures over canonical JSON payloads. The signature scheme
is a pluggable strategy selected by an explicit key-type tag carried with
every identity and credential:

    ed25519    PyNaCl, deterministic (RFC 8032)
    secp256k1  ECDSA-SHA256 via cryptography, nonce from the OS RNG;
               raw 64-byte r||s signatures, compressed SEC1 public keys

Keys and signatures travel as lowercase hex.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from .canonicalization import canonicalize
from .util import hex_decode

import logging

logger = logging.getLogger(__name__)

ED25519 = "ed25519"
SECP256K1 = "secp256k1"


@dataclass(frozen=True)
class KeyPair:
    """Hex-encoded asymmetric key pair tagged with its scheme."""
    private_key: str
    public_key: str
    key_type: str = ED25519

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_type": self.key_type,
            "private_key": self.private_key,
            "public_key": self.public_key,
        }


class SignatureScheme(ABC):
    """Abstract signature strategy operating on raw message bytes."""

    key_type: str = ""

    @abstractmethod
    def generate(self) -> KeyPair:
        pass

    @abstractmethod
    def public_key(self, private_key_hex: str) -> str:
        pass

    @abstractmethod
    def sign(self, message: bytes, private_key_hex: str) -> str:
        """Sign message bytes. Raises ValueError on a malformed private key."""
        pass

    @abstractmethod
    def verify(self, message: bytes, signature_hex: str, public_key_hex: str) -> bool:
        """Verify message bytes. May raise on malformed input; callers guard."""
        pass


class Ed25519Scheme(SignatureScheme):
    """Ed25519 via PyNaCl."""

    key_type = ED25519

    def generate(self) -> KeyPair:
        sk = SigningKey.generate()
        return KeyPair(
            private_key=bytes(sk).hex(),
            public_key=bytes(sk.verify_key).hex(),
            key_type=self.key_type,
        )

    def _signing_key(self, private_key_hex: str) -> SigningKey:
        raw = hex_decode(private_key_hex)
        # 64-byte form is seed || public key
        if len(raw) == 64:
            raw = raw[:32]
        if len(raw) != 32:
            raise ValueError(f"Invalid Ed25519 private key length: {len(raw)} bytes")
        return SigningKey(raw)

    def public_key(self, private_key_hex: str) -> str:
        return bytes(self._signing_key(private_key_hex).verify_key).hex()

    def sign(self, message: bytes, private_key_hex: str) -> str:
        return self._signing_key(private_key_hex).sign(message).signature.hex()

    def verify(self, message: bytes, signature_hex: str, public_key_hex: str) -> bool:
        signature = hex_decode(signature_hex, expected_bytes=64)
        vk = VerifyKey(hex_decode(public_key_hex, expected_bytes=32))
        try:
            vk.verify(message, signature)
            return True
        except BadSignatureError:
            return False


class Secp256k1Scheme(SignatureScheme):
    """ECDSA over secp256k1 with SHA-256 via cryptography."""

    key_type = SECP256K1

    def generate(self) -> KeyPair:
        private = ec.generate_private_key(ec.SECP256K1())
        scalar = private.private_numbers().private_value
        return KeyPair(
            private_key=scalar.to_bytes(32, "big").hex(),
            public_key=self._encode_public(private.public_key()),
            key_type=self.key_type,
        )

    @staticmethod
    def _encode_public(public_key: ec.EllipticCurvePublicKey) -> str:
        return public_key.public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        ).hex()

    def _private(self, private_key_hex: str) -> ec.EllipticCurvePrivateKey:
        scalar = int.from_bytes(hex_decode(private_key_hex, expected_bytes=32), "big")
        return ec.derive_private_key(scalar, ec.SECP256K1())

    def public_key(self, private_key_hex: str) -> str:
        return self._encode_public(self._private(private_key_hex).public_key())

    def sign(self, message: bytes, private_key_hex: str) -> str:
        der = self._private(private_key_hex).sign(message, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        return (r.to_bytes(32, "big") + s.to_bytes(32, "big")).hex()

    def verify(self, message: bytes, signature_hex: str, public_key_hex: str) -> bool:
        raw = hex_decode(signature_hex, expected_bytes=64)
        r = int.from_bytes(raw[:32], "big")
        s = int.from_bytes(raw[32:], "big")
        public = ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), hex_decode(public_key_hex)
        )
        try:
            public.verify(encode_dss_signature(r, s), message, ec.ECDSA(hashes.SHA256()))
            return True
        except InvalidSignature:
            return False


# Scheme registry, keyed by the explicit key-type tag
SCHEMES: Dict[str, SignatureScheme] = {
    ED25519: Ed25519Scheme(),
    SECP256K1: Secp256k1Scheme(),
}


def get_scheme(key_type: str) -> SignatureScheme:
    """Look up a signature scheme by tag."""
    if key_type not in SCHEMES:
        raise ValueError(f"Unknown key type: {key_type}")
    return SCHEMES[key_type]


def generate_keypair(key_type: str = ED25519) -> KeyPair:
    """Generate a new key pair for the given scheme."""
    return get_scheme(key_type).generate()


def public_key_from_private(private_key_hex: str, key_type: str = ED25519) -> str:
    """Derive the hex public key matching a hex private key."""
    return get_scheme(key_type).public_key(private_key_hex)


def sign(payload: Any, private_key_hex: str, key_type: str = ED25519) -> str:
    """
    Sign the canonical encoding of a payload.

    Args:
        payload: Any canonicalizable JSON value
        private_key_hex: Hex-encoded private key
        key_type: Signature scheme tag

    Returns:
        Hex-encoded signature

    Raises:
        ValueError: On an unknown key type, malformed key or non-JSON payload
    """
    return get_scheme(key_type).sign(canonicalize(payload), private_key_hex)


def verify(payload: Any, signature_hex: str, public_key_hex: str, key_type: str = ED25519) -> bool:
    """
    Verify a signature over the canonical encoding of a payload.

    Never raises: wrong-length keys or signatures, undecodable hex, unknown
    key types and non-canonicalizable payloads all yield False.
    """
    try:
        scheme = get_scheme(key_type)
        return scheme.verify(canonicalize(payload), signature_hex, public_key_hex)
    except Exception as e:
        logger.debug(f"Signature verification error ({key_type}): {e}")
        return False


class CanonicalSigner:
    """
    Signer bound to one key-type tag.

    Usage:
        signer = CanonicalSigner("ed25519")
        sig = signer.sign({"amount": 500}, private_key_hex)
        assert signer.verify({"amount": 500}, sig, public_key_hex)
    """

    def __init__(self, key_type: str = ED25519):
        self.scheme = get_scheme(key_type)
        self.key_type = key_type

    def sign(self, payload: Any, private_key_hex: str) -> str:
        return sign(payload, private_key_hex, self.key_type)

    def verify(self, payload: Any, signature_hex: str, public_key_hex: str) -> bool:
        return verify(payload, signature_hex, public_key_hex, self.key_type)
