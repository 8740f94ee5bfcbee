"""
Secret Provider collaborator.

Secret storage and rotation persistence live outside the protocol core; the
core only calls ``get(name)``. Providers also own the credential revocation
hook, the single extension point for deactivating a credential before its
``exp``.
"""

import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional


GATEWAY_HMAC_SECRET = "gateway_hmac_secret"
CREDENTIAL_SECRET = "jwt_secret"


class SecretNotFound(KeyError):
    """Raised when a named secret is not configured."""


class SecretProvider(ABC):
    """Abstract interface for secret retrieval."""

    @abstractmethod
    def get(self, name: str) -> str:
        """
        Return the current value of a named secret.

        Raises:
            SecretNotFound: If the secret is not configured
        """
        pass

    def is_revoked(self, claims: Dict[str, Any]) -> bool:
        """Revocation hook consulted after a credential verifies. Default: never revoked."""
        return False


class StaticSecretProvider(SecretProvider):
    """
    Mapping-backed provider for tests, demos and single-process deployments.

    Supports in-process revocation by username.
    """

    def __init__(self, secrets: Mapping[str, str], revoked_usernames: Optional[Iterable[str]] = None):
        self._secrets = dict(secrets)
        self._revoked = set(revoked_usernames or [])
        self._lock = threading.RLock()

    def get(self, name: str) -> str:
        with self._lock:
            value = self._secrets.get(name)
        if not value:
            raise SecretNotFound(name)
        return value

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._secrets[name] = value

    def revoke(self, username: str) -> None:
        with self._lock:
            self._revoked.add(username)

    def is_revoked(self, claims: Dict[str, Any]) -> bool:
        with self._lock:
            return claims.get("username") in self._revoked


class EnvSecretProvider(SecretProvider):
    """
    Environment-backed provider.

    ``get("gateway_hmac_secret")`` reads ``GATEWAY_HMAC_SECRET`` (with an
    optional prefix, e.g. ``ZEROTRUST_GATEWAY_HMAC_SECRET``). Values are read
    on every call so an externally rotated variable takes effect.
    """

    def __init__(self, prefix: str = "", environ: Optional[Mapping[str, str]] = None):
        self._prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> str:
        value = self._environ.get(f"{self._prefix}{name.upper()}")
        if not value:
            raise SecretNotFound(name)
        return value
