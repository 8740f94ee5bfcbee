"""
Configuration module for zerotrust.

Environment-driven settings collected into an explicit ProtocolConfig that is
passed to the pipeline, resolver and apps. Nothing reads module globals at
verification time.
"""

import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from .secret_provider import CREDENTIAL_SECRET, GATEWAY_HMAC_SECRET
from .signing import SCHEMES, ED25519

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("ZEROTRUST_ENV", "dev")  # dev|stage|prod
LOG_LEVEL = os.getenv("ZEROTRUST_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("ZEROTRUST_LOG_JSON", "true").lower() in ("1", "true", "yes")


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or value == "":
        return default
    return value.lower() in ("1", "true", "yes")


# ============================================================
# Protocol Configuration
# ============================================================

@dataclass
class ProtocolConfig:
    """Tunables for the verification layers and the HTTP surfaces."""
    replay_window_seconds: int = 60
    login_replay_window_seconds: int = 300
    credential_ttl_seconds: int = 3600
    key_cache_ttl_seconds: int = 300
    padding_target_bytes: int = 4096
    resolver_timeout_seconds: float = 2.0
    resolver_retries: int = 2
    gateway_id: str = "gateway-001"
    require_timestamp: bool = True
    default_key_type: str = ED25519
    service_url: str = "http://localhost:3002"
    auth_url: str = "http://localhost:3001"
    forward_timeout_seconds: float = 30.0
    gateway_secret_name: str = GATEWAY_HMAC_SECRET
    credential_secret_name: str = CREDENTIAL_SECRET

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ProtocolConfig":
        """Build a config from ``ZEROTRUST_*`` environment variables."""
        env = os.environ if environ is None else environ
        d = cls()
        config = cls(
            replay_window_seconds=_env_int(env, "ZEROTRUST_REPLAY_WINDOW", d.replay_window_seconds),
            login_replay_window_seconds=_env_int(env, "ZEROTRUST_LOGIN_WINDOW", d.login_replay_window_seconds),
            credential_ttl_seconds=_env_int(env, "ZEROTRUST_CREDENTIAL_TTL", d.credential_ttl_seconds),
            key_cache_ttl_seconds=_env_int(env, "ZEROTRUST_KEY_CACHE_TTL", d.key_cache_ttl_seconds),
            padding_target_bytes=_env_int(env, "ZEROTRUST_PADDING_TARGET", d.padding_target_bytes),
            resolver_timeout_seconds=_env_float(env, "ZEROTRUST_RESOLVER_TIMEOUT", d.resolver_timeout_seconds),
            resolver_retries=_env_int(env, "ZEROTRUST_RESOLVER_RETRIES", d.resolver_retries),
            gateway_id=env.get("ZEROTRUST_GATEWAY_ID", d.gateway_id),
            require_timestamp=_env_bool(env, "ZEROTRUST_REQUIRE_TIMESTAMP", d.require_timestamp),
            default_key_type=env.get("ZEROTRUST_KEY_TYPE", d.default_key_type),
            service_url=env.get("ZEROTRUST_SERVICE_URL", d.service_url),
            auth_url=env.get("ZEROTRUST_AUTH_URL", d.auth_url),
            forward_timeout_seconds=_env_float(env, "ZEROTRUST_FORWARD_TIMEOUT", d.forward_timeout_seconds),
        )
        config.validate()
        return config

    def validate(self) -> "ProtocolConfig":
        """
        Check internal consistency.

        Raises:
            ValueError: On a non-positive window/TTL, a cache TTL longer than
                the credential TTL, or an unknown key type
        """
        for name in (
            "replay_window_seconds",
            "login_replay_window_seconds",
            "credential_ttl_seconds",
            "key_cache_ttl_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.resolver_timeout_seconds <= 0:
            raise ValueError("resolver_timeout_seconds must be positive")
        if self.resolver_retries < 0:
            raise ValueError("resolver_retries must be >= 0")
        if self.padding_target_bytes < 0:
            raise ValueError("padding_target_bytes must be >= 0")
        # a cached key must never outlive the credentials that snapshot it
        if self.key_cache_ttl_seconds > self.credential_ttl_seconds:
            raise ValueError(
                f"key_cache_ttl_seconds ({self.key_cache_ttl_seconds}) exceeds "
                f"credential_ttl_seconds ({self.credential_ttl_seconds})"
            )
        if self.default_key_type not in SCHEMES:
            raise ValueError(f"Unknown key type: {self.default_key_type}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================
# Feature Flags
# ============================================================

def is_production() -> bool:
    """Check if running in production mode."""
    return ENV == "prod"


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("ZEROTRUST_DEBUG", "").lower() in ("1", "true", "yes")
