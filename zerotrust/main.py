"""
Deployment assembled from the environment.

    uvicorn zerotrust.main:gateway_app --port 3000
    uvicorn zerotrust.main:auth_app --port 3001
    uvicorn zerotrust.main:service_app --port 3002

Secrets come from ``ZEROTRUST_GATEWAY_HMAC_SECRET`` and
``ZEROTRUST_JWT_SECRET``. Identities are seeded from the JSON file named by
``ZEROTRUST_USERS_FILE``:

    [{"username": "alice", "public_key": "...", "key_type": "ed25519", "balance": 10000}]

Each process holds its own in-memory ledger, so every process must be given
the same users file.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from fastapi import FastAPI

from .auth_server import create_auth_app
from .config import LOG_JSON, LOG_LEVEL, ProtocolConfig, is_debug, is_production
from .credentials import CredentialAuthority
from .gateway import create_gateway_app
from .ledger import InMemoryLedger
from .logging_config import configure_logging
from .login import LoginService
from .pipeline import VerificationPipeline
from .resolver import PublicKeyResolver
from .secret_provider import EnvSecretProvider, SecretProvider
from .service import create_service_app
from .signing import ED25519

logger = logging.getLogger(__name__)

SECRET_PREFIX = "ZEROTRUST_"


@dataclass
class Deployment:
    config: ProtocolConfig
    secrets: SecretProvider
    ledger: InMemoryLedger
    resolver: PublicKeyResolver
    pipeline: VerificationPipeline
    login_service: LoginService
    gateway_app: FastAPI
    service_app: FastAPI
    auth_app: FastAPI


def load_identities(ledger: InMemoryLedger, path: str) -> int:
    """Register identities from a users file. Returns the number loaded."""
    with open(path, "r", encoding="utf-8") as f:
        users = json.load(f)
    if not isinstance(users, list):
        raise ValueError(f"{path}: expected a list of users")
    for user in users:
        ledger.register_identity(
            user["username"],
            user["public_key"],
            user.get("key_type", ED25519),
            int(user.get("balance", 0)),
        )
    return len(users)


def build_deployment(environ: Optional[Mapping[str, str]] = None) -> Deployment:
    env = os.environ if environ is None else environ
    config = ProtocolConfig.from_env(env)
    secrets = EnvSecretProvider(prefix=SECRET_PREFIX, environ=env)

    ledger = InMemoryLedger()
    users_file = env.get("ZEROTRUST_USERS_FILE")
    if users_file:
        count = load_identities(ledger, users_file)
        logger.info(f"Loaded {count} identities from {users_file}")
    elif is_production():
        logger.warning("ZEROTRUST_USERS_FILE not set; ledger is empty")

    authority = CredentialAuthority(
        secrets,
        secret_name=config.credential_secret_name,
        ttl_seconds=config.credential_ttl_seconds,
    )
    resolver = PublicKeyResolver(
        ledger,
        ttl_seconds=config.key_cache_ttl_seconds,
        lookup_timeout=config.resolver_timeout_seconds,
        retries=config.resolver_retries,
        max_credential_ttl=config.credential_ttl_seconds,
    )
    resolver.attach(ledger)
    pipeline = VerificationPipeline(config, secrets, authority, resolver)
    login_service = LoginService(ledger, authority, window_seconds=config.login_replay_window_seconds)

    return Deployment(
        config=config,
        secrets=secrets,
        ledger=ledger,
        resolver=resolver,
        pipeline=pipeline,
        login_service=login_service,
        gateway_app=create_gateway_app(config, secrets),
        service_app=create_service_app(pipeline, ledger, resolver),
        auth_app=create_auth_app(login_service, ledger),
    )


configure_logging("DEBUG" if is_debug() else LOG_LEVEL, json_format=LOG_JSON)

deployment = build_deployment()
gateway_app = deployment.gateway_app
service_app = deployment.service_app
auth_app = deployment.auth_app
