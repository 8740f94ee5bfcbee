"""
Shared test fixtures: a controllable clock and a fully wired protocol stack.
"""

import threading

from zerotrust import (
    CredentialAuthority,
    InMemoryLedger,
    LedgerUnavailable,
    LoginService,
    ProtocolConfig,
    PublicKeyResolver,
    RequestBuilder,
    StaticSecretProvider,
    VerificationPipeline,
    build_gateway_metadata,
    generate_keypair,
    pad,
    seal,
    sign,
    wrap,
)
from zerotrust.signing import ED25519

T0 = 1_700_000_000
GATEWAY_SECRET = "S"
CREDENTIAL_SECRET = "credential-secret-for-hs256-tests-0001"


class FakeClock:
    """Integer epoch clock advanced by hand."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


class CountingLedger(InMemoryLedger):
    """InMemoryLedger that counts identity lookups."""

    def __init__(self):
        super().__init__()
        self.lookups = 0

    def lookup_identity(self, username):
        self.lookups += 1
        return super().lookup_identity(username)


class FlakyLedger(InMemoryLedger):
    """Raises LedgerUnavailable for the first ``failures`` lookups."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def lookup_identity(self, username):
        self.calls += 1
        if self.calls <= self.failures:
            raise LedgerUnavailable("ledger connection reset")
        return super().lookup_identity(username)


class BlockingLedger(InMemoryLedger):
    """Lookups block until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def lookup_identity(self, username):
        self.release.wait(5)
        return super().lookup_identity(username)


class GatedLedger(InMemoryLedger):
    """
    Lookups read the identity, set ``read``, then hold the result until
    ``release`` is set. Lets a test rotate a key while a lookup is in flight.
    """

    def __init__(self):
        super().__init__()
        self.read = threading.Event()
        self.release = threading.Event()

    def lookup_identity(self, username):
        identity = super().lookup_identity(username)
        self.read.set()
        self.release.wait(5)
        return identity


class Stack:
    """
    Alice/bob deployment with a fake clock.

    alice starts with 10000 VND, bob with 0.
    """

    def __init__(self, key_type: str = ED25519, ledger: InMemoryLedger = None, **config_overrides):
        self.clock = FakeClock()
        self.config = ProtocolConfig(**config_overrides).validate()
        self.secrets = StaticSecretProvider({
            self.config.gateway_secret_name: GATEWAY_SECRET,
            self.config.credential_secret_name: CREDENTIAL_SECRET,
        })
        self.ledger = ledger if ledger is not None else InMemoryLedger()
        self.alice_keys = generate_keypair(key_type)
        self.bob_keys = generate_keypair(key_type)
        self.alice = self.ledger.register_identity("alice", self.alice_keys.public_key, key_type, 10_000)
        self.bob = self.ledger.register_identity("bob", self.bob_keys.public_key, key_type, 0)

        self.authority = CredentialAuthority(
            self.secrets,
            ttl_seconds=self.config.credential_ttl_seconds,
            clock=self.clock,
        )
        self.resolver = PublicKeyResolver(
            self.ledger,
            ttl_seconds=self.config.key_cache_ttl_seconds,
            lookup_timeout=self.config.resolver_timeout_seconds,
            retries=self.config.resolver_retries,
            max_credential_ttl=self.config.credential_ttl_seconds,
            clock=self.clock,
            sleep=lambda _: None,
        )
        self.resolver.attach(self.ledger)
        self.pipeline = VerificationPipeline(
            self.config, self.secrets, self.authority, self.resolver, clock=self.clock
        )
        self.login_service = LoginService(
            self.ledger,
            self.authority,
            window_seconds=self.config.login_replay_window_seconds,
            clock=self.clock,
        )
        self.alice_client = RequestBuilder(
            "alice", self.alice_keys.private_key, key_type,
            target_size=self.config.padding_target_bytes, clock=self.clock,
        )

    def login_alice(self) -> str:
        proof = self.alice_client.login_request()
        return self.login_service.login(proof["username"], proof["timestamp"], proof["signature"]).token

    def forward(self, request, endpoint: str = "transfer"):
        """Wrap and seal a client request the way the edge does."""
        envelope = wrap(request, build_gateway_metadata(endpoint, self.config.gateway_id, "10.0.0.7", now=self.clock()))
        return seal(envelope, GATEWAY_SECRET)

    def transfer_request(self, token: str, amount: int = 500, builder: RequestBuilder = None, **extra):
        builder = builder or self.alice_client
        return builder.build_request(token, {"action": "transfer", "receiver": "bob", "amount": amount, **extra})

    def raw_request(self, token, data, private_key: str = None, key_type: str = ED25519):
        """Sign and pad an arbitrary signed body without the builder's timestamping."""
        signed_body = {"token": token, "data": data}
        return {
            "meta": {},
            "protected_payload": pad(signed_body, self.config.padding_target_bytes),
            "user_signature": sign(signed_body, private_key or self.alice_keys.private_key, key_type),
        }

    def close(self):
        self.resolver.close()
