"""
Verification Pipeline

The backend's single entry point for forwarded requests. Three layers run
strictly in order, each failing closed, and the first failure ends the
request:

    Edge (HMAC-sealed envelope)
        ↓
    1. gateway_verification         envelope HMAC, shared edge secret
        ↓
    2. token_verification           credential + freshness of data.timestamp
        ↓
    3. user_signature_verification  key rotation check, holder-of-key proof
        ↓
    Business logic (verified identity + unpadded logical payload)

Nothing inside ``gateway_envelope`` is trusted or interpreted before the
envelope HMAC verifies. The signed body the client produced is

    {"token": <credential>, "data": <logical payload>}

and the single canonical freshness timestamp is ``data.timestamp`` (integer
Unix seconds).

Each stage raises a ProtocolError at the failing check; the runner turns it
into a StageResult. Any unexpected exception fails closed as InternalError.
Rejection details go to the audit log only, never to the caller.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import ProtocolConfig
from .credentials import CredentialAuthority
from .envelope import ENVELOPE_KEY, HMAC_KEY, ORIGINAL_REQUEST, authenticate
from .errors import (
    GatewayAuthFailed,
    InternalError,
    InvalidUserSignature,
    KeyRotated,
    Layer,
    MalformedRequest,
    ProtocolError,
    ReplayDetected,
)
from .logging_config import audit_log, set_request_id
from .padding import unpad
from .resolver import PublicKeyCacheEntry, PublicKeyResolver
from .secret_provider import SecretProvider
from .signing import verify
from .util import now_epoch
from .validation import generate_request_id


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity proven by all three layers."""
    user_id: Any
    username: str

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "username": self.username}


@dataclass
class VerificationContext:
    """Per-request state threaded through the stages. Never shared."""
    body: Any
    request_id: str
    envelope: Optional[Dict[str, Any]] = None
    original_request: Optional[Dict[str, Any]] = None
    signed_body: Optional[Dict[str, Any]] = None
    user_signature: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    claims: Optional[Dict[str, Any]] = None
    key_entry: Optional[PublicKeyCacheEntry] = None
    passed_layers: List[str] = field(default_factory=list)

    @property
    def username(self) -> Optional[str]:
        return self.claims.get("username") if self.claims else None


@dataclass
class StageResult:
    """Tagged outcome of one stage: ok with the context, or the error."""
    ok: bool
    context: VerificationContext
    error: Optional[ProtocolError] = None

    @classmethod
    def success(cls, context: VerificationContext) -> "StageResult":
        return cls(ok=True, context=context)

    @classmethod
    def failure(cls, context: VerificationContext, error: ProtocolError) -> "StageResult":
        return cls(ok=False, context=context, error=error)


@dataclass
class VerificationDecision:
    """Final pipeline outcome."""
    accepted: bool
    request_id: str
    passed_layers: List[str] = field(default_factory=list)
    error: Optional[ProtocolError] = None
    identity: Optional[VerifiedIdentity] = None
    claims: Optional[Dict[str, Any]] = None
    payload: Optional[Dict[str, Any]] = None

    @property
    def layer(self) -> Optional[str]:
        if self.error is None or self.error.layer is None:
            return None
        return self.error.layer.value

    @property
    def status_code(self) -> int:
        return 200 if self.accepted else self.error.status_code

    def to_response(self) -> Dict[str, Any]:
        """Wire body for a rejection (coarse error + layer only)."""
        if self.accepted:
            return {"success": True}
        return self.error.to_response()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "request_id": self.request_id,
            "passed_layers": list(self.passed_layers),
            "layer": self.layer,
            "error": self.error.code if self.error else None,
            "identity": self.identity.to_dict() if self.identity else None,
        }


Stage = Tuple[Layer, Callable[[VerificationContext], None]]


class VerificationPipeline:
    """
    Runs the three verification layers over a forwarded request body.

    Usage:
        pipeline = VerificationPipeline(config, secrets, authority, resolver)
        decision = pipeline.verify(body)
        if decision.accepted:
            handle(decision.identity, decision.payload)
    """

    def __init__(
        self,
        config: ProtocolConfig,
        secret_provider: SecretProvider,
        authority: CredentialAuthority,
        resolver: PublicKeyResolver,
        clock: Callable[[], int] = now_epoch,
    ):
        self.config = config
        self.secret_provider = secret_provider
        self.authority = authority
        self.resolver = resolver
        self.clock = clock
        self.stages: List[Stage] = [
            (Layer.GATEWAY, self._verify_gateway),
            (Layer.TOKEN, self._verify_token),
            (Layer.USER_SIGNATURE, self._verify_user_signature),
        ]

    def verify(self, body: Any, request_id: Optional[str] = None) -> VerificationDecision:
        """Run all layers. Never raises."""
        return self._run(body, self.stages, request_id)

    def verify_gateway_only(self, body: Any, request_id: Optional[str] = None) -> VerificationDecision:
        """Run only the gateway layer (edge connectivity checks)."""
        return self._run(body, self.stages[:1], request_id)

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    def _run(self, body: Any, stages: List[Stage], request_id: Optional[str]) -> VerificationDecision:
        request_id = set_request_id(request_id or generate_request_id())
        context = VerificationContext(body=body, request_id=request_id)

        for layer, stage in stages:
            result = self._run_stage(layer, stage, context)
            if not result.ok:
                error = result.error
                audit_log.verification_failed(
                    layer=error.layer.value if error.layer else None,
                    code=error.code,
                    detail=error.detail,
                    passed_layers=list(context.passed_layers),
                    username=context.username,
                )
                return VerificationDecision(
                    accepted=False,
                    request_id=request_id,
                    passed_layers=list(context.passed_layers),
                    error=error,
                )
            context.passed_layers.append(layer.value)
            audit_log.layer_passed(layer.value, context.username)

        identity = None
        if context.claims is not None:
            identity = VerifiedIdentity(
                user_id=context.claims.get("userId"),
                username=context.claims["username"],
            )
            audit_log.verification_accepted(identity.username, identity.user_id, list(context.passed_layers))

        return VerificationDecision(
            accepted=True,
            request_id=request_id,
            passed_layers=list(context.passed_layers),
            identity=identity,
            claims=context.claims,
            payload=context.data,
        )

    def _run_stage(
        self,
        layer: Layer,
        stage: Callable[[VerificationContext], None],
        context: VerificationContext,
    ) -> StageResult:
        try:
            stage(context)
            return StageResult.success(context)
        except ProtocolError as e:
            if e.layer is None:
                e.layer = layer
            return StageResult.failure(context, e)
        except Exception as e:
            # Any error = fail closed
            return StageResult.failure(
                context, InternalError(f"{layer.value}: {type(e).__name__}: {e}")
            )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _verify_gateway(self, context: VerificationContext) -> None:
        body = context.body
        if not isinstance(body, dict):
            raise MalformedRequest("body is not an object", Layer.GATEWAY)
        envelope = body.get(ENVELOPE_KEY)
        tag = body.get(HMAC_KEY)
        if not isinstance(envelope, dict) or not isinstance(tag, str):
            raise MalformedRequest("missing gateway envelope or HMAC", Layer.GATEWAY)

        secret = self.secret_provider.get(self.config.gateway_secret_name)
        if not authenticate(envelope, tag, secret):
            raise GatewayAuthFailed("envelope HMAC mismatch")

        context.envelope = envelope

    def _verify_token(self, context: VerificationContext) -> None:
        original = context.envelope.get(ORIGINAL_REQUEST)
        if not isinstance(original, dict):
            raise MalformedRequest("missing original_request", Layer.TOKEN)
        if "protected_payload" not in original:
            raise MalformedRequest("missing protected_payload", Layer.TOKEN)
        user_signature = original.get("user_signature")
        if not isinstance(user_signature, str):
            raise MalformedRequest("missing user_signature", Layer.TOKEN)

        signed_body = unpad(original["protected_payload"])
        if not isinstance(signed_body, dict):
            raise MalformedRequest("signed body is not an object", Layer.TOKEN)
        token = signed_body.get("token")
        data = signed_body.get("data")
        if not isinstance(token, str) or not isinstance(data, dict):
            raise MalformedRequest("signed body must carry token and data", Layer.TOKEN)

        context.original_request = original
        context.signed_body = signed_body
        context.user_signature = user_signature
        context.data = data

        context.claims = self.authority.verify(token)
        self._check_freshness(data)

    def _check_freshness(self, data: Dict[str, Any]) -> None:
        if "timestamp" not in data:
            if self.config.require_timestamp:
                raise ReplayDetected("data.timestamp missing")
            return
        timestamp = data["timestamp"]
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise MalformedRequest("data.timestamp is not an integer", Layer.TOKEN)
        now = self.clock()
        delta = abs(now - timestamp)
        if delta > self.config.replay_window_seconds:
            raise ReplayDetected(
                f"timestamp {timestamp} is {delta}s from now {now} "
                f"(window {self.config.replay_window_seconds}s)"
            )

    def _verify_user_signature(self, context: VerificationContext) -> None:
        claims = context.claims
        username = claims["username"]
        entry = self.resolver.resolve_entry(username)
        context.key_entry = entry

        # checked before any signature math: a valid proof under a new key still fails
        if entry.public_key != claims["publicKeySnapshot"] or entry.key_type != claims["keyType"]:
            audit_log.key_rotation_detected(username, claims["publicKeySnapshot"], entry.public_key)
            raise KeyRotated(f"snapshot key differs from current key for {username}")

        if not verify(context.signed_body, context.user_signature, entry.public_key, entry.key_type):
            raise InvalidUserSignature(f"signature does not verify under current key of {username}")
