"""
Verification Pipeline Test Suite

Layer ordering, fail-fast behaviour and the error taxonomy, driven through
a fully wired alice/bob stack with a fake clock.

Critical invariants tested:
    - a request is accepted only after all three layers pass, in order
    - |now - data.timestamp| <= 60 s is accepted, 61 s is rejected
    - a credential is rejected once its key snapshot is stale, even when the
      request signature is valid under the new key
"""

import copy
import unittest

from zerotrust import (
    SECP256K1,
    GatewayAuthFailed,
    IdentityNotFound,
    InternalError,
    InvalidTokenSignature,
    InvalidUserSignature,
    KeyRotated,
    MalformedRequest,
    ReplayDetected,
    RequestBuilder,
    ResolverUnavailable,
    StaticSecretProvider,
    TokenExpired,
    TokenRevoked,
    VerificationPipeline,
    canonical_size,
    generate_keypair,
    issue_credential,
)
from zerotrust.errors import Layer
from zerotrust.ledger import Identity

from helpers import CREDENTIAL_SECRET, FlakyLedger, Stack

ALL_LAYERS = [
    "gateway_verification",
    "token_verification",
    "user_signature_verification",
]


class PipelineTestCase(unittest.TestCase):

    key_type = "ed25519"

    def setUp(self):
        self.stack = Stack(key_type=self.key_type)
        self.addCleanup(self.stack.close)
        self.token = self.stack.login_alice()

    def assertRejected(self, decision, error_cls, layer):
        self.assertFalse(decision.accepted)
        self.assertIsInstance(decision.error, error_cls)
        self.assertEqual(decision.layer, layer)
        self.assertIsNone(decision.identity)
        self.assertIsNone(decision.payload)


class TestHappyPath(PipelineTestCase):

    def test_alice_pays_bob(self):
        body = self.stack.forward(self.stack.transfer_request(self.token, 500))
        decision = self.stack.pipeline.verify(body)

        self.assertTrue(decision.accepted, decision.to_dict())
        self.assertEqual(decision.passed_layers, ALL_LAYERS)
        self.assertEqual(decision.identity.username, "alice")
        self.assertEqual(decision.identity.user_id, self.stack.alice.id)
        self.assertEqual(decision.payload["receiver"], "bob")
        self.assertEqual(decision.payload["amount"], 500)
        self.assertEqual(decision.payload["timestamp"], self.stack.clock())
        self.assertEqual(decision.claims["publicKeySnapshot"], self.stack.alice_keys.public_key)
        self.assertEqual(decision.status_code, 200)

    def test_payload_padded_to_target(self):
        request = self.stack.transfer_request(self.token)
        self.assertEqual(canonical_size(request["protected_payload"]), 4096)

    def test_payload_has_no_padding_fields(self):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        payload = self.stack.pipeline.verify(body).payload
        self.assertNotIn("padding", payload)
        self.assertNotIn("originalSize", payload)

    def test_request_id_propagated(self):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        decision = self.stack.pipeline.verify(body, request_id="req-123")
        self.assertEqual(decision.request_id, "req-123")

    def test_gateway_only(self):
        body = self.stack.forward(self.stack.transfer_request("garbage-token"))
        decision = self.stack.pipeline.verify_gateway_only(body)
        self.assertTrue(decision.accepted)
        self.assertEqual(decision.passed_layers, ["gateway_verification"])
        self.assertIsNone(decision.identity)


class TestSecp256k1Path(PipelineTestCase):

    key_type = SECP256K1

    def test_accepted(self):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        decision = self.stack.pipeline.verify(body)
        self.assertTrue(decision.accepted)
        self.assertEqual(decision.claims["keyType"], SECP256K1)


class TestReplayWindow(PipelineTestCase):

    def _verify_after(self, seconds):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        self.stack.clock.advance(seconds)
        return self.stack.pipeline.verify(body)

    def test_59_seconds_accepted(self):
        self.assertTrue(self._verify_after(59).accepted)

    def test_60_seconds_accepted(self):
        self.assertTrue(self._verify_after(60).accepted)

    def test_61_seconds_rejected(self):
        decision = self._verify_after(61)
        self.assertRejected(decision, ReplayDetected, "token_verification")
        self.assertEqual(decision.passed_layers, ["gateway_verification"])

    def test_future_timestamp_rejected(self):
        request = self.stack.transfer_request(self.token, timestamp=self.stack.clock() + 61)
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, ReplayDetected, "token_verification")

    def test_future_timestamp_within_window(self):
        request = self.stack.transfer_request(self.token, timestamp=self.stack.clock() + 60)
        self.assertTrue(self.stack.pipeline.verify(self.stack.forward(request)).accepted)

    def test_missing_timestamp_rejected(self):
        request = self.stack.raw_request(self.token, {"action": "balance"})
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, ReplayDetected, "token_verification")

    def test_missing_timestamp_allowed_when_not_required(self):
        stack = Stack(require_timestamp=False)
        self.addCleanup(stack.close)
        request = stack.raw_request(stack.login_alice(), {"action": "balance"})
        self.assertTrue(stack.pipeline.verify(stack.forward(request)).accepted)

    def test_non_integer_timestamp(self):
        for ts in (str(self.stack.clock()), float(self.stack.clock()), True):
            request = self.stack.raw_request(self.token, {"action": "balance", "timestamp": ts})
            decision = self.stack.pipeline.verify(self.stack.forward(request))
            self.assertRejected(decision, MalformedRequest, "token_verification")
            self.assertEqual(decision.status_code, 400)

    def test_configured_window(self):
        stack = Stack(replay_window_seconds=10)
        self.addCleanup(stack.close)
        body = stack.forward(stack.transfer_request(stack.login_alice()))
        stack.clock.advance(11)
        self.assertIsInstance(stack.pipeline.verify(body).error, ReplayDetected)


class TestKeyRotation(PipelineTestCase):

    def test_rotation_rejects_old_credential_even_with_new_key_signature(self):
        # warm the cache with the old key
        first = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(self.token)))
        self.assertTrue(first.accepted)

        new_keys = generate_keypair()
        self.stack.ledger.rotate_key("alice", new_keys.public_key)
        new_client = RequestBuilder("alice", new_keys.private_key, clock=self.stack.clock)

        request = self.stack.transfer_request(self.token, builder=new_client)
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, KeyRotated, "user_signature_verification")
        self.assertEqual(decision.passed_layers, ALL_LAYERS[:2])

    def test_rotation_rejects_old_key_signature(self):
        self.stack.ledger.rotate_key("alice", generate_keypair().public_key)
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(self.token)))
        self.assertRejected(decision, KeyRotated, "user_signature_verification")

    def test_fresh_login_after_rotation(self):
        new_keys = generate_keypair()
        self.stack.ledger.rotate_key("alice", new_keys.public_key)
        new_client = RequestBuilder("alice", new_keys.private_key, clock=self.stack.clock)
        proof = new_client.login_request()
        token = self.stack.login_service.login(proof["username"], proof["timestamp"], proof["signature"]).token

        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(token, builder=new_client)))
        self.assertTrue(decision.accepted)

    def test_key_type_change_is_rotation(self):
        new_keys = generate_keypair(SECP256K1)
        self.stack.ledger.rotate_key("alice", new_keys.public_key, SECP256K1)
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(self.token)))
        self.assertIsInstance(decision.error, KeyRotated)


class TestGatewayLayer(PipelineTestCase):

    def setUp(self):
        super().setUp()
        self.body = self.stack.forward(self.stack.transfer_request(self.token))

    def test_tampered_metadata(self):
        body = copy.deepcopy(self.body)
        body["gateway_envelope"]["gateway_metadata"]["client_ip"] = "6.6.6.6"
        decision = self.stack.pipeline.verify(body)
        self.assertRejected(decision, GatewayAuthFailed, "gateway_verification")
        self.assertEqual(decision.passed_layers, [])

    def test_tampered_amount_after_sealing(self):
        body = copy.deepcopy(self.body)
        body["gateway_envelope"]["original_request"]["protected_payload"]["data"]["data"]["amount"] = 50000
        self.assertRejected(self.stack.pipeline.verify(body), GatewayAuthFailed, "gateway_verification")

    def test_wrong_secret(self):
        self.stack.secrets.set("gateway_hmac_secret", "not-S")
        self.assertRejected(self.stack.pipeline.verify(self.body), GatewayAuthFailed, "gateway_verification")

    def test_missing_hmac(self):
        body = {"gateway_envelope": self.body["gateway_envelope"]}
        decision = self.stack.pipeline.verify(body)
        self.assertRejected(decision, MalformedRequest, "gateway_verification")
        self.assertEqual(decision.status_code, 400)

    def test_unwrapped_request(self):
        decision = self.stack.pipeline.verify(self.stack.transfer_request(self.token))
        self.assertRejected(decision, MalformedRequest, "gateway_verification")

    def test_non_object_body(self):
        for body in (None, [], "x", 3):
            self.assertRejected(self.stack.pipeline.verify(body), MalformedRequest, "gateway_verification")


class TestTokenLayer(PipelineTestCase):

    def test_tampered_amount_before_edge(self):
        request = self.stack.transfer_request(self.token)
        request["protected_payload"]["data"]["data"]["amount"] = 50000
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, InvalidUserSignature, "user_signature_verification")

    def test_missing_token(self):
        request = self.stack.raw_request(None, {"action": "balance", "timestamp": self.stack.clock()})
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, MalformedRequest, "token_verification")

    def test_data_not_object(self):
        request = self.stack.raw_request(self.token, ["balance"])
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, MalformedRequest, "token_verification")

    def test_protected_payload_not_padded(self):
        request = self.stack.transfer_request(self.token)
        request["protected_payload"] = {"token": self.token}
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, MalformedRequest, "token_verification")

    def test_expired_token(self):
        self.stack.clock.advance(3601)
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(self.token)))
        self.assertRejected(decision, TokenExpired, "token_verification")

    def test_token_from_other_authority(self):
        forged = issue_credential(self.stack.alice, "some-other-authority-secret-0123456789", now=self.stack.clock())
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(forged)))
        self.assertRejected(decision, InvalidTokenSignature, "token_verification")

    def test_revoked_token(self):
        self.stack.secrets.revoke("alice")
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(self.token)))
        self.assertRejected(decision, TokenRevoked, "token_verification")

    def test_token_checked_before_freshness(self):
        request = self.stack.transfer_request("not.a.token")
        self.stack.clock.advance(120)
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertEqual(decision.error.code, "TOKEN_MALFORMED")


class TestUserSignatureLayer(PipelineTestCase):

    def test_signed_by_someone_else(self):
        mallory = RequestBuilder("alice", self.stack.bob_keys.private_key, clock=self.stack.clock)
        request = self.stack.transfer_request(self.token, builder=mallory)
        decision = self.stack.pipeline.verify(self.stack.forward(request))
        self.assertRejected(decision, InvalidUserSignature, "user_signature_verification")

    def test_bobs_token_with_alices_signature(self):
        bob_token = issue_credential(self.stack.bob, CREDENTIAL_SECRET, now=self.stack.clock())
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(bob_token)))
        self.assertRejected(decision, InvalidUserSignature, "user_signature_verification")

    def test_unknown_identity(self):
        ghost = Identity(id=99, username="ghost", public_key=generate_keypair().public_key)
        token = issue_credential(ghost, CREDENTIAL_SECRET, now=self.stack.clock())
        decision = self.stack.pipeline.verify(self.stack.forward(self.stack.transfer_request(token)))
        self.assertRejected(decision, IdentityNotFound, "user_signature_verification")


class TestFailClosed(unittest.TestCase):

    def test_resolver_unavailable(self):
        stack = Stack(ledger=FlakyLedger(failures=100))
        self.addCleanup(stack.close)
        # login reads the ledger directly, then the resolver keeps failing
        stack.ledger.failures = 0
        token = stack.login_alice()
        stack.ledger.failures = 100
        stack.ledger.calls = 0

        decision = stack.pipeline.verify(stack.forward(stack.transfer_request(token)))
        self.assertFalse(decision.accepted)
        self.assertIsInstance(decision.error, ResolverUnavailable)
        self.assertEqual(decision.status_code, 503)
        self.assertEqual(decision.layer, "user_signature_verification")

    def test_missing_secret_is_internal_error(self):
        stack = Stack()
        self.addCleanup(stack.close)
        token = stack.login_alice()
        pipeline = VerificationPipeline(
            stack.config,
            StaticSecretProvider({"jwt_secret": CREDENTIAL_SECRET}),
            stack.authority,
            stack.resolver,
            clock=stack.clock,
        )
        decision = pipeline.verify(stack.forward(stack.transfer_request(token)))
        self.assertFalse(decision.accepted)
        self.assertIsInstance(decision.error, InternalError)
        self.assertEqual(decision.status_code, 500)
        self.assertEqual(decision.to_response(), {"success": False, "error": "Internal verification error"})


class TestErrorResponses(PipelineTestCase):

    def test_response_is_coarse(self):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        self.stack.clock.advance(61)
        decision = self.stack.pipeline.verify(body)
        response = decision.to_response()
        self.assertEqual(set(response), {"success", "error", "layer"})
        self.assertEqual(response["layer"], "token_verification")
        self.assertNotIn(str(self.stack.clock()), response["error"])

    def test_detail_only_in_audit_log(self):
        body = self.stack.forward(self.stack.transfer_request(self.token))
        self.stack.clock.advance(61)
        with self.assertLogs("zerotrust.audit", level="WARNING") as logs:
            decision = self.stack.pipeline.verify(body)
        self.assertIn("VERIFICATION_FAILED", logs.output[0])
        self.assertIn("61s", logs.records[0].extra_fields["detail"])
        self.assertNotIn("61s", str(decision.to_response()))

    def test_layer_values(self):
        self.assertEqual(Layer.GATEWAY.value, "gateway_verification")
        self.assertEqual(Layer.TOKEN.value, "token_verification")
        self.assertEqual(Layer.USER_SIGNATURE.value, "user_signature_verification")


if __name__ == "__main__":
    unittest.main()
