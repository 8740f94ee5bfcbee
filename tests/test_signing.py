"""
Canonical Signer Test Suite

Holder-of-key signatures over canonical payloads for both schemes.
verify() must never raise.
"""

import unittest

from zerotrust import (
    ED25519,
    SECP256K1,
    CanonicalSigner,
    generate_keypair,
    public_key_from_private,
    sign,
    verify,
)

PAYLOAD = {"token": "abc.def.ghi", "data": {"action": "transfer", "receiver": "bob", "amount": 500, "timestamp": 1700000000}}


class SchemeContract:
    """Behaviour shared by every signature scheme."""

    key_type = None

    def setUp(self):
        self.keys = generate_keypair(self.key_type)
        self.other = generate_keypair(self.key_type)

    def test_keypair_tagged(self):
        self.assertEqual(self.keys.key_type, self.key_type)

    def test_sign_verify(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        self.assertTrue(verify(PAYLOAD, sig, self.keys.public_key, self.key_type))

    def test_signature_is_128_hex(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        self.assertEqual(len(sig), 128)
        int(sig, 16)

    def test_key_order_does_not_matter(self):
        sig = sign({"a": 1, "b": 2}, self.keys.private_key, self.key_type)
        self.assertTrue(verify({"b": 2, "a": 1}, sig, self.keys.public_key, self.key_type))

    def test_tampered_payload_rejected(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        tampered = {"token": PAYLOAD["token"], "data": dict(PAYLOAD["data"], amount=5000)}
        self.assertFalse(verify(tampered, sig, self.keys.public_key, self.key_type))

    def test_wrong_key_rejected(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        self.assertFalse(verify(PAYLOAD, sig, self.other.public_key, self.key_type))

    def test_flipped_signature_rejected(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        flipped = ("0" if sig[10] != "0" else "1").join([sig[:10], sig[11:]])
        self.assertFalse(verify(PAYLOAD, flipped, self.keys.public_key, self.key_type))

    def test_malformed_inputs_return_false(self):
        sig = sign(PAYLOAD, self.keys.private_key, self.key_type)
        cases = [
            (PAYLOAD, "not-hex", self.keys.public_key),
            (PAYLOAD, sig[:-2], self.keys.public_key),
            (PAYLOAD, sig, self.keys.public_key[:-2]),
            (PAYLOAD, sig, ""),
            (PAYLOAD, None, self.keys.public_key),
            ({"x": float("nan")}, sig, self.keys.public_key),
        ]
        for payload, signature, public_key in cases:
            self.assertFalse(verify(payload, signature, public_key, self.key_type))

    def test_public_key_from_private(self):
        self.assertEqual(public_key_from_private(self.keys.private_key, self.key_type), self.keys.public_key)

    def test_canonical_signer(self):
        signer = CanonicalSigner(self.key_type)
        sig = signer.sign(PAYLOAD, self.keys.private_key)
        self.assertTrue(signer.verify(PAYLOAD, sig, self.keys.public_key))


class TestEd25519(SchemeContract, unittest.TestCase):
    key_type = ED25519

    def test_deterministic(self):
        self.assertEqual(
            sign(PAYLOAD, self.keys.private_key),
            sign(PAYLOAD, self.keys.private_key),
        )

    def test_key_sizes(self):
        self.assertEqual(len(self.keys.private_key), 64)
        self.assertEqual(len(self.keys.public_key), 64)

    def test_accepts_64_byte_private_key(self):
        expanded = self.keys.private_key + self.keys.public_key
        sig = sign(PAYLOAD, expanded)
        self.assertTrue(verify(PAYLOAD, sig, self.keys.public_key))

    def test_bad_private_key_raises(self):
        with self.assertRaises(ValueError):
            sign(PAYLOAD, "abcd")


class TestSecp256k1(SchemeContract, unittest.TestCase):
    key_type = SECP256K1

    def test_compressed_public_key(self):
        self.assertEqual(len(self.keys.public_key), 66)
        self.assertIn(self.keys.public_key[:2], ("02", "03"))

    def test_cross_scheme_rejected(self):
        sig = sign(PAYLOAD, self.keys.private_key, SECP256K1)
        self.assertFalse(verify(PAYLOAD, sig, self.keys.public_key, ED25519))


class TestSchemeRegistry(unittest.TestCase):

    def test_unknown_key_type_sign_raises(self):
        keys = generate_keypair()
        with self.assertRaises(ValueError):
            sign(PAYLOAD, keys.private_key, "rsa")

    def test_unknown_key_type_verify_false(self):
        keys = generate_keypair()
        sig = sign(PAYLOAD, keys.private_key)
        self.assertFalse(verify(PAYLOAD, sig, keys.public_key, "rsa"))

    def test_unknown_key_type_generate_raises(self):
        with self.assertRaises(ValueError):
            generate_keypair("dsa")


if __name__ == "__main__":
    unittest.main()
