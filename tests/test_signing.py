"""
SecureVault Signing Test Suite

Recoverable signatures, structural validation and signer recovery.
"""

import json
import os
import tempfile
import unittest

from coincurve import PrivateKey

from securevault import (
    AuthoritySigner,
    RecoverableSignature,
    SignatureFormatError,
    authorization_digest,
    generate_signing_key,
    normalize_identity,
    recover_signer,
    signing_hash,
)
from securevault.signing import SECP256K1_HALF_N, SECP256K1_N


class TestRecoverableSignature(unittest.TestCase):
    """Structured signature type."""

    def setUp(self):
        self.signer = AuthoritySigner.generate()
        self.digest = authorization_digest("vault", "bob", 10, 1, 1)
        self.signature = self.signer.sign_digest(self.digest)

    def test_fields(self):
        sig = self.signature
        self.assertIn(sig.v, (27, 28))
        self.assertTrue(0 < sig.r < SECP256K1_N)
        self.assertTrue(0 < sig.s <= SECP256K1_HALF_N)
        self.assertEqual(sig.recovery_id, sig.v - 27)

    def test_bytes_roundtrip(self):
        raw = self.signature.to_bytes()
        self.assertEqual(len(raw), 65)
        self.assertEqual(RecoverableSignature.from_bytes(raw), self.signature)
        self.assertEqual(RecoverableSignature.from_hex(self.signature.to_hex()), self.signature)

    def test_raw_recovery_id_accepted(self):
        compact = self.signature.to_compact_recoverable()
        self.assertIn(compact[64], (0, 1))
        self.assertEqual(RecoverableSignature.from_bytes(compact), self.signature)

    def test_wrong_length_rejected(self):
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature.from_bytes(self.signature.to_bytes()[:64])
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature.from_bytes(self.signature.to_bytes() + b"\x00")

    def test_bad_discriminant_rejected(self):
        raw = bytearray(self.signature.to_bytes())
        raw[64] = 29
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature.from_bytes(bytes(raw))

    def test_scalar_range_enforced(self):
        sig = self.signature
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature(r=0, s=sig.s, v=sig.v)
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature(r=SECP256K1_N, s=sig.s, v=sig.v)
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature(r=sig.r, s=0, v=sig.v)

    def test_high_s_rejected(self):
        sig = self.signature
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature(r=sig.r, s=SECP256K1_N - sig.s, v=55 - sig.v)

    def test_non_hex_rejected(self):
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature.from_hex("0xnothex")

    def test_parse_unsupported_type(self):
        with self.assertRaises(SignatureFormatError):
            RecoverableSignature.parse(12345)


class TestRecovery(unittest.TestCase):
    """Signer recovery."""

    def setUp(self):
        self.signer = AuthoritySigner.generate()
        self.digest = authorization_digest("vault", "bob", 10, 1, 1)

    def test_recovers_signer(self):
        sig = self.signer.sign_digest(self.digest)
        self.assertEqual(recover_signer(signing_hash(self.digest), sig), self.signer.identity)

    def test_recovers_from_hex_and_bytes(self):
        sig = self.signer.sign_digest(self.digest)
        message = signing_hash(self.digest)
        self.assertEqual(recover_signer(message, sig.to_hex()), self.signer.identity)
        self.assertEqual(recover_signer(message, sig.to_bytes()), self.signer.identity)

    def test_different_message_recovers_different_identity(self):
        sig = self.signer.sign_digest(self.digest)
        other = signing_hash(authorization_digest("vault", "bob", 11, 1, 1))
        self.assertNotEqual(recover_signer(other, sig), self.signer.identity)

    def test_authorize_matches_sign_digest(self):
        sig = self.signer.authorize("vault", "bob", 10, 1, 1)
        self.assertEqual(recover_signer(signing_hash(self.digest), sig), self.signer.identity)

    def test_message_length_checked(self):
        sig = self.signer.sign_digest(self.digest)
        with self.assertRaises(SignatureFormatError):
            recover_signer(b"short", sig)


class TestIdentities(unittest.TestCase):

    def test_normalize_compressed_and_uncompressed(self):
        key = PrivateKey()
        compressed = key.public_key.format(compressed=True)
        uncompressed = key.public_key.format(compressed=False)
        expected = "0x" + compressed.hex()
        self.assertEqual(normalize_identity(compressed.hex()), expected)
        self.assertEqual(normalize_identity("0x" + uncompressed.hex()), expected)
        self.assertEqual(normalize_identity(uncompressed), expected)

    def test_normalize_rejects_garbage(self):
        for bad in ("", "0x", "0x1234", "zz" * 33, "05" + "11" * 32, None, 7):
            with self.assertRaises(ValueError):
                normalize_identity(bad)

    def test_generate_signing_key(self):
        secret, identity = generate_signing_key()
        self.assertEqual(len(secret), 32)
        self.assertEqual(AuthoritySigner(PrivateKey(secret)).identity, identity)


class TestAuthoritySignerKeyFile(unittest.TestCase):

    def test_dict_roundtrip(self):
        signer = AuthoritySigner.generate(key_id="kid:test")
        restored = AuthoritySigner.from_dict(signer.to_dict())
        self.assertEqual(restored.identity, signer.identity)
        self.assertEqual(restored.key_id, "kid:test")

    def test_identity_mismatch_rejected(self):
        data = AuthoritySigner.generate().to_dict()
        data["identity"] = AuthoritySigner.generate().identity
        with self.assertRaises(ValueError):
            AuthoritySigner.from_dict(data)

    def test_key_file(self):
        signer = AuthoritySigner.generate()
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "key.json")
            with open(path, "w") as f:
                json.dump(signer.to_dict(), f)
            with open(path) as f:
                restored = AuthoritySigner.from_dict(json.load(f))
        self.assertEqual(restored.identity, signer.identity)


if __name__ == "__main__":
    unittest.main()
