"""Tests for signature suites and suite selection."""

import base58
import pytest

from dock_vc.suites import (
    EcdsaSecp256k1Signature2019,
    Ed25519Signature2018,
    KeyDescriptor,
    Sr25519Signature2020,
    UnsupportedKeyType,
    all_suites,
    select_suite,
)

from conftest import ISSUER_DID, KEY_FACTORIES


class TestSelectSuite:
    """Tests for suite selection from key descriptors."""

    @pytest.mark.parametrize(
        "key_name, suite_class",
        [
            ("ed25519", Ed25519Signature2018),
            ("secp256k1", EcdsaSecp256k1Signature2019),
            ("sr25519", Sr25519Signature2020),
        ],
    )
    def test_selects_suite_for_key_type(self, key_name, suite_class):
        """Test each key type maps to its suite, bound to the key id."""
        key = KEY_FACTORIES[key_name](ISSUER_DID)
        suite = select_suite(key)

        assert isinstance(suite, suite_class)
        assert suite.verification_method == key.id
        assert suite.key is key

    def test_unknown_key_type(self):
        """Test that an unknown key type names the offending tag."""
        key = KeyDescriptor(
            id=f"{ISSUER_DID}#keys-1",
            controller=ISSUER_DID,
            type="RsaVerificationKey2018",
            public_key=b"\x00" * 32,
        )

        with pytest.raises(UnsupportedKeyType) as exc_info:
            select_suite(key)

        assert "RsaVerificationKey2018" in str(exc_info.value)
        assert exc_info.value.key_type == "RsaVerificationKey2018"

    def test_all_suites(self):
        """Test the verification set covers every proof type."""
        proof_types = [suite.proof_type for suite in all_suites()]
        assert proof_types == [
            "Ed25519Signature2018",
            "EcdsaSecp256k1Signature2019",
            "Sr25519Signature2020",
        ]


class TestSignVerify:
    """Tests for raw signing and verification."""

    @pytest.mark.parametrize("key_name", ["ed25519", "secp256k1", "sr25519"])
    def test_sign_and_verify(self, key_name):
        """Test a signature verifies against the signer's public key."""
        key = KEY_FACTORIES[key_name](ISSUER_DID)
        suite = select_suite(key)
        signature = suite.sign(b"message")

        assert suite.verify(b"message", signature, key.public_key) is True

    @pytest.mark.parametrize("key_name", ["ed25519", "secp256k1", "sr25519"])
    def test_tampered_message(self, key_name):
        """Test a signature does not verify for another message."""
        key = KEY_FACTORIES[key_name](ISSUER_DID)
        suite = select_suite(key)
        signature = suite.sign(b"message")

        assert suite.verify(b"other message", signature, key.public_key) is False

    def test_secp256k1_signature_is_raw(self):
        """Test secp256k1 signatures are 64 byte r||s."""
        suite = select_suite(KEY_FACTORIES["secp256k1"](ISSUER_DID))
        assert len(suite.sign(b"message")) == 64

    def test_verify_only_suite_cannot_sign(self):
        """Test a suite without a key refuses to sign."""
        with pytest.raises(ValueError):
            Ed25519Signature2018().sign(b"message")


class TestKeyDescriptor:
    """Tests for key document parsing."""

    def test_from_key_doc(self):
        """Test base58 key documents decode to raw bytes."""
        key = KEY_FACTORIES["ed25519"](ISSUER_DID)
        key_doc = {
            **key.to_public_key_entry(),
            "privateKeyBase58": base58.b58encode(key.private_key).decode(),
        }

        assert KeyDescriptor.from_key_doc(key_doc) == key

    def test_from_key_doc_without_private_key(self):
        """Test a public-only key document."""
        key = KEY_FACTORIES["secp256k1"](ISSUER_DID)
        parsed = KeyDescriptor.from_key_doc(key.to_public_key_entry())

        assert parsed.private_key is None
        assert parsed.public_key == key.public_key

    def test_ed25519_accepts_seed_and_public_key(self):
        """Test 64 byte seed||public Ed25519 private keys sign like the seed."""
        key = KEY_FACTORIES["ed25519"](ISSUER_DID)
        long_key = KeyDescriptor(
            id=key.id,
            controller=key.controller,
            type=key.type,
            public_key=key.public_key,
            private_key=key.private_key + key.public_key,
        )

        signature = select_suite(long_key).sign(b"message")
        assert Ed25519Signature2018().verify(b"message", signature, key.public_key)
