"""
Signature suites and suite selection.

A suite holds the algorithm-specific logic for producing and checking the
signature of a linked-data proof:

- Ed25519Signature2018 (Ed25519VerificationKey2018)
- EcdsaSecp256k1Signature2019 (EcdsaSecp256k1VerificationKey2019)
- Sr25519Signature2020 (Sr25519VerificationKey2020)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import base58
import sr25519
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)


class UnsupportedKeyType(ValueError):
    """Raised when a key descriptor declares an unknown algorithm tag."""

    def __init__(self, key_type: str) -> None:
        super().__init__(f"Unknown key type {key_type}.")
        self.key_type = key_type


class KeyType(str, Enum):
    """Verification key types, one per supported algorithm."""

    ED25519 = "Ed25519VerificationKey2018"
    SR25519 = "Sr25519VerificationKey2020"
    ECDSA_SECP256K1 = "EcdsaSecp256k1VerificationKey2019"


@dataclass(frozen=True)
class KeyDescriptor:
    """A signing key and the DID that controls it.

    ``type`` is kept as the raw tag so that unknown tags survive until
    ``select_suite`` rejects them.
    """

    id: str
    controller: str
    type: str
    public_key: bytes
    private_key: bytes | None = None

    @classmethod
    def from_key_doc(cls, key_doc: dict[str, Any]) -> KeyDescriptor:
        """Create a KeyDescriptor from a ``publicKeyBase58`` style key document."""
        private_key = key_doc.get("privateKeyBase58")
        return cls(
            id=key_doc["id"],
            controller=key_doc["controller"],
            type=key_doc["type"],
            public_key=base58.b58decode(key_doc["publicKeyBase58"]),
            private_key=base58.b58decode(private_key) if private_key else None,
        )

    def to_public_key_entry(self) -> dict[str, str]:
        """Render the DID Document ``publicKey`` entry for this key."""
        return {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
            "publicKeyBase58": base58.b58encode(self.public_key).decode(),
        }


class SignatureSuite:
    """Base class for signature suites.

    A suite built without a key can only verify.
    """

    proof_type: str = ""
    verification_key_type: KeyType
    alg: str = ""

    def __init__(self, key: KeyDescriptor | None = None) -> None:
        self.key = key
        self.verification_method = key.id if key is not None else None

    def sign(self, data: bytes) -> bytes:
        """Sign ``data`` with the bound private key."""
        if self.key is None or not self.key.private_key:
            raise ValueError(f"{self.proof_type} suite has no private key to sign with")
        return self._sign(self.key, data)

    def _sign(self, key: KeyDescriptor, data: bytes) -> bytes:
        raise NotImplementedError

    def verify(self, data: bytes, signature: bytes, public_key: bytes) -> bool:
        """Check ``signature`` over ``data`` against a raw public key."""
        raise NotImplementedError


class Ed25519Signature2018(SignatureSuite):
    proof_type = "Ed25519Signature2018"
    verification_key_type = KeyType.ED25519
    alg = "EdDSA"

    def _sign(self, key: KeyDescriptor, data: bytes) -> bytes:
        # Key documents may carry the 64 byte seed||public form
        private_key = Ed25519PrivateKey.from_private_bytes(key.private_key[:32])
        return private_key.sign(data)

    def verify(self, data: bytes, signature: bytes, public_key: bytes) -> bool:
        try:
            Ed25519PublicKey.from_public_bytes(public_key).verify(signature, data)
        except InvalidSignature:
            return False
        return True


class EcdsaSecp256k1Signature2019(SignatureSuite):
    """ECDSA over secp256k1 with SHA-256; signatures are raw r||s."""

    proof_type = "EcdsaSecp256k1Signature2019"
    verification_key_type = KeyType.ECDSA_SECP256K1
    alg = "ES256K"

    def _sign(self, key: KeyDescriptor, data: bytes) -> bytes:
        private_key = ec.derive_private_key(
            int.from_bytes(key.private_key, byteorder="big"), ec.SECP256K1()
        )
        r, s = decode_dss_signature(private_key.sign(data, ec.ECDSA(hashes.SHA256())))
        return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")

    def verify(self, data: bytes, signature: bytes, public_key: bytes) -> bool:
        if len(signature) != 64:
            return False
        r = int.from_bytes(signature[:32], byteorder="big")
        s = int.from_bytes(signature[32:], byteorder="big")
        ec_public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), public_key)
        try:
            ec_public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
        except InvalidSignature:
            return False
        return True


class Sr25519Signature2020(SignatureSuite):
    proof_type = "Sr25519Signature2020"
    verification_key_type = KeyType.SR25519
    alg = "EdDSA"

    def _sign(self, key: KeyDescriptor, data: bytes) -> bytes:
        if len(key.private_key) == 32:
            keypair = sr25519.pair_from_seed(key.private_key)
        else:
            keypair = (key.public_key, key.private_key)
        return sr25519.sign(keypair, data)

    def verify(self, data: bytes, signature: bytes, public_key: bytes) -> bool:
        return bool(sr25519.verify(signature, data, public_key))


_SUITE_BY_KEY_TYPE: dict[KeyType, type[SignatureSuite]] = {
    KeyType.ED25519: Ed25519Signature2018,
    KeyType.SR25519: Sr25519Signature2020,
    KeyType.ECDSA_SECP256K1: EcdsaSecp256k1Signature2019,
}


def select_suite(key: KeyDescriptor) -> SignatureSuite:
    """Get the signature suite for a key descriptor.

    Args:
        key: The signing key.

    Returns:
        A suite bound to the key, with the key id as verification method.

    Raises:
        UnsupportedKeyType: If the key type is not recognized.
    """
    try:
        key_type = KeyType(key.type)
    except ValueError:
        raise UnsupportedKeyType(key.type) from None
    return _SUITE_BY_KEY_TYPE[key_type](key)


def all_suites() -> list[SignatureSuite]:
    """Verification-only instances of every recognized suite."""
    return [Ed25519Signature2018(), EcdsaSecp256k1Signature2019(), Sr25519Signature2020()]
