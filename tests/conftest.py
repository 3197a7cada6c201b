"""Shared fixtures for dock-vc tests."""

import os

import pytest
import sr25519
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from dock_vc import InMemoryRevocationRegistry, KeyDescriptor, StaticResolver
from dock_vc.schema import StaticSchemaService


ISSUER_DID = "did:dock:0x" + "11" * 32
HOLDER_DID = "did:dock:0x" + "22" * 32
REGISTRY_ID = "0x" + "ab" * 32


def make_ed25519_key(did: str) -> KeyDescriptor:
    private_key = Ed25519PrivateKey.generate()
    return KeyDescriptor(
        id=f"{did}#keys-1",
        controller=did,
        type="Ed25519VerificationKey2018",
        public_key=private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw),
        private_key=private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption()),
    )


def make_secp256k1_key(did: str) -> KeyDescriptor:
    private_key = ec.generate_private_key(ec.SECP256K1())
    return KeyDescriptor(
        id=f"{did}#keys-1",
        controller=did,
        type="EcdsaSecp256k1VerificationKey2019",
        public_key=private_key.public_key().public_bytes(
            Encoding.X962, PublicFormat.CompressedPoint
        ),
        private_key=private_key.private_numbers().private_value.to_bytes(32, byteorder="big"),
    )


def make_sr25519_key(did: str) -> KeyDescriptor:
    public_key, private_key = sr25519.pair_from_seed(os.urandom(32))
    return KeyDescriptor(
        id=f"{did}#keys-1",
        controller=did,
        type="Sr25519VerificationKey2020",
        public_key=public_key,
        private_key=private_key,
    )


KEY_FACTORIES = {
    "ed25519": make_ed25519_key,
    "secp256k1": make_secp256k1_key,
    "sr25519": make_sr25519_key,
}


def did_document_for(key: KeyDescriptor) -> dict:
    """A Dock style DID Document holding a single key."""
    return {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": key.controller,
        "publicKey": [key.to_public_key_entry()],
        "authentication": [key.id],
        "assertionMethod": [key.id],
    }


class FakeSchemaService(StaticSchemaService):
    """Ledger schema service that records every read."""

    def __init__(self, schemas: dict | None = None):
        super().__init__({
            schema_id: {"id": schema_id, "author": "did:dock:0x" + "33" * 32, "schema": schema}
            for schema_id, schema in (schemas or {}).items()
        })
        self.calls: list[str] = []

    async def get(self, schema_id: str) -> dict:
        self.calls.append(schema_id)
        return await super().get(schema_id)


class RecordingRevocationRegistry(InMemoryRevocationRegistry):
    """In-memory registry that records every query."""

    def __init__(self):
        super().__init__()
        self.queries: list[tuple[str, str]] = []

    async def get_is_revoked(self, registry_id: str, revocation_id: str) -> bool:
        self.queries.append((registry_id, revocation_id))
        return await super().get_is_revoked(registry_id, revocation_id)


@pytest.fixture
def issuer_key():
    """Ed25519 issuer key."""
    return make_ed25519_key(ISSUER_DID)


@pytest.fixture
def holder_key():
    """Sr25519 holder key."""
    return make_sr25519_key(HOLDER_DID)


@pytest.fixture
def resolver(issuer_key, holder_key):
    """Resolver knowing the issuer and the holder."""
    return StaticResolver({
        issuer_key.controller: did_document_for(issuer_key),
        holder_key.controller: did_document_for(holder_key),
    })


@pytest.fixture
def unsigned_credential():
    """An unsigned alumni credential."""
    return {
        "@context": [
            "https://www.w3.org/2018/credentials/v1",
            "https://www.w3.org/2018/credentials/examples/v1",
        ],
        "id": "https://example.com/credentials/1872",
        "type": ["VerifiableCredential", "AlumniCredential"],
        "issuanceDate": "2020-03-18T19:23:24Z",
        "credentialSubject": {
            "id": HOLDER_DID,
            "alumniOf": "Example University",
        },
    }


@pytest.fixture
def revocation_registry():
    """Revocation registry with one empty registry."""
    registry = RecordingRevocationRegistry()
    registry.new_registry(REGISTRY_ID, controllers={ISSUER_DID})
    return registry
