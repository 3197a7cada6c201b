"""
DID resolution.

Resolves DIDs to DID Documents. Two resolvers are provided:

- ``DIDResolver`` for the did:web method (https://w3c-ccg.github.io/did-method-web/)
- ``StaticResolver`` for documents held in memory, e.g. DIDs already read from
  the ledger, with an optional fallback resolver.

Any object with an ``async resolve(did)`` method returning a ``DIDDocument``
can be used where a resolver is expected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol
from urllib.parse import quote

import base58
import httpx

log = logging.getLogger(__name__)


class DIDResolutionError(Exception):
    """Raised when DID resolution fails."""


@dataclass
class VerificationMethod:
    """DID Document verification method (a ``publicKey`` entry)."""

    id: str
    type: str
    controller: str
    public_key_base58: str | None = None

    def public_key_bytes(self) -> bytes:
        """Decode the raw public key bytes."""
        if not self.public_key_base58:
            raise DIDResolutionError(f"No publicKeyBase58 in verification method {self.id}")
        return base58.b58decode(self.public_key_base58)


@dataclass
class DIDDocument:
    """W3C DID Document."""

    id: str
    verification_methods: list[VerificationMethod]
    authentication: list[str] = field(default_factory=list)
    assertion_method: list[str] = field(default_factory=list)

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Get a verification method by ID."""
        for vm in self.verification_methods:
            if vm.id == method_id:
                return vm
        return None


class Resolver(Protocol):
    """Anything that can turn a DID into its document."""

    async def resolve(self, did: str) -> DIDDocument: ...


def parse_did_document(data: dict[str, Any], did: str | None = None) -> DIDDocument:
    """Parse a DID Document from JSON.

    Keys are read from both the ``publicKey`` array and the newer
    ``verificationMethod`` array.

    Args:
        data: The raw JSON data.
        did: The expected DID. Not checked when omitted.

    Returns:
        Parsed DIDDocument.

    Raises:
        DIDResolutionError: If the document is invalid.
    """
    doc_id = data.get("id", "")
    if not doc_id:
        raise DIDResolutionError("DID Document has no id")
    if did is not None and doc_id != did:
        raise DIDResolutionError(
            f"DID Document id mismatch: expected {did}, got {doc_id}"
        )

    verification_methods: list[VerificationMethod] = []
    for vm_data in [*data.get("publicKey", []), *data.get("verificationMethod", [])]:
        verification_methods.append(VerificationMethod(
            id=vm_data.get("id", ""),
            type=vm_data.get("type", ""),
            controller=vm_data.get("controller", ""),
            public_key_base58=vm_data.get("publicKeyBase58"),
        ))

    return DIDDocument(
        id=doc_id,
        verification_methods=verification_methods,
        authentication=_parse_verification_relationship(data.get("authentication", [])),
        assertion_method=_parse_verification_relationship(data.get("assertionMethod", [])),
    )


def _parse_verification_relationship(items: list[Any]) -> list[str]:
    """Parse a verification relationship array.

    Items can be either strings (references) or objects (embedded methods).
    Only the ID references are kept.
    """
    result: list[str] = []
    for item in items:
        if isinstance(item, str):
            result.append(item)
        elif isinstance(item, dict) and "id" in item:
            result.append(item["id"])
    return result


def did_from_url(did_url: str) -> str:
    """Strip the fragment from a DID URL, ``did:x:y#keys-1`` -> ``did:x:y``."""
    return did_url.split("#")[0]


class StaticResolver:
    """Resolves DIDs from documents held in memory."""

    def __init__(
        self,
        documents: Mapping[str, DIDDocument | dict[str, Any]] | None = None,
        fallback: Resolver | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            documents: DID -> document, either parsed or raw JSON.
            fallback: Resolver consulted for DIDs not held here.
        """
        self._documents: dict[str, DIDDocument] = {}
        self.fallback = fallback
        for did, doc in (documents or {}).items():
            self.add(doc if isinstance(doc, DIDDocument) else parse_did_document(doc, did))

    def add(self, document: DIDDocument) -> None:
        """Add or replace a document."""
        self._documents[document.id] = document

    async def resolve(self, did: str) -> DIDDocument:
        base_did = did_from_url(did)
        doc = self._documents.get(base_did)
        if doc is not None:
            return doc
        if self.fallback is not None:
            return await self.fallback.resolve(base_did)
        raise DIDResolutionError(f"Could not find DID: {base_did}")


class DIDResolver:
    """Resolver for did:web DID method."""

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the DID resolver.

        Args:
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self._cache: dict[str, DIDDocument] = {}

    def _did_to_url(self, did: str) -> str:
        """Convert a did:web identifier to its resolution URL.

        did:web:example.com -> https://example.com/.well-known/did.json
        did:web:example.com:path:to:doc -> https://example.com/path/to/doc/did.json
        did:web:example.com%3A8080 -> https://example.com:8080/.well-known/did.json

        Raises:
            DIDResolutionError: If the DID format is invalid.
        """
        if not did.startswith("did:web:"):
            raise DIDResolutionError(f"Invalid did:web identifier: {did}")

        domain_path = did_from_url(did[8:])
        parts = domain_path.split(":")

        # First part is the domain (with potential port encoded as %3A)
        domain = parts[0].replace("%3A", ":")

        if len(parts) > 1:
            path = "/" + "/".join(quote(p, safe="") for p in parts[1:]) + "/did.json"
        else:
            path = "/.well-known/did.json"

        return f"https://{domain}{path}"

    async def resolve(self, did: str, use_cache: bool = True) -> DIDDocument:
        """Resolve a did:web identifier to its DID Document.

        Args:
            did: The did:web identifier, optionally with a fragment.
            use_cache: Whether to use cached results.

        Returns:
            The resolved DIDDocument.

        Raises:
            DIDResolutionError: If resolution fails.
        """
        base_did = did_from_url(did)

        if use_cache and base_did in self._cache:
            return self._cache[base_did]

        url = self._did_to_url(did)
        log.debug(f"Resolving {base_did} from {url}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.get(
                    url,
                    headers={"Accept": "application/did+ld+json, application/json"},
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise DIDResolutionError(
                f"HTTP error resolving {did}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise DIDResolutionError(f"Network error resolving {did}: {e}") from e
        except ValueError as e:
            raise DIDResolutionError(f"Invalid JSON in DID Document for {did}") from e

        doc = parse_did_document(data, base_did)

        if use_cache:
            self._cache[base_did] = doc

        return doc

    def clear_cache(self) -> None:
        """Clear the resolution cache."""
        self._cache.clear()
