"""
Linked data proofs.

Creates and checks the ``proof`` of credentials and presentations.

Proof layout:
1. Proof options (``type``, ``created``, ``verificationMethod``,
   ``proofPurpose`` and, for authentication, ``challenge``/``domain``)
2. Verify data = SHA-256(canonical options) || SHA-256(canonical document)
3. Detached JWS (unencoded payload, RFC 7797) over the verify data

Canonical JSON is sorted keys with compact separators.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from dock_vc.did_resolver import DIDResolutionError, Resolver, did_from_url
from dock_vc.suites import SignatureSuite

log = logging.getLogger(__name__)

_SECURITY = "https://w3id.org/security#"

# Compact proof term -> expanded IRI
_EXPANDED_PROOF_TERMS = {
    "type": "@type",
    "created": "http://purl.org/dc/terms/created",
    "verificationMethod": f"{_SECURITY}verificationMethod",
    "proofPurpose": f"{_SECURITY}proofPurpose",
    "challenge": f"{_SECURITY}challenge",
    "domain": f"{_SECURITY}domain",
    "jws": f"{_SECURITY}jws",
}
_COMPACT_PROOF_TERMS = {v: k for k, v in _EXPANDED_PROOF_TERMS.items()}


class ProofPurpose(str, Enum):
    """Why a proof was made."""

    ASSERTION_METHOD = "assertionMethod"
    AUTHENTICATION = "authentication"


@dataclass
class ProofVerificationResult:
    """Result of checking a single proof."""

    verified: bool
    proof_type: str
    verification_method: str
    proof: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass
class VerificationResult:
    """Verdict of a verification call.

    ``results`` holds the per-proof outcome, ``credential_results`` the
    verdicts of credentials embedded in a presentation.
    """

    verified: bool
    error: str | None = None
    results: list[ProofVerificationResult] = field(default_factory=list)
    credential_results: list[VerificationResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        output: dict[str, Any] = {"verified": self.verified}
        if self.error:
            output["error"] = self.error
        if self.results:
            output["results"] = [
                {
                    "verified": r.verified,
                    "proofType": r.proof_type,
                    "verificationMethod": r.verification_method,
                    "error": r.error,
                }
                for r in self.results
            ]
        if self.credential_results:
            output["credentialResults"] = [r.to_dict() for r in self.credential_results]
        return output


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON serialization used for signing."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(data: str) -> bytes:
    """Decode base64url without padding."""
    padding = 4 - (len(data) % 4)
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data)


def expand_proof(proof: dict[str, Any]) -> dict[str, Any]:
    return {_EXPANDED_PROOF_TERMS.get(k, k): v for k, v in proof.items()}


def compact_proof(proof: dict[str, Any]) -> dict[str, Any]:
    return {_COMPACT_PROOF_TERMS.get(k, k): v for k, v in proof.items()}


def extract_issuer(document: dict[str, Any]) -> str | None:
    """Extract issuer ID from a credential."""
    issuer = document.get("issuer")
    if isinstance(issuer, str):
        return issuer
    if isinstance(issuer, dict):
        return issuer.get("id")
    return None


def create_verify_data(document: dict[str, Any], proof: dict[str, Any]) -> bytes:
    """Bytes covered by the signature of ``proof`` over ``document``."""
    unsigned = {k: v for k, v in document.items() if k != "proof"}
    options = {k: v for k, v in proof.items() if k != "jws"}
    return (
        hashlib.sha256(canonicalize_json(options).encode("utf-8")).digest()
        + hashlib.sha256(canonicalize_json(unsigned).encode("utf-8")).digest()
    )


def _jws_header(alg: str) -> str:
    header = {"alg": alg, "b64": False, "crit": ["b64"]}
    return base64url_encode(canonicalize_json(header).encode("utf-8"))


def sign_document(
    document: dict[str, Any],
    suite: SignatureSuite,
    purpose: ProofPurpose,
    challenge: str | None = None,
    domain: str | None = None,
    compact: bool = True,
) -> dict[str, Any]:
    """Attach a proof to a document.

    Args:
        document: The credential or presentation. Not modified.
        suite: A suite bound to a signing key.
        purpose: The proof purpose.
        challenge: Replay protection value for authentication proofs.
        domain: Intended verifier for authentication proofs.
        compact: Write the proof with compact terms, else expanded IRIs.

    Returns:
        A new document carrying the proof.
    """
    proof: dict[str, Any] = {
        "type": suite.proof_type,
        "created": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "verificationMethod": suite.verification_method,
        "proofPurpose": purpose.value,
    }
    if challenge is not None:
        proof["challenge"] = challenge
    if domain is not None:
        proof["domain"] = domain

    encoded_header = _jws_header(suite.alg)
    signing_input = encoded_header.encode("ascii") + b"." + create_verify_data(document, proof)
    proof["jws"] = f"{encoded_header}..{base64url_encode(suite.sign(signing_input))}"

    signed = {k: v for k, v in document.items() if k != "proof"}
    signed["proof"] = proof if compact else expand_proof(proof)
    return signed


async def verify_document(
    document: dict[str, Any],
    suites: Sequence[SignatureSuite],
    resolver: Resolver | None,
    purpose: ProofPurpose,
    challenge: str | None = None,
    domain: str | None = None,
    compact: bool = True,
) -> VerificationResult:
    """Check every proof on a document.

    Args:
        document: The signed credential or presentation.
        suites: Suites to match proofs against, by proof type.
        resolver: Dereferences the verification method's DID.
        purpose: The proof purpose the proofs must declare.
        challenge: Expected challenge (authentication only).
        domain: Expected domain (authentication only).
        compact: Whether proofs use compact terms. Expanded proofs are
            compacted before checking when False.

    Returns:
        VerificationResult, verified only if every proof verified.
    """
    proofs = document.get("proof")
    if not proofs:
        return VerificationResult(verified=False, error="No proof found")
    if isinstance(proofs, dict):
        proofs = [proofs]

    results: list[ProofVerificationResult] = []
    for proof in proofs:
        if not compact:
            proof = compact_proof(proof)
        results.append(
            await _verify_proof(document, proof, suites, resolver, purpose, challenge, domain)
        )

    failed = next((r for r in results if not r.verified), None)
    return VerificationResult(
        verified=failed is None,
        error=failed.error if failed else None,
        results=results,
    )


async def _verify_proof(
    document: dict[str, Any],
    proof: dict[str, Any],
    suites: Sequence[SignatureSuite],
    resolver: Resolver | None,
    purpose: ProofPurpose,
    challenge: str | None,
    domain: str | None,
) -> ProofVerificationResult:
    proof_type = proof.get("type", "unknown")
    verification_method = proof.get("verificationMethod", "")

    def failure(error: str) -> ProofVerificationResult:
        return ProofVerificationResult(
            verified=False,
            proof_type=proof_type,
            verification_method=verification_method,
            proof=proof,
            error=error,
        )

    suite = next((s for s in suites if s.proof_type == proof_type), None)
    if suite is None:
        return failure(f"No matching suite for proof type {proof_type}")

    if proof.get("proofPurpose") != purpose.value:
        return failure(
            f"Proof purpose {proof.get('proofPurpose')} does not match {purpose.value}"
        )

    if not verification_method:
        return failure("Missing verificationMethod in proof")

    jws = proof.get("jws")
    if not jws:
        return failure("Missing jws in proof")

    if purpose is ProofPurpose.AUTHENTICATION:
        if proof.get("challenge") != challenge:
            return failure("The challenge does not match")
        if domain is not None and proof.get("domain") != domain:
            return failure("The domain does not match")

    if resolver is None:
        return failure(f"No resolver to dereference {verification_method}")

    try:
        did_document = await resolver.resolve(did_from_url(verification_method))
    except DIDResolutionError as e:
        return failure(f"DID resolution failed: {e}")

    vm = did_document.get_verification_method(verification_method)
    if vm is None:
        return failure(
            f"Verification method {verification_method} not found in DID Document"
        )
    if vm.type != suite.verification_key_type.value:
        return failure(f"Key type {vm.type} cannot be used with {suite.proof_type}")

    if purpose is ProofPurpose.ASSERTION_METHOD:
        if extract_issuer(document) != vm.controller:
            return failure("Credential issuer does not match the verification method controller")
        if verification_method not in did_document.assertion_method:
            return failure(f"{verification_method} is not an assertion method")
    elif verification_method not in did_document.authentication:
        return failure(f"{verification_method} is not an authentication method")

    try:
        encoded_header, payload, encoded_signature = jws.split(".")
        header = json.loads(base64url_decode(encoded_header))
        if payload or header.get("b64") is not False or header.get("alg") != suite.alg:
            return failure("Malformed JWS")
        signing_input = encoded_header.encode("ascii") + b"." + create_verify_data(document, proof)
        signature_valid = suite.verify(
            signing_input, base64url_decode(encoded_signature), vm.public_key_bytes()
        )
    except (ValueError, TypeError, DIDResolutionError) as e:
        return failure(f"Signature verification error: {e}")

    log.debug(f"Proof {proof_type} by {verification_method}: valid={signature_valid}")
    if not signature_valid:
        return failure("Invalid signature")

    return ProofVerificationResult(
        verified=True,
        proof_type=proof_type,
        verification_method=verification_method,
        proof=proof,
    )
