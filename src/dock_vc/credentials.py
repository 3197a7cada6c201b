"""
Verifiable Credentials issuance and verification.

Verification runs, in order, stopping at the first failure:
1. Schema validation (if the credential declares a schema and a schema API
   is configured)
2. Structure and proof verification
3. Revocation check (if the credential has a status and the check applies)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Mapping

from dock_vc.did_resolver import Resolver
from dock_vc.proofs import (
    ProofPurpose,
    VerificationResult,
    sign_document,
    verify_document,
)
from dock_vc.revocation import (
    RevocationService,
    check_revocation_status,
    is_revocation_check_required,
)
from dock_vc.schema import (
    SchemaService,
    SchemaValidationError,
    get_and_validate_schema_if_present,
)
from dock_vc.suites import KeyDescriptor, all_suites, select_suite


@dataclass
class VerifyOptions:
    """Options to verify credentials and presentations.

    Attributes:
        resolver: Resolves the DIDs of issuers and holders.
        compact_proof: Whether proofs use compact terms.
        force_revocation_check: Check revocation for every credential with a
            status even without a revocation API. Setting this to False can
            let revoked credentials verify.
        revocation_api: Revocation services keyed by provider (``"dock"``).
        schema_api: Schema services keyed by provider (``"dock"``).
        challenge: Expected presentation challenge.
        domain: Expected presentation domain.
    """

    resolver: Resolver | None = None
    compact_proof: bool = True
    force_revocation_check: bool = True
    revocation_api: Mapping[str, RevocationService] | None = None
    schema_api: Mapping[str, SchemaService] | None = None
    challenge: str | None = None
    domain: str | None = None


def validate_structure(credential: dict[str, Any], require_proof: bool = True) -> list[str]:
    """Validate basic VC structure.

    Returns:
        List of validation errors (empty if valid).
    """
    errors: list[str] = []

    if "@context" not in credential:
        errors.append("Missing @context")
    if "id" not in credential:
        errors.append("Missing id")
    if "type" not in credential:
        errors.append("Missing type")
    elif "VerifiableCredential" not in credential.get("type", []):
        errors.append("type must include 'VerifiableCredential'")
    if "issuer" not in credential:
        errors.append("Missing issuer")
    if "issuanceDate" not in credential:
        errors.append("Missing issuanceDate")
    if "credentialSubject" not in credential:
        errors.append("Missing credentialSubject")
    if require_proof and "proof" not in credential:
        errors.append("Missing proof")

    return errors


def issue_credential(
    key: KeyDescriptor,
    credential: dict[str, Any],
    compact_proof: bool = True,
) -> dict[str, Any]:
    """Issue a Verifiable Credential.

    Args:
        key: The issuer's signing key. Its controller becomes the issuer.
        credential: Credential to be signed. Not modified.
        compact_proof: Whether to write the proof with compact terms.

    Returns:
        The signed credential.

    Raises:
        UnsupportedKeyType: If the key type is not recognized.
        ValueError: If the credential is malformed.
    """
    suite = select_suite(key)
    cred = copy.deepcopy(credential)
    cred["issuer"] = key.controller

    errors = validate_structure(cred, require_proof=False)
    if errors:
        raise ValueError(f"Invalid credential: {'; '.join(errors)}")

    return sign_document(cred, suite, ProofPurpose.ASSERTION_METHOD, compact=compact_proof)


async def verify_credential_proof(
    credential: dict[str, Any],
    options: VerifyOptions,
) -> VerificationResult:
    """Check a credential's structure and proof, without schema or revocation."""
    errors = validate_structure(credential)
    if errors:
        return VerificationResult(verified=False, error="; ".join(errors))

    return await verify_document(
        credential,
        all_suites(),
        options.resolver,
        ProofPurpose.ASSERTION_METHOD,
        compact=options.compact_proof,
    )


async def verify_credential(
    credential: dict[str, Any],
    options: VerifyOptions | None = None,
) -> VerificationResult:
    """Verify a Verifiable Credential.

    Args:
        credential: The credential to verify.
        options: Verification options.

    Returns:
        VerificationResult, verified if the credential is valid, matches its
        schema and is not revoked.

    Raises:
        RevocationServiceRequired: If a revocation check applies but no Dock
            revocation service is configured.
        SchemaServiceRequired: If a schema API without the Dock schema service
            is configured and the credential declares a schema.
    """
    options = options or VerifyOptions()

    try:
        await get_and_validate_schema_if_present(credential, options.schema_api)
    except SchemaValidationError as e:
        return VerificationResult(verified=False, error=str(e))

    result = await verify_credential_proof(credential, options)

    if result.verified and is_revocation_check_required(
        credential.get("credentialStatus"),
        options.force_revocation_check,
        options.revocation_api,
    ):
        revocation_result = await check_revocation_status(credential, options.revocation_api)
        # Keep the proof results unless revocation fails
        if not revocation_result.verified:
            return revocation_result

    return result


async def is_verified_credential(
    credential: dict[str, Any],
    options: VerifyOptions | None = None,
) -> bool:
    """Check that a credential is valid and not revoked."""
    result = await verify_credential(credential, options)
    return result.verified
