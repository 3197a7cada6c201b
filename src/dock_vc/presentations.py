"""
Verifiable Presentations.

A presentation bundles credentials under a holder's authentication proof.
The proof binds a verifier supplied challenge (and optionally a domain) so
that a captured presentation cannot be replayed in another session.
"""

from __future__ import annotations

import copy
from typing import Any

from dock_vc.credentials import VerifyOptions, verify_credential_proof
from dock_vc.did_resolver import DIDResolutionError, Resolver
from dock_vc.proofs import (
    ProofPurpose,
    VerificationResult,
    sign_document,
    verify_document,
)
from dock_vc.revocation import check_revocation_status, is_revocation_check_required
from dock_vc.schema import SchemaValidationError, get_and_validate_schema_if_present
from dock_vc.suites import KeyDescriptor, all_suites, select_suite

CREDENTIALS_CONTEXT = "https://www.w3.org/2018/credentials/v1"


def _credentials_of(presentation: dict[str, Any]) -> list[dict[str, Any]]:
    credentials = presentation.get("verifiableCredential") or []
    if isinstance(credentials, dict):
        return [credentials]
    return list(credentials)


def create_presentation(
    verifiable_credential: dict[str, Any] | list[dict[str, Any]],
    id: str | None = None,
    holder: str | None = None,
) -> dict[str, Any]:
    """Create an unsigned Verifiable Presentation.

    Args:
        verifiable_credential: A credential or a list of them.
        id: Optional presentation id.
        holder: Optional holder DID.
    """
    if isinstance(verifiable_credential, dict):
        verifiable_credential = [verifiable_credential]

    presentation: dict[str, Any] = {
        "@context": [CREDENTIALS_CONTEXT],
        "type": ["VerifiablePresentation"],
        "verifiableCredential": copy.deepcopy(list(verifiable_credential)),
    }
    if id is not None:
        presentation["id"] = id
    if holder is not None:
        presentation["holder"] = holder
    return presentation


async def sign_presentation(
    presentation: dict[str, Any],
    key: KeyDescriptor,
    challenge: str,
    domain: str | None = None,
    resolver: Resolver | None = None,
    compact_proof: bool = True,
) -> dict[str, Any]:
    """Sign a Verifiable Presentation with an authentication proof.

    Args:
        presentation: The presentation to sign. Not modified.
        key: The holder's signing key.
        challenge: Verifier supplied challenge, unique per session.
        domain: Optional intended verifier.
        resolver: If given, the key must be an authentication method of
            its controller's DID Document.
        compact_proof: Whether to write the proof with compact terms.

    Returns:
        The signed presentation.

    Raises:
        UnsupportedKeyType: If the key type is not recognized.
        DIDResolutionError: If the key is not an authentication method.
        ValueError: If no challenge is given.
    """
    if not challenge:
        raise ValueError("A challenge is required to sign a presentation")
    suite = select_suite(key)

    if resolver is not None:
        did_document = await resolver.resolve(key.controller)
        if key.id not in did_document.authentication:
            raise DIDResolutionError(
                f"{key.id} is not an authentication method of {key.controller}"
            )

    return sign_document(
        copy.deepcopy(presentation),
        suite,
        ProofPurpose.AUTHENTICATION,
        challenge=challenge,
        domain=domain,
        compact=compact_proof,
    )


async def _verify_envelope(
    presentation: dict[str, Any],
    options: VerifyOptions,
) -> VerificationResult:
    if "VerifiablePresentation" not in presentation.get("type", []):
        return VerificationResult(
            verified=False, error="type must include 'VerifiablePresentation'"
        )

    result = await verify_document(
        presentation,
        all_suites(),
        options.resolver,
        ProofPurpose.AUTHENTICATION,
        challenge=options.challenge,
        domain=options.domain,
        compact=options.compact_proof,
    )

    for credential in _credentials_of(presentation):
        credential_result = await verify_credential_proof(credential, options)
        result.credential_results.append(credential_result)
        if not credential_result.verified and result.verified:
            result.verified = False
            result.error = f"Credential {credential.get('id')}: {credential_result.error}"
    return result


async def verify_presentation(
    presentation: dict[str, Any],
    options: VerifyOptions | None = None,
) -> VerificationResult:
    """Verify a Verifiable Presentation.

    The holder's proof and each credential's proof are checked first. Then,
    credential by credential, revocation and schema; the first credential
    that fails decides the result.

    Args:
        presentation: The signed presentation.
        options: Verification options; ``challenge`` and ``domain`` must
            match the ones the presentation was signed with.

    Returns:
        VerificationResult, verified if the presentation and all its
        credentials are valid and not revoked.

    Raises:
        RevocationServiceRequired: If a revocation check applies but no Dock
            revocation service is configured.
        SchemaServiceRequired: If a schema API without the Dock schema service
            is configured and a credential declares a schema.
    """
    options = options or VerifyOptions()
    result = await _verify_envelope(presentation, options)
    if not result.verified:
        return result

    for credential in _credentials_of(presentation):
        if is_revocation_check_required(
            credential.get("credentialStatus"),
            options.force_revocation_check,
            options.revocation_api,
        ):
            revocation_result = await check_revocation_status(credential, options.revocation_api)
            if not revocation_result.verified:
                return revocation_result

        try:
            await get_and_validate_schema_if_present(credential, options.schema_api)
        except SchemaValidationError as e:
            return VerificationResult(verified=False, error=str(e))

    return result


async def is_verified_presentation(
    presentation: dict[str, Any],
    options: VerifyOptions | None = None,
) -> bool:
    """Check that a presentation and all its credentials are valid and not revoked."""
    result = await verify_presentation(presentation, options)
    return result.verified
