"""
Dock revocation checking.

A revocable credential carries a status of the form::

    "credentialStatus": {
        "id": "rev-reg:dock:0x<32 byte hex registry id>",
        "type": "CredentialStatusList2017"
    }

Its revocation id is the 32 byte blake2b hash of the credential id. The
credential is revoked when the revocation service reports the
(registry id, revocation id) pair as revoked.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from dock_vc.proofs import VerificationResult

log = logging.getLogger(__name__)

REV_REG_TYPE = "CredentialStatusList2017"
DOCK_REV_REG_QUALIFIER = "rev-reg:dock:"

# Byte sizes of registry ids and revocation ids
REV_REG_ID_BYTE_SIZE = 32
REV_ENTRY_BYTE_SIZE = 32

DOCK_PROVIDER = "dock"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")


class RevocationError(Exception):
    """Base class for revocation errors."""


class RevocationServiceRequired(RevocationError):
    """Raised when a revocation check is needed but no Dock service was given."""


class RevocationFormatError(RevocationError):
    """Raised when a credential status is present but malformed."""


class RegistryNotFound(RevocationError):
    """Raised when a revocation registry does not exist."""


class RevocationService(Protocol):
    """Answers revocation queries against the registries."""

    async def get_is_revoked(self, registry_id: str, revocation_id: str) -> bool: ...


@dataclass(frozen=True)
class RevocationStatusClaim:
    """The (registry, revocation id) pair to query for a credential."""

    registry_id: str
    revocation_id: str


def is_hex_with_byte_size(value: Any, byte_size: int) -> bool:
    """Check that ``value`` is a ``0x`` prefixed hex string of ``byte_size`` bytes."""
    return (
        isinstance(value, str)
        and _HEX_RE.match(value) is not None
        and len(value) == 2 + 2 * byte_size
    )


def is_credential_revocation_formatted(credential: dict[str, Any]) -> bool:
    """Check if credential has Dock specific revocation status."""
    status = credential.get("credentialStatus")
    if not isinstance(status, dict):
        return False
    status_id = status.get("id")
    return (
        status.get("type") == REV_REG_TYPE
        and isinstance(status_id, str)
        and status_id.startswith(DOCK_REV_REG_QUALIFIER)
        and is_hex_with_byte_size(status_id[len(DOCK_REV_REG_QUALIFIER):], REV_REG_ID_BYTE_SIZE)
    )


def is_revocation_check_required(
    credential_status: Any,
    force_check: bool,
    revocation_api: Mapping[str, RevocationService] | None,
) -> bool:
    """Decide whether a revocation check applies.

    True when the credential has a status and either the check is forced or
    a revocation API was supplied. An empty mapping still counts as
    supplied.

    Warning: with ``force_check`` False and no API, revocable credentials
    verify without a revocation check.
    """
    return credential_status is not None and (force_check or revocation_api is not None)


def compute_revocation_id(credential_id: str) -> str:
    """Hash a credential id into its revocation id.

    Returns:
        ``0x`` prefixed hex of ``REV_ENTRY_BYTE_SIZE`` bytes.
    """
    digest = hashlib.blake2b(credential_id.encode("utf-8"), digest_size=REV_ENTRY_BYTE_SIZE)
    return "0x" + digest.hexdigest()


def get_revocation_status_claim(credential: dict[str, Any]) -> RevocationStatusClaim:
    """Build the revocation query for a credential.

    Raises:
        RevocationFormatError: If the credential status is not Dock formatted
            or the credential has no id to derive the revocation id from.
    """
    if not is_credential_revocation_formatted(credential):
        raise RevocationFormatError(
            "The credential status does not have the format required by Dock"
        )
    credential_id = credential.get("id")
    if not isinstance(credential_id, str) or not credential_id:
        raise RevocationFormatError("A revocable credential must have an id")
    return RevocationStatusClaim(
        registry_id=credential["credentialStatus"]["id"][len(DOCK_REV_REG_QUALIFIER):],
        revocation_id=compute_revocation_id(credential_id),
    )


async def check_revocation_status(
    credential: dict[str, Any],
    revocation_api: Mapping[str, RevocationService] | None,
) -> VerificationResult:
    """Check if the credential is revoked.

    Args:
        credential: The credential to check.
        revocation_api: Revocation services keyed by provider. Only
            ``"dock"`` is supported.

    Returns:
        VerificationResult, verified if the credential is not revoked.

    Raises:
        RevocationServiceRequired: If no Dock revocation service is given.
        RegistryNotFound: If the registry does not exist.
    """
    if revocation_api is None or DOCK_PROVIDER not in revocation_api:
        raise RevocationServiceRequired("Only Dock revocation support is present as of now.")

    try:
        claim = get_revocation_status_claim(credential)
    except RevocationFormatError as e:
        return VerificationResult(verified=False, error=str(e))

    revoked = await revocation_api[DOCK_PROVIDER].get_is_revoked(
        claim.registry_id, claim.revocation_id
    )
    if revoked:
        log.info(f"Credential {credential.get('id')} is revoked in registry {claim.registry_id}")
        return VerificationResult(verified=False, error="Revocation check failed")
    return VerificationResult(verified=True)


def build_credential_status(registry_id: str) -> dict[str, str]:
    """Return the ``credentialStatus`` for a credential revocable on Dock."""
    return {"id": f"{DOCK_REV_REG_QUALIFIER}{registry_id}", "type": REV_REG_TYPE}


@dataclass
class _Registry:
    controllers: frozenset[str]
    add_only: bool
    revoked: set[str] = field(default_factory=set)
    last_modified: int = 0


class InMemoryRevocationRegistry:
    """Revocation service backed by in-process registries.

    Mirrors the ledger's registry semantics: registries have controllers and
    an add-only flag, and every change bumps the registry's modification
    counter.
    """

    def __init__(self) -> None:
        self._registries: dict[str, _Registry] = {}
        self._counter = 0

    def _get(self, registry_id: str) -> _Registry:
        registry = self._registries.get(registry_id)
        if registry is None:
            raise RegistryNotFound(f"Could not find revocation registry: {registry_id}")
        return registry

    def _touch(self, registry: _Registry) -> None:
        self._counter += 1
        registry.last_modified = self._counter

    def new_registry(
        self,
        registry_id: str,
        controllers: set[str] | frozenset[str] = frozenset(),
        add_only: bool = False,
    ) -> None:
        """Create a registry.

        Args:
            registry_id: 32 byte hex registry id.
            controllers: DIDs allowed to update the registry.
            add_only: If True credentials can be revoked but not unrevoked.
        """
        if not is_hex_with_byte_size(registry_id, REV_REG_ID_BYTE_SIZE):
            raise ValueError(f"Registry id must be {REV_REG_ID_BYTE_SIZE} bytes of hex")
        if registry_id in self._registries:
            raise ValueError(f"Revocation registry {registry_id} already exists")
        registry = _Registry(controllers=frozenset(controllers), add_only=add_only)
        self._registries[registry_id] = registry
        self._touch(registry)

    def remove_registry(self, registry_id: str) -> None:
        registry = self._get(registry_id)
        if registry.add_only:
            raise ValueError(f"Revocation registry {registry_id} is add-only")
        del self._registries[registry_id]

    def revoke(self, registry_id: str, *revocation_ids: str) -> None:
        registry = self._get(registry_id)
        registry.revoked.update(revocation_ids)
        self._touch(registry)

    def unrevoke(self, registry_id: str, *revocation_ids: str) -> None:
        registry = self._get(registry_id)
        if registry.add_only:
            raise ValueError(f"Revocation registry {registry_id} is add-only")
        registry.revoked.difference_update(revocation_ids)
        self._touch(registry)

    def revoke_credential(self, registry_id: str, credential: dict[str, Any]) -> str:
        """Revoke a credential by its id and return the revocation id."""
        revocation_id = compute_revocation_id(credential["id"])
        self.revoke(registry_id, revocation_id)
        return revocation_id

    def get_revocation_registry(self, registry_id: str) -> dict[str, Any]:
        """Get the registry policy, add-only flag and last modification."""
        registry = self._get(registry_id)
        return {
            "controllers": sorted(registry.controllers),
            "add_only": registry.add_only,
            "last_modified": registry.last_modified,
        }

    async def get_is_revoked(self, registry_id: str, revocation_id: str) -> bool:
        return revocation_id in self._get(registry_id).revoked
