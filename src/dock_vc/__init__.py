"""
dock-vc - Verifiable Credentials issuance and verification.

Supports:
- Ed25519Signature2018, EcdsaSecp256k1Signature2019 and Sr25519Signature2020 proofs
- Credential and Presentation issuance and verification
- Dock revocation registries (CredentialStatusList2017)
- JSON schema validation of credential subjects, including ledger schemas
"""

from dock_vc.credentials import (
    VerifyOptions,
    is_verified_credential,
    issue_credential,
    verify_credential,
)
from dock_vc.did_resolver import DIDDocument, DIDResolutionError, DIDResolver, StaticResolver
from dock_vc.presentations import (
    create_presentation,
    is_verified_presentation,
    sign_presentation,
    verify_presentation,
)
from dock_vc.proofs import VerificationResult
from dock_vc.revocation import (
    InMemoryRevocationRegistry,
    RegistryNotFound,
    RevocationFormatError,
    RevocationServiceRequired,
    build_credential_status,
    check_revocation_status,
    compute_revocation_id,
)
from dock_vc.schema import (
    Schema,
    SchemaFetchError,
    SchemaResolutionError,
    SchemaResolver,
    SchemaServiceRequired,
    SchemaValidationError,
    StaticSchemaService,
    resolve_schema,
    validate_credential_schema,
)
from dock_vc.suites import KeyDescriptor, KeyType, UnsupportedKeyType, select_suite

__version__ = "0.1.0"

__all__ = [
    "VerifyOptions",
    "VerificationResult",
    "issue_credential",
    "verify_credential",
    "is_verified_credential",
    "create_presentation",
    "sign_presentation",
    "verify_presentation",
    "is_verified_presentation",
    "KeyDescriptor",
    "KeyType",
    "select_suite",
    "UnsupportedKeyType",
    "DIDDocument",
    "DIDResolver",
    "StaticResolver",
    "DIDResolutionError",
    "InMemoryRevocationRegistry",
    "build_credential_status",
    "check_revocation_status",
    "compute_revocation_id",
    "RevocationServiceRequired",
    "RevocationFormatError",
    "RegistryNotFound",
    "Schema",
    "SchemaResolver",
    "StaticSchemaService",
    "resolve_schema",
    "validate_credential_schema",
    "SchemaFetchError",
    "SchemaResolutionError",
    "SchemaServiceRequired",
    "SchemaValidationError",
]
