"""
Credential schemas.

Resolves JSON schemas by id and validates credential subjects against them.

Schema ids are either:
- the JSON Schema draft-07 meta-schema, served from the copy shipped with
  ``jsonschema``
- an http(s) URL, fetched over HTTP
- a ledger id ``blob:dock:<ss58 id>``, fetched through the Dock schema service

Schemas may ``$ref`` other schemas; ``SchemaResolver.import_schema_graph``
pulls in everything a schema depends on before validation.
"""

from __future__ import annotations

import copy
import logging
import secrets
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Protocol
from urllib.parse import urldefrag, urljoin, urlsplit

import httpx
from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match
from jsonschema.protocols import Validator
from jsonschema.validators import validator_for
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT7
from scalecodec.utils.ss58 import ss58_encode

from dock_vc.revocation import DOCK_PROVIDER

log = logging.getLogger(__name__)

BLOB_QUALIFIER = "blob:dock:"
BLOB_ID_MAX_BYTE_SIZE = 32

# JSON schema URIs allow one colon in the scheme, so refs to ledger ids can
# come back as "blob:dock/:<id>"
_MANGLED_BLOB_QUALIFIER = "blob:dock/:"

JSON_SCHEMA_07_URLS = (
    "http://json-schema.org/draft-07/schema",
    "http://json-schema.org/draft-07/schema#",
)
JSON_SCHEMA_07: dict[str, Any] = Draft7Validator.META_SCHEMA

SUBSTRATE_ADDRESS_TYPE = 42


class SchemaError(Exception):
    """Base class for schema errors."""


class SchemaFetchError(SchemaError):
    """Raised when a schema cannot be fetched or is not JSON."""


class SchemaResolutionError(SchemaError):
    """Raised when a schema id cannot be resolved."""


class SchemaServiceRequired(SchemaError):
    """Raised when a schema is to be checked but no Dock schema service was given."""


class SchemaValidationError(SchemaError):
    """Raised when a document fails validation against a schema."""


class SchemaService(Protocol):
    """Reads schemas from the ledger."""

    async def get(self, schema_id: str) -> dict[str, Any]: ...


class SchemaIdKind(Enum):
    META = "meta"
    URL = "url"
    LEDGER = "ledger"


def classify_schema_id(schema_id: str) -> SchemaIdKind:
    """Decide how a schema id resolves.

    Raises:
        SchemaResolutionError: If the id is neither a URL nor a ledger id.
    """
    if schema_id in JSON_SCHEMA_07_URLS:
        return SchemaIdKind.META
    if schema_id.startswith(BLOB_QUALIFIER):
        return SchemaIdKind.LEDGER
    parts = urlsplit(schema_id)
    if parts.scheme in ("http", "https") and parts.netloc:
        return SchemaIdKind.URL
    raise SchemaResolutionError(
        f"Schema id should be a URL or begin with {BLOB_QUALIFIER}: {schema_id}"
    )


def canonical_schema_ref(uri: str) -> str:
    """Undo the punctuation JSON schema references put into ledger ids."""
    if uri.startswith(_MANGLED_BLOB_QUALIFIER):
        return BLOB_QUALIFIER + uri[len(_MANGLED_BLOB_QUALIFIER):]
    if uri.startswith("/" + BLOB_QUALIFIER):
        return uri[1:]
    return uri


def unwrap_schema(document: dict[str, Any]) -> dict[str, Any]:
    """Ledger schema documents carry the JSON schema under ``schema``."""
    inner = document.get("schema")
    return inner if isinstance(inner, dict) else document


def _iter_refs(node: Any) -> Iterator[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str):
                yield value
            else:
                yield from _iter_refs(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_refs(item)


@dataclass
class SchemaValidatorState:
    """Working set of one schema import.

    ``registered`` maps resolved URIs to schemas, ``pending`` holds URIs
    still to fetch. A URI is queued at most once.
    """

    registered: dict[str, dict[str, Any]] = field(default_factory=dict)
    pending: deque[str] = field(default_factory=deque)

    def register(self, uri: str, schema: dict[str, Any]) -> None:
        self.registered[uri] = schema

    def queue_refs(self, schema: dict[str, Any], base_uri: str) -> None:
        for ref in _iter_refs(schema):
            uri = urldefrag(urljoin(base_uri, ref)).url
            # Empty means a ref into the schema's own document; the
            # meta-schema is served by jsonschema's own registry
            if not uri or uri in JSON_SCHEMA_07_URLS:
                continue
            if uri in self.registered or uri in self.pending:
                continue
            self.pending.append(uri)


class SchemaResolver:
    """Resolves schema ids and their references."""

    def __init__(
        self,
        schema_api: Mapping[str, SchemaService] | None = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the schema resolver.

        Args:
            schema_api: Schema services keyed by provider. Only ``"dock"``
                is supported.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.schema_api = schema_api
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    async def resolve(self, schema_id: str) -> dict[str, Any]:
        """Get the JSON schema for an id.

        Raises:
            SchemaResolutionError: If the id cannot be classified.
            SchemaServiceRequired: If a ledger id is given without a Dock service.
            SchemaFetchError: If fetching over HTTP fails.
        """
        kind = classify_schema_id(schema_id)
        if kind is SchemaIdKind.META:
            return copy.deepcopy(JSON_SCHEMA_07)

        if kind is SchemaIdKind.LEDGER:
            if self.schema_api is None or DOCK_PROVIDER not in self.schema_api:
                raise SchemaServiceRequired("Only Dock schema support is present as of now.")
            log.debug(f"Reading schema {schema_id} from the ledger")
            return unwrap_schema(await self.schema_api[DOCK_PROVIDER].get(schema_id))

        return await self._fetch_json(schema_id)

    async def _fetch_json(self, url: str) -> dict[str, Any]:
        log.debug(f"Fetching schema from {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.get(
                    url,
                    headers={"Accept": "application/schema+json, application/json"},
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            raise SchemaFetchError(
                f"HTTP error fetching schema from {url}: {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise SchemaFetchError(f"Network error fetching schema: {e}") from e
        except ValueError as e:
            raise SchemaFetchError(f"Invalid JSON in schema from {url}") from e

        if not isinstance(data, dict):
            raise SchemaFetchError(f"Schema from {url} is not a JSON object")
        return data

    async def import_schema_graph(
        self,
        root_schema: dict[str, Any],
        base_uri: str = "",
    ) -> Validator:
        """Build a validator for a schema and every schema it references.

        References into the schema's own document (``#/definitions/...``)
        are never fetched.

        Args:
            root_schema: The schema to validate against.
            base_uri: Where the schema was read from. Relative references
                resolve against it when the schema has no ``$id``.

        Returns:
            A jsonschema validator with all references registered.
        """
        state = SchemaValidatorState()
        root_id = root_schema.get("$id") or base_uri
        if root_id and "$id" not in root_schema:
            root_schema = {**root_schema, "$id": root_id}
        state.register(root_id, root_schema)
        state.queue_refs(root_schema, root_id)

        while state.pending:
            uri = state.pending.popleft()
            schema = await self.resolve(canonical_schema_ref(uri))
            state.register(uri, schema)
            state.queue_refs(schema, schema.get("$id") or uri)

        registry: Registry = Registry().with_resources(
            (uri, Resource.from_contents(schema, default_specification=DRAFT7))
            for uri, schema in state.registered.items()
            if uri != root_id
        )
        cls = validator_for(root_schema, default=Draft7Validator)
        return cls(root_schema, registry=registry)

    async def get_json_schema_spec(self, json_schema: dict[str, Any]) -> dict[str, Any]:
        """Get the meta-schema named by a schema's ``$schema``."""
        schema_url = json_schema.get("$schema")
        if not schema_url:
            raise SchemaResolutionError("$schema not found in the given JSON")
        return await self.resolve(schema_url)

    async def validate_schema(self, json_schema: dict[str, Any]) -> None:
        """Check a JSON schema against its meta-schema.

        Raises:
            SchemaValidationError: If the schema is not valid.
        """
        spec = await self.get_json_schema_spec(json_schema)
        error = best_match(validator_for(spec, default=Draft7Validator)(spec).iter_errors(json_schema))
        if error is not None:
            raise SchemaValidationError(f"Invalid JSON schema: {error.message}")


async def resolve_schema(
    schema_id: str,
    schema_api: Mapping[str, SchemaService] | None = None,
) -> dict[str, Any]:
    """Convenience function to resolve a schema id."""
    return await SchemaResolver(schema_api).resolve(schema_id)


def create_new_schema_id() -> str:
    """Generate a random ledger schema id."""
    blob_id = ss58_encode(
        secrets.token_bytes(BLOB_ID_MAX_BYTE_SIZE), ss58_format=SUBSTRATE_ADDRESS_TYPE
    )
    return f"{BLOB_QUALIFIER}{blob_id}"


class StaticSchemaService:
    """Dock schema service serving ledger schemas held in memory."""

    def __init__(self, documents: Mapping[str, dict[str, Any]] | None = None) -> None:
        """Initialize the service.

        Args:
            documents: Schema id -> ledger schema document (``id``,
                ``author``, ``schema``) or a bare JSON schema.
        """
        self._documents: dict[str, dict[str, Any]] = dict(documents or {})

    def add(self, document: dict[str, Any]) -> None:
        """Add or replace a ledger schema document, keyed by its ``id``."""
        self._documents[document["id"]] = document

    async def get(self, schema_id: str) -> dict[str, Any]:
        document = self._documents.get(schema_id)
        if document is None:
            raise SchemaResolutionError(f"Could not find schema: {schema_id}")
        return copy.deepcopy(document)


class Schema:
    """A JSON schema to be stored on the ledger."""

    def __init__(self, id: str | None = None) -> None:
        self.id = id or create_new_schema_id()
        self.name = ""
        self.version = "1.0.0"
        self.author: str | None = None
        self.schema: dict[str, Any] | None = None

    async def set_json_schema(
        self,
        json_schema: dict[str, Any],
        resolver: SchemaResolver | None = None,
    ) -> None:
        """Set the JSON schema after checking it against its meta-schema."""
        await (resolver or SchemaResolver()).validate_schema(json_schema)
        self.schema = json_schema

    def set_author(self, did: str) -> None:
        self.author = did

    def to_json(self) -> dict[str, Any]:
        output: dict[str, Any] = {"id": self.id, "name": self.name, "version": self.version}
        if self.author is not None:
            output["author"] = self.author
        if self.schema is not None:
            output["schema"] = self.schema
        return output


def validate_credential_schema(
    credential: dict[str, Any],
    schema: dict[str, Any],
    validator: Validator | None = None,
) -> bool:
    """Validate every credential subject against a schema.

    The subject ``id`` is removed before validation unless the schema
    requires it.

    Args:
        credential: The credential whose ``credentialSubject`` is checked.
        schema: The JSON schema, or a ledger document wrapping it.
        validator: Validator with the schema's references registered. Built
            from ``schema`` alone when omitted.

    Raises:
        SchemaValidationError: If a subject does not match.
    """
    schema = unwrap_schema(schema)
    requires_id = "id" in schema.get("required", [])
    subjects = credential.get("credentialSubject") or []
    if isinstance(subjects, dict):
        subjects = [subjects]
    if validator is None:
        validator = validator_for(schema, default=Draft7Validator)(schema)

    for subject in subjects:
        if not isinstance(subject, dict):
            raise SchemaValidationError(
                f"Credential subject must be an object, got {type(subject).__name__}"
            )
        subject = dict(subject)
        if not requires_id:
            subject.pop("id", None)
        error = best_match(validator.iter_errors(subject))
        if error is not None:
            raise SchemaValidationError(error.message)
    return True


async def get_and_validate_schema_if_present(
    credential: dict[str, Any],
    schema_api: Mapping[str, SchemaService] | None,
    resolver: SchemaResolver | None = None,
) -> None:
    """Validate a credential against its ``credentialSchema``, if it has one.

    Nothing is checked when no schema API is configured or the credential
    lacks a subject or a schema. Otherwise the API must hold the Dock
    schema service, whatever kind of id the schema has.

    Raises:
        SchemaServiceRequired: If the schema API has no Dock service.
        SchemaValidationError: If the credential does not match its schema.
    """
    if schema_api is None:
        return
    if not credential.get("credentialSubject") or not credential.get("credentialSchema"):
        return
    if DOCK_PROVIDER not in schema_api:
        raise SchemaServiceRequired("Only Dock schema support is present as of now.")

    schema_id = credential["credentialSchema"].get("id")
    if not schema_id:
        raise SchemaResolutionError("credentialSchema has no id")

    resolver = resolver or SchemaResolver(schema_api)
    schema = await resolver.resolve(schema_id)
    validator = await resolver.import_schema_graph(schema, base_uri=schema_id)
    try:
        validate_credential_schema(credential, schema, validator)
    except SchemaValidationError as e:
        log.info(f"Credential {credential.get('id')} does not match schema {schema_id}: {e}")
        raise SchemaValidationError(f"Schema validation failed: {e}") from e
