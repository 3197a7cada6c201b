"""Tests for presentation signing and verification."""

import copy

import pytest
import respx
from httpx import Response

from dock_vc import (
    DIDResolutionError,
    RevocationServiceRequired,
    StaticResolver,
    VerifyOptions,
    build_credential_status,
    create_presentation,
    is_verified_presentation,
    issue_credential,
    sign_presentation,
    verify_presentation,
)

from conftest import HOLDER_DID, REGISTRY_ID, FakeSchemaService, did_document_for

CHALLENGE = "0x6a7c3f1e"
DOMAIN = "verifier.example.com"


@pytest.fixture
def credential(issuer_key, unsigned_credential):
    """A signed credential without revocation status."""
    return issue_credential(issuer_key, unsigned_credential)


@pytest.fixture
def revocable_credentials(issuer_key, unsigned_credential):
    """Two signed credentials revocable in the test registry."""
    credentials = []
    for number in (1, 2):
        draft = copy.deepcopy(unsigned_credential)
        draft["id"] = f"https://example.com/credentials/{number}"
        draft["credentialStatus"] = build_credential_status(REGISTRY_ID)
        credentials.append(issue_credential(issuer_key, draft))
    return credentials


class TestCreatePresentation:
    """Tests for unsigned presentations."""

    def test_single_credential(self, credential):
        """Test a single credential is wrapped in a list."""
        presentation = create_presentation(credential, id="urn:uuid:p1", holder=HOLDER_DID)

        assert presentation == {
            "@context": ["https://www.w3.org/2018/credentials/v1"],
            "type": ["VerifiablePresentation"],
            "verifiableCredential": [credential],
            "id": "urn:uuid:p1",
            "holder": HOLDER_DID,
        }

    def test_credentials_are_copied(self, credential):
        """Test later changes to the credential do not leak in."""
        presentation = create_presentation([credential])
        credential["issuer"] = "did:dock:0xchanged"

        assert presentation["verifiableCredential"][0]["issuer"] != "did:dock:0xchanged"
        assert "id" not in presentation
        assert "holder" not in presentation


class TestSignPresentation:
    """Tests for presentation signing."""

    @pytest.mark.asyncio
    async def test_sign(self, holder_key, credential):
        """Test the authentication proof carries challenge and domain."""
        presentation = create_presentation(credential, holder=HOLDER_DID)

        signed = await sign_presentation(presentation, holder_key, CHALLENGE, DOMAIN)
        proof = signed["proof"]

        assert proof["type"] == "Sr25519Signature2020"
        assert proof["proofPurpose"] == "authentication"
        assert proof["challenge"] == CHALLENGE
        assert proof["domain"] == DOMAIN
        assert "proof" not in presentation

    @pytest.mark.asyncio
    @pytest.mark.parametrize("challenge", ["", None])
    async def test_challenge_required(self, holder_key, credential, challenge):
        """Test presentations cannot be signed without a challenge."""
        with pytest.raises(ValueError, match="challenge"):
            await sign_presentation(create_presentation(credential), holder_key, challenge)

    @pytest.mark.asyncio
    async def test_resolver_checks_authentication(self, holder_key, credential):
        """Test the key must be an authentication method of its controller."""
        did_document = did_document_for(holder_key)
        did_document["authentication"] = []
        resolver = StaticResolver({HOLDER_DID: did_document})

        with pytest.raises(DIDResolutionError, match="not an authentication method"):
            await sign_presentation(
                create_presentation(credential), holder_key, CHALLENGE, resolver=resolver
            )

    @pytest.mark.asyncio
    async def test_resolver_accepts_authentication_key(self, holder_key, credential, resolver):
        """Test signing succeeds when the key authenticates its controller."""
        signed = await sign_presentation(
            create_presentation(credential), holder_key, CHALLENGE, resolver=resolver
        )
        assert signed["proof"]["verificationMethod"] == holder_key.id


class TestVerifyPresentation:
    """Tests for presentation verification."""

    @pytest.mark.asyncio
    async def test_round_trip(self, holder_key, credential, resolver):
        """Test a signed presentation verifies with its challenge and domain."""
        signed = await sign_presentation(
            create_presentation(credential, holder=HOLDER_DID), holder_key, CHALLENGE, DOMAIN
        )
        options = VerifyOptions(resolver=resolver, challenge=CHALLENGE, domain=DOMAIN)

        result = await verify_presentation(signed, options)

        assert result.verified is True, result.error
        assert result.results[0].verification_method == holder_key.id
        assert [r.verified for r in result.credential_results] == [True]
        assert await is_verified_presentation(signed, options)

    @pytest.mark.asyncio
    async def test_wrong_challenge(self, holder_key, credential, resolver):
        """Test a replayed presentation fails with another challenge."""
        signed = await sign_presentation(create_presentation(credential), holder_key, CHALLENGE)

        result = await verify_presentation(
            signed, VerifyOptions(resolver=resolver, challenge="0xother")
        )

        assert result.verified is False
        assert result.error == "The challenge does not match"

    @pytest.mark.asyncio
    async def test_wrong_domain(self, holder_key, credential, resolver):
        """Test a presentation signed for another verifier fails."""
        signed = await sign_presentation(
            create_presentation(credential), holder_key, CHALLENGE, DOMAIN
        )

        result = await verify_presentation(
            signed,
            VerifyOptions(resolver=resolver, challenge=CHALLENGE, domain="other.example.com"),
        )

        assert result.verified is False
        assert result.error == "The domain does not match"

    @pytest.mark.asyncio
    async def test_tampered_credential(self, holder_key, credential, resolver):
        """Test a credential changed before presenting fails its own proof."""
        credential["credentialSubject"]["alumniOf"] = "Another University"
        signed = await sign_presentation(create_presentation(credential), holder_key, CHALLENGE)

        result = await verify_presentation(
            signed, VerifyOptions(resolver=resolver, challenge=CHALLENGE)
        )

        assert result.verified is False
        assert result.error == f"Credential {credential['id']}: Invalid signature"
        assert [r.verified for r in result.credential_results] == [False]

    @pytest.mark.asyncio
    async def test_tampered_presentation(self, holder_key, credential, resolver):
        """Test changing a signed presentation breaks the holder proof."""
        signed = await sign_presentation(create_presentation(credential), holder_key, CHALLENGE)
        signed["holder"] = "did:dock:0xmallory"

        result = await verify_presentation(
            signed, VerifyOptions(resolver=resolver, challenge=CHALLENGE)
        )

        assert result.verified is False
        assert result.error == "Invalid signature"

    @pytest.mark.asyncio
    async def test_not_a_presentation(self, credential, resolver):
        """Test documents without the presentation type are refused."""
        result = await verify_presentation(
            credential, VerifyOptions(resolver=resolver, challenge=CHALLENGE)
        )

        assert result.verified is False
        assert "VerifiablePresentation" in result.error


class TestVerifyPresentationRevocation:
    """Tests for revocation of presented credentials."""

    @pytest.mark.asyncio
    async def test_service_required(self, holder_key, revocable_credentials, resolver):
        """Test presented revocable credentials need a revocation service."""
        signed = await sign_presentation(
            create_presentation(revocable_credentials), holder_key, CHALLENGE
        )

        with pytest.raises(RevocationServiceRequired):
            await verify_presentation(
                signed, VerifyOptions(resolver=resolver, challenge=CHALLENGE)
            )

    @pytest.mark.asyncio
    async def test_none_revoked(
        self, holder_key, revocable_credentials, resolver, revocation_registry
    ):
        """Test every credential is queried when none is revoked."""
        signed = await sign_presentation(
            create_presentation(revocable_credentials), holder_key, CHALLENGE
        )
        options = VerifyOptions(
            resolver=resolver,
            challenge=CHALLENGE,
            revocation_api={"dock": revocation_registry},
        )

        result = await verify_presentation(signed, options)

        assert result.verified is True
        assert len(revocation_registry.queries) == 2

    @pytest.mark.asyncio
    async def test_first_revoked_stops(
        self, holder_key, revocable_credentials, resolver, revocation_registry
    ):
        """Test the first revoked credential ends verification."""
        revocation_registry.revoke_credential(REGISTRY_ID, revocable_credentials[0])
        signed = await sign_presentation(
            create_presentation(revocable_credentials), holder_key, CHALLENGE
        )
        options = VerifyOptions(
            resolver=resolver,
            challenge=CHALLENGE,
            revocation_api={"dock": revocation_registry},
        )

        result = await verify_presentation(signed, options)

        assert result.verified is False
        assert result.error == "Revocation check failed"
        assert len(revocation_registry.queries) == 1


class TestVerifyPresentationSchema:
    """Tests for schema validation of presented credentials."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_schema_mismatch(self, issuer_key, holder_key, unsigned_credential, resolver):
        """Test a presented credential not matching its schema fails."""
        respx.get("https://example.com/schemas/alumni.json").mock(
            return_value=Response(200, json={
                "$schema": "http://json-schema.org/draft-07/schema#",
                "type": "object",
                "properties": {"alumniOf": {"type": "integer"}},
            })
        )
        unsigned_credential["credentialSchema"] = {
            "id": "https://example.com/schemas/alumni.json",
            "type": "JsonSchemaValidator2018",
        }
        credential = issue_credential(issuer_key, unsigned_credential)
        signed = await sign_presentation(create_presentation(credential), holder_key, CHALLENGE)

        result = await verify_presentation(
            signed,
            VerifyOptions(
                resolver=resolver,
                challenge=CHALLENGE,
                schema_api={"dock": FakeSchemaService()},
            ),
        )

        assert result.verified is False
        assert result.error.startswith("Schema validation failed")
