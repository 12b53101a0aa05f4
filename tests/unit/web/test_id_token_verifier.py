"""Tests for ID token verification against the provider's JWKS."""

import time

import httpx
import pytest
from authlib.jose import jwt

from src.identity_sync.core.services.jwt.jwks import JwksService
from src.identity_sync.core.services.jwt.jwt_verify import IdTokenError, IdTokenVerifier
from tests.fixtures.core import CLIENT_ID, ISSUER
from tests.utils import generate_rsa_key, make_jwt, make_signed_jwt, public_jwks

NONCE = "login-nonce"


@pytest.fixture(scope="module")
def rotated_key():
    return generate_rsa_key()


@pytest.fixture
def claims(principal_claims):
    return {**principal_claims, "iss": ISSUER, "aud": CLIENT_ID, "nonce": NONCE}


@pytest.fixture
def jwks_endpoint(transport_factory, idp_signing_key):
    """JWKS endpoint serving successive documents; the last one repeats."""
    documents = [public_jwks(("test-key", idp_signing_key))]

    def _serve(request: httpx.Request) -> httpx.Response:
        index = min(len(transport.requests), len(documents)) - 1
        return httpx.Response(200, json=documents[index])

    transport = transport_factory(_serve)
    transport.documents = documents
    return transport


@pytest.fixture
def verifier(test_config, jwks_endpoint) -> IdTokenVerifier:
    return IdTokenVerifier(
        test_config.identity_provider, JwksService(transport=jwks_endpoint)
    )


class TestValidTokens:
    @pytest.mark.asyncio
    async def test_returns_verified_claims(self, verifier, claims, idp_signing_key):
        token = make_signed_jwt(claims, idp_signing_key)

        verified = await verifier.verify(token, NONCE)

        assert verified["sub"] == "idp|42"
        assert verified["email"] == "a@x.io"

    @pytest.mark.asyncio
    async def test_key_set_is_cached(
        self, verifier, claims, idp_signing_key, jwks_endpoint
    ):
        token = make_signed_jwt(claims, idp_signing_key)

        await verifier.verify(token, NONCE)
        await verifier.verify(token, NONCE)

        assert len(jwks_endpoint.requests) == 1
        assert jwks_endpoint.requests[0].url.path == "/.well-known/jwks.json"

    @pytest.mark.asyncio
    async def test_expiry_within_clock_skew_is_accepted(
        self, verifier, claims, idp_signing_key
    ):
        token = make_signed_jwt(
            {**claims, "exp": int(time.time()) - 10}, idp_signing_key
        )

        assert (await verifier.verify(token, NONCE))["sub"] == "idp|42"

    @pytest.mark.asyncio
    async def test_rotated_key_triggers_one_refresh(
        self, verifier, claims, idp_signing_key, rotated_key, jwks_endpoint
    ):
        await verifier.verify(make_signed_jwt(claims, idp_signing_key), NONCE)
        jwks_endpoint.documents.append(
            public_jwks(("test-key", idp_signing_key), ("rotated", rotated_key))
        )

        token = make_signed_jwt(claims, rotated_key, kid="rotated")
        verified = await verifier.verify(token, NONCE)

        assert verified["sub"] == "idp|42"
        assert len(jwks_endpoint.requests) == 2


class TestRejectedTokens:
    @pytest.mark.asyncio
    async def test_unsigned_token(self, verifier, claims):
        token = make_jwt(claims, header={"alg": "none", "typ": "JWT"}, signature="")

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)

    @pytest.mark.asyncio
    async def test_placeholder_signature(self, verifier, claims):
        token = make_jwt({**claims, "exp": int(time.time()) + 300})

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)

    @pytest.mark.asyncio
    async def test_signed_by_another_key_under_a_known_kid(
        self, verifier, claims, rotated_key
    ):
        token = make_signed_jwt(claims, rotated_key, kid="test-key")

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)

    @pytest.mark.asyncio
    async def test_unknown_kid_after_refresh(
        self, verifier, claims, rotated_key, jwks_endpoint
    ):
        token = make_signed_jwt(claims, rotated_key, kid="unpublished")

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)
        assert len(jwks_endpoint.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"exp": int(time.time()) - 3600},
            {"nbf": int(time.time()) + 3600},
            {"iss": "https://other-idp.test/"},
            {"aud": ["someone-else"]},
            {"nonce": "another-login"},
        ],
        ids=["expired", "not-yet-valid", "issuer", "audience", "nonce"],
    )
    async def test_claim_checks(self, verifier, claims, idp_signing_key, overrides):
        token = make_signed_jwt({**claims, **overrides}, idp_signing_key)

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["exp", "sub", "nonce"])
    async def test_required_claims(self, verifier, claims, idp_signing_key, missing):
        payload = {**claims, "exp": int(time.time()) + 300}
        del payload[missing]
        token = jwt.encode(
            {"alg": "RS256", "kid": "test-key"}, payload, idp_signing_key
        ).decode("ascii")

        with pytest.raises(IdTokenError):
            await verifier.verify(token, NONCE)

    @pytest.mark.asyncio
    async def test_key_set_unavailable(
        self, test_config, unreachable_transport, claims, idp_signing_key
    ):
        verifier = IdTokenVerifier(
            test_config.identity_provider, JwksService(transport=unreachable_transport)
        )

        with pytest.raises(IdTokenError, match="Failed to fetch JWKS"):
            await verifier.verify(make_signed_jwt(claims, idp_signing_key), NONCE)
