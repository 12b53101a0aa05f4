"""Tests for the BFF login, callback and logout endpoints."""

import time
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from tests.fixtures.core import AUDIENCE, CLIENT_ID, ISSUER
from tests.utils import make_jwt, make_signed_jwt, public_jwks


class FakeProvider:
    """Token, userinfo and JWKS endpoints of the identity provider."""

    def __init__(self, principal_claims, api_token, signing_key):
        self.principal_claims = principal_claims
        self.api_token = api_token
        self.signing_key = signing_key
        self.nonce = None
        self.include_id_token = True
        self.sign_id_token = True
        self.id_token_overrides: dict = {}
        self.token_status = 200
        self.token_forms: list[dict[str, list[str]]] = []
        self.jwks_requests = 0

    def id_token(self) -> str:
        claims = {
            **self.principal_claims,
            "iss": ISSUER,
            "aud": CLIENT_ID,
            "nonce": self.nonce,
            **self.id_token_overrides,
        }
        if self.sign_id_token:
            return make_signed_jwt(claims, self.signing_key)
        return make_jwt(claims, header={"alg": "none", "typ": "JWT"}, signature="")

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/token":
            self.token_forms.append(parse_qs(request.content.decode()))
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            body = {
                "access_token": self.api_token,
                "token_type": "Bearer",
                "expires_in": 3600,
            }
            if self.include_id_token:
                body["id_token"] = self.id_token()
            return httpx.Response(200, json=body)
        if request.url.path == "/.well-known/jwks.json":
            self.jwks_requests += 1
            return httpx.Response(200, json=public_jwks(("test-key", self.signing_key)))
        if request.url.path == "/userinfo":
            return httpx.Response(200, json=self.principal_claims)
        return httpx.Response(404)


@pytest.fixture
def provider(principal_claims, api_token, idp_signing_key) -> FakeProvider:
    return FakeProvider(principal_claims, api_token, idp_signing_key)


@pytest.fixture
def web_client(web_client_factory, provider):
    return web_client_factory(provider_transport=httpx.MockTransport(provider.handle))


def _start_login(client, provider, return_to="/dashboard") -> dict[str, str]:
    response = client.get(
        "/auth/login", params={"returnTo": return_to}, follow_redirects=False
    )
    assert response.status_code == 302
    query = {
        key: values[0]
        for key, values in parse_qs(urlparse(response.headers["location"]).query).items()
    }
    provider.nonce = query["nonce"]
    return query


def _complete_login(client, provider, return_to="/dashboard") -> httpx.Response:
    query = _start_login(client, provider, return_to)
    return client.get(
        "/auth/callback",
        params={"state": query["state"], "code": "auth-code"},
        follow_redirects=False,
    )


class TestLogin:
    def test_redirects_to_provider_with_pkce_and_audience(self, web_client, provider):
        response = web_client.get(
            "/auth/login", params={"returnTo": "/dashboard"}, follow_redirects=False
        )

        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert f"{location.scheme}://{location.netloc}{location.path}" == (
            "https://idp.test/authorize"
        )
        assert query["client_id"] == [CLIENT_ID]
        assert query["audience"] == [AUDIENCE]
        assert query["code_challenge_method"] == ["S256"]
        assert query["redirect_uri"] == ["http://localhost:3000/auth/callback"]
        assert query["scope"] == ["openid profile email"]
        assert "auth_session_id" in response.cookies

    def test_omits_audience_when_not_configured(
        self, web_client_factory, test_config, use_config
    ):
        test_config.identity_provider.audience = None
        use_config(test_config)

        response = web_client_factory().get("/auth/login", follow_redirects=False)

        assert "audience" not in parse_qs(urlparse(response.headers["location"]).query)

    def test_unconfigured_provider_is_503(self, web_client_factory, test_config, use_config):
        test_config.identity_provider.domain = ""
        use_config(test_config)

        response = web_client_factory().get("/auth/login", follow_redirects=False)

        assert response.status_code == 503


class TestCallback:
    def test_opens_session_and_redirects(self, web_client, provider, api_token):
        response = _complete_login(web_client, provider)

        assert response.status_code == 302
        assert response.headers["location"] == "/dashboard"
        assert "app_session" in response.cookies

        profile = web_client.get("/auth/profile").json()
        assert profile["sub"] == "idp|42"
        assert profile["email"] == "a@x.io"
        assert web_client.get("/api/auth-token").json() == {"accessToken": api_token}

    def test_token_request_carries_verifier_and_secret(self, web_client, provider):
        _complete_login(web_client, provider)

        form = provider.token_forms[0]
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]
        assert form["client_secret"] == ["test-client-secret"]
        assert form["code_verifier"][0]

    def test_access_token_dropped_without_audience(
        self, web_client_factory, provider, test_config, use_config
    ):
        test_config.identity_provider.audience = None
        use_config(test_config)
        client = web_client_factory(
            provider_transport=httpx.MockTransport(provider.handle)
        )

        _complete_login(client, provider)

        body = client.get("/api/auth-token").json()
        assert body["accessToken"] is None
        assert body["debug"]["audience"] == "NOT SET"

    def test_falls_back_to_userinfo(self, web_client, provider):
        provider.include_id_token = False

        _complete_login(web_client, provider)

        assert web_client.get("/auth/profile").json()["sub"] == "idp|42"

    def test_open_redirect_is_neutralized(self, web_client, provider):
        response = _complete_login(web_client, provider, return_to="//evil.test/x")

        assert response.headers["location"] == "/"

    def test_missing_auth_session_is_400(self, web_client):
        response = web_client.get("/auth/callback", params={"state": "s", "code": "c"})

        assert response.status_code == 400

    def test_state_mismatch_is_400(self, web_client, provider):
        _start_login(web_client, provider)

        response = web_client.get(
            "/auth/callback", params={"state": "forged", "code": "c"}
        )

        assert response.status_code == 400

    def test_auth_session_is_single_use(self, web_client, provider):
        query = _start_login(web_client, provider)
        params = {"state": query["state"], "code": "auth-code"}
        auth_cookie = web_client.cookies.get("auth_session_id")

        web_client.get("/auth/callback", params=params, follow_redirects=False)
        web_client.cookies.set("auth_session_id", auth_cookie)
        replay = web_client.get("/auth/callback", params=params, follow_redirects=False)

        assert replay.status_code == 400

    def test_provider_error_goes_home(self, web_client, provider):
        query = _start_login(web_client, provider)

        response = web_client.get(
            "/auth/callback",
            params={"state": query["state"], "error": "access_denied"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/"
        assert provider.token_forms == []

    def test_failed_exchange_goes_home(self, web_client, provider):
        provider.token_status = 400

        response = _complete_login(web_client, provider)

        assert response.headers["location"] == "/"
        assert "app_session" not in response.cookies


class TestIdTokenVerificationAtLogin:
    @staticmethod
    def _assert_login_failed(client, response):
        assert response.status_code == 302
        assert response.headers["location"] == "/"
        assert "app_session" not in response.cookies
        assert client.get("/auth/profile").status_code == 401

    def test_unsigned_id_token_fails_login(self, web_client, provider):
        provider.sign_id_token = False

        self._assert_login_failed(web_client, _complete_login(web_client, provider))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"exp": int(time.time()) - 3600},
            {"iss": "https://other-idp.test/"},
            {"aud": "someone-else"},
            {"nonce": "replayed-nonce"},
        ],
        ids=["expired", "issuer", "audience", "nonce"],
    )
    def test_invalid_claims_fail_login(self, web_client, provider, overrides):
        provider.id_token_overrides = overrides

        self._assert_login_failed(web_client, _complete_login(web_client, provider))

    def test_keys_are_fetched_once_across_logins(self, web_client, provider):
        _complete_login(web_client, provider)
        web_client.get("/auth/logout", follow_redirects=False)
        response = _complete_login(web_client, provider)

        assert "app_session" in response.cookies
        assert provider.jwks_requests == 1


class TestLogout:
    def test_ends_local_and_provider_session(self, web_client, provider):
        _complete_login(web_client, provider)

        response = web_client.get("/auth/logout", follow_redirects=False)

        location = urlparse(response.headers["location"])
        assert location.netloc == "idp.test"
        assert location.path == "/v2/logout"
        assert parse_qs(location.query)["returnTo"] == ["http://localhost:3000/"]
        assert web_client.get("/auth/profile").status_code == 401

    def test_profile_requires_session(self, web_client):
        assert web_client.get("/auth/profile").status_code == 401
