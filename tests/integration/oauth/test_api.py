"""
Integration tests for the mock authorization server HTTP API.

Tests discovery, authorization, token, userinfo, end-session and test-utility
endpoints through the FastAPI app.
"""

import base64
import hashlib
import json
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest
from fastapi.testclient import TestClient

from mockoauth2.cli import create_app
from mockoauth2.core.config_manager import MockOAuth2Config
from mockoauth2.oauth.callbacks import DefaultTokenCallback

ISSUER = "issuer1"
ISSUER_URL = f"http://testserver/{ISSUER}"
REDIRECT_URI = "http://localhost:1234/callback"


@pytest.fixture
def app():
    """Create app with default configuration."""
    return create_app(MockOAuth2Config())


@pytest.fixture
def client(app):
    """Create test client that does not follow redirects."""
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def handler(app):
    """Request handler behind the app."""
    return app.state.oauth2_handler


def decode(client, token, issuer_id=ISSUER):
    """Verify a token against the issuer's published JWKS and return its claims."""
    jwks = client.get(f"/{issuer_id}/jwks").json()
    key = jwt.PyJWK(jwks["keys"][0]).key
    return jwt.decode(token, key, algorithms=["RS256"], options={"verify_aud": False})


def authorize(client, **extra):
    params = {
        "client_id": "client1",
        "redirect_uri": REDIRECT_URI,
        "response_type": "code",
        "scope": "openid somescope",
        "state": "1234",
        "nonce": "5678",
    }
    params.update(extra)
    return client.get(f"/{ISSUER}/authorize", params=params)


def code_from(response):
    query = parse_qs(urlsplit(response.headers["location"]).query)
    return query["code"][0]


def exchange_code(client, code, **extra):
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": "client1",
        "redirect_uri": REDIRECT_URI,
    }
    data.update(extra)
    return client.post(f"/{ISSUER}/token", data=data)


class TestWellKnown:
    """Test discovery endpoints."""

    @pytest.mark.parametrize(
        "path",
        [".well-known/openid-configuration", ".well-known/oauth-authorization-server"],
    )
    def test_discovery_document(self, client, path):
        """Test both discovery aliases return endpoints rooted at the issuer."""
        response = client.get(f"/{ISSUER}/{path}")

        assert response.status_code == 200
        document = response.json()
        assert document["issuer"] == ISSUER_URL
        assert document["token_endpoint"] == f"{ISSUER_URL}/token"
        assert document["authorization_endpoint"] == f"{ISSUER_URL}/authorize"
        assert document["jwks_uri"] == f"{ISSUER_URL}/jwks"
        assert document["end_session_endpoint"] == f"{ISSUER_URL}/endsession"
        assert "refresh_token" in document["grant_types_supported"]


class TestJwks:
    """Test key publishing endpoints."""

    def test_public_jwks(self, client):
        """Test JWKS contains only public key material."""
        response = client.get(f"/{ISSUER}/jwks")

        assert response.status_code == 200
        key = response.json()["keys"][0]
        assert key["kid"] == ISSUER
        assert key["kty"] == "RSA"
        assert "d" not in key

    def test_testutils_full_jwks(self, client):
        """Test full JWKS includes private key material for the same key."""
        public_key = client.get(f"/{ISSUER}/jwks").json()["keys"][0]
        full_key = client.get(f"/{ISSUER}/testutils/jwks").json()["keys"][0]

        assert full_key["n"] == public_key["n"]
        assert "d" in full_key

    def test_issuers_have_distinct_keys(self, client):
        """Test each issuer id signs with its own key."""
        key1 = client.get("/issuer1/jwks").json()["keys"][0]
        key2 = client.get("/issuer2/jwks").json()["keys"][0]

        assert key1["n"] != key2["n"]


class TestTokenEndpoint:
    """Test token endpoint dispatch."""

    def test_get_token_not_allowed(self, client):
        """Test GET on the token endpoint returns 405."""
        response = client.get(f"/{ISSUER}/token")

        assert response.status_code == 405
        assert response.text == "unsupported method"

    @pytest.mark.parametrize("grant_type", ["password", "implicit", "foo"])
    def test_unknown_grant_type(self, client, grant_type):
        """Test unsupported grant types yield invalid_grant."""
        response = client.post(f"/{ISSUER}/token", data={"grant_type": grant_type, "client_id": "c"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"
        assert grant_type in response.json()["error_description"]

    def test_missing_grant_type(self, client):
        """Test a token request without grant_type yields invalid_grant."""
        response = client.post(f"/{ISSUER}/token", data={"client_id": "c"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    def test_client_credentials(self, client):
        """Test client credentials token has the client as subject and scope as audience."""
        response = client.post(
            f"/{ISSUER}/token",
            data={"grant_type": "client_credentials", "scope": "api://target"},
            auth=("client1", "secret"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 3600
        claims = decode(client, body["access_token"])
        assert claims["sub"] == "client1"
        assert claims["aud"] == "api://target"
        assert claims["iss"] == ISSUER_URL
        assert claims["tid"] == ISSUER

    def test_client_credentials_without_client(self, client):
        """Test client credentials without client authentication is rejected."""
        response = client.post(f"/{ISSUER}/token", data={"grant_type": "client_credentials"})

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"

    def test_token_exchange(self, client):
        """Test token exchange keeps the subject and reissues from this issuer."""
        subject_token = client.post(
            "/other/token",
            data={"grant_type": "client_credentials", "client_id": "upstream", "scope": "s"},
        ).json()["access_token"]

        response = client.post(
            f"/{ISSUER}/token",
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:token-exchange",
                "client_id": "client1",
                "subject_token": subject_token,
                "subject_token_type": "urn:ietf:params:oauth:token-type:jwt",
                "audience": "downstream",
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["issued_token_type"] == "urn:ietf:params:oauth:token-type:access_token"
        claims = decode(client, body["access_token"])
        assert claims["sub"] == "upstream"
        assert claims["iss"] == ISSUER_URL
        assert claims["aud"] == "downstream"

    def test_jwt_bearer(self, client):
        """Test jwt-bearer grant reissues the assertion's claims."""
        assertion = client.post(
            "/other/testutils/token",
            json={"claims": {"sub": "user1", "custom": "value"}},
        ).text

        response = client.post(
            f"/{ISSUER}/token",
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "client_id": "client1",
                "assertion": assertion,
                "scope": "api1",
            },
        )

        assert response.status_code == 200
        claims = decode(client, response.json()["access_token"])
        assert claims["sub"] == "user1"
        assert claims["custom"] == "value"
        assert claims["aud"] == "api1"

    def test_jwt_bearer_malformed_assertion(self, client):
        """Test a malformed assertion is an invalid_request."""
        response = client.post(
            f"/{ISSUER}/token",
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "client_id": "client1",
                "assertion": "not-a-jwt",
            },
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"


class TestTokenCallbacks:
    """Test enqueued token callbacks."""

    def test_enqueued_callback_used_once(self, client, handler):
        """Test an enqueued callback applies to exactly the next token for its issuer."""
        handler.enqueue_token_callback(
            DefaultTokenCallback(issuer_id=ISSUER, claims={"extra": "yes"}, expiry=120)
        )
        data = {"grant_type": "client_credentials", "client_id": "client1", "scope": "s"}

        first = decode(client, client.post(f"/{ISSUER}/token", data=data).json()["access_token"])
        second = decode(client, client.post(f"/{ISSUER}/token", data=data).json()["access_token"])

        assert first["extra"] == "yes"
        assert first["exp"] - first["iat"] == 120
        assert "extra" not in second
        assert second["exp"] - second["iat"] == 3600
        assert len(handler.token_callback_queue) == 0

    def test_callback_for_other_issuer_not_consumed(self, client, handler):
        """Test a queued callback for another issuer stays queued."""
        handler.enqueue_token_callback(DefaultTokenCallback(issuer_id="someone-else"))
        data = {"grant_type": "client_credentials", "client_id": "client1"}

        response = client.post(f"/{ISSUER}/token", data=data)

        assert response.status_code == 200
        assert len(handler.token_callback_queue) == 1

    def test_enqueued_subject_and_audience(self, client, handler):
        """Test subject and audience of an enqueued callback in the authorization code flow."""
        handler.enqueue_token_callback(
            DefaultTokenCallback(issuer_id=ISSUER, subject="user1", audience=["aud1"])
        )

        body = exchange_code(client, code_from(authorize(client))).json()

        access = decode(client, body["access_token"])
        assert access["sub"] == "user1"
        assert access["aud"] == "aud1"

    def test_static_callback_from_config(self):
        """Test a configured request mapping decides the claims."""
        config = MockOAuth2Config(
            tokenCallbacks=[{
                "issuerId": ISSUER,
                "tokenExpiry": 60,
                "requestMappings": [{
                    "requestParam": "scope",
                    "match": "scope1",
                    "claims": {"sub": "mapped", "aud": ["a1", "a2"], "scope": "${scope}"},
                }],
            }]
        )
        client = TestClient(create_app(config))

        response = client.post(
            f"/{ISSUER}/token",
            data={"grant_type": "client_credentials", "client_id": "c", "scope": "scope1"},
        )

        claims = decode(client, response.json()["access_token"])
        assert claims["sub"] == "mapped"
        assert claims["aud"] == ["a1", "a2"]
        assert claims["scope"] == "scope1"
        assert claims["exp"] - claims["iat"] == 60


class TestAuthorizationCodeFlow:
    """Test authorization endpoint and code redemption."""

    def test_authorize_redirects_with_code_and_state(self, client):
        """Test non-interactive authorization redirects immediately."""
        response = authorize(client)

        assert response.status_code == 302
        location = urlsplit(response.headers["location"])
        assert f"{location.scheme}://{location.netloc}{location.path}" == REDIRECT_URI
        query = parse_qs(location.query)
        assert query["state"] == ["1234"]
        assert query["code"][0]

    def test_authorize_fragment_response_mode(self, client):
        """Test response_mode=fragment puts the code in the fragment."""
        response = authorize(client, response_mode="fragment")

        fragment = parse_qs(urlsplit(response.headers["location"]).fragment)
        assert "code" in fragment

    def test_authorize_form_post_response_mode(self, client):
        """Test response_mode=form_post renders an auto-submitting form."""
        response = authorize(client, response_mode="form_post")

        assert response.status_code == 200
        assert f'action="{REDIRECT_URI}"' in response.text
        assert 'name="code"' in response.text

    def test_authorize_missing_openid_scope(self, client):
        """Test an authentication request without openid scope is rejected."""
        response = authorize(client, scope="profile")

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    def test_code_exchange(self, client):
        """Test redeeming a code returns id, access and refresh tokens."""
        response = exchange_code(client, code_from(authorize(client)))

        assert response.status_code == 200
        body = response.json()
        assert body["scope"] == "openid somescope"
        id_token = decode(client, body["id_token"])
        assert id_token["aud"] == "client1"
        assert id_token["nonce"] == "5678"
        access_token = decode(client, body["access_token"])
        assert access_token["aud"] == "somescope"
        assert body["refresh_token"]

    def test_code_is_single_use(self, client):
        """Test a code cannot be redeemed twice."""
        code = code_from(authorize(client))
        exchange_code(client, code)

        response = exchange_code(client, code)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"

    def test_code_bound_to_issuer(self, client):
        """Test a code issued by one issuer cannot be redeemed at another."""
        code = code_from(authorize(client))
        data = {"grant_type": "authorization_code", "code": code, "client_id": "client1"}

        response = client.post("/other/token", data=data)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"
        assert exchange_code(client, code).status_code == 200

    def test_pkce_s256(self, client):
        """Test a matching S256 code_verifier is accepted and a wrong one rejected."""
        verifier = "a" * 50
        challenge = base64.urlsafe_b64encode(
            hashlib.sha256(verifier.encode()).digest()
        ).rstrip(b"=").decode()

        good = exchange_code(
            client,
            code_from(authorize(client, code_challenge=challenge, code_challenge_method="S256")),
            code_verifier=verifier,
        )
        bad = exchange_code(
            client,
            code_from(authorize(client, code_challenge=challenge, code_challenge_method="S256")),
            code_verifier="wrong",
        )

        assert good.status_code == 200
        assert bad.status_code == 400
        assert bad.json()["error"] == "invalid_grant"


class TestRefreshTokenFlow:
    """Test refresh token grant."""

    def test_refresh_token_replay_fails(self, client):
        """Test a refresh token can be used only once."""
        refresh_token = exchange_code(client, code_from(authorize(client))).json()["refresh_token"]
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token, "client_id": "client1"}

        first = client.post(f"/{ISSUER}/token", data=data)
        replay = client.post(f"/{ISSUER}/token", data=data)

        assert first.status_code == 200
        assert replay.status_code == 400
        assert replay.json()["error"] == "invalid_grant"

    def test_refresh_token_bound_to_issuer(self, client):
        """Test a refresh token issued by one issuer cannot be used at another."""
        refresh_token = exchange_code(client, code_from(authorize(client))).json()["refresh_token"]
        data = {"grant_type": "refresh_token", "refresh_token": refresh_token, "client_id": "client1"}

        response = client.post("/other/token", data=data)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"
        assert client.post(f"/{ISSUER}/token", data=data).status_code == 200

    def test_refresh_keeps_subject_and_rotates(self, client):
        """Test refreshed tokens keep the original subject and carry a new refresh token."""
        body = exchange_code(client, code_from(authorize(client))).json()
        original_sub = decode(client, body["id_token"])["sub"]

        refreshed = client.post(
            f"/{ISSUER}/token",
            data={"grant_type": "refresh_token", "refresh_token": body["refresh_token"]},
        ).json()

        assert decode(client, refreshed["id_token"])["sub"] == original_sub
        assert refreshed["refresh_token"] != body["refresh_token"]

    def test_unknown_refresh_token(self, client):
        """Test an unknown refresh token is invalid_grant."""
        response = client.post(
            f"/{ISSUER}/token",
            data={"grant_type": "refresh_token", "refresh_token": "nope"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_grant"


class TestInteractiveLogin:
    """Test login form handling."""

    def test_prompt_login_renders_form(self, client):
        """Test prompt=login renders the login form instead of redirecting."""
        response = authorize(client, prompt="login")

        assert response.status_code == 200
        assert 'name="username"' in response.text

    def test_interactive_login_config_renders_form(self):
        """Test interactive_login configuration renders the login form."""
        client = TestClient(create_app(MockOAuth2Config(interactive_login=True)), follow_redirects=False)

        response = authorize(client)

        assert response.status_code == 200
        assert "<form" in response.text

    def test_login_submit_sets_subject_and_claims(self, client):
        """Test submitted username and claims end up in the issued tokens."""
        response = client.post(
            f"/{ISSUER}/authorize",
            params={
                "client_id": "client1",
                "redirect_uri": REDIRECT_URI,
                "response_type": "code",
                "scope": "openid",
                "state": "abc",
            },
            data={"username": "alice", "claims": json.dumps({"acr": "Level4"})},
        )

        assert response.status_code == 302
        assert parse_qs(urlsplit(response.headers["location"]).query)["state"] == ["abc"]
        body = exchange_code(client, code_from(response)).json()
        id_token = decode(client, body["id_token"])
        assert id_token["sub"] == "alice"
        assert id_token["acr"] == "Level4"


class TestUserInfo:
    """Test userinfo endpoint."""

    def test_userinfo_returns_claims(self, client):
        """Test userinfo returns the claims of a valid access token."""
        body = exchange_code(client, code_from(authorize(client))).json()
        sub = decode(client, body["access_token"])["sub"]

        response = client.get(
            f"/{ISSUER}/userinfo",
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )

        assert response.status_code == 200
        assert response.json()["sub"] == sub

    def test_userinfo_without_token(self, client):
        """Test userinfo without a bearer token is invalid_token."""
        response = client.get(f"/{ISSUER}/userinfo")

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    def test_userinfo_with_token_from_other_issuer(self, client):
        """Test a token signed by another issuer is rejected."""
        token = client.post(
            "/other/token",
            data={"grant_type": "client_credentials", "client_id": "c"},
        ).json()["access_token"]

        response = client.get(f"/{ISSUER}/userinfo", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestEndSession:
    """Test end-session endpoint."""

    def test_redirects_to_post_logout_uri(self, client):
        """Test post_logout_redirect_uri is honoured."""
        response = client.get(
            f"/{ISSUER}/endsession",
            params={"post_logout_redirect_uri": "http://localhost/bye"},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "http://localhost/bye"

    def test_logged_out_page(self, client):
        """Test end-session without redirect renders a page."""
        response = client.post(f"/{ISSUER}/endsession")

        assert response.status_code == 200
        assert "logged out" in response.text

    def test_configured_path(self):
        """Test the end-session path can be configured."""
        client = TestClient(create_app(MockOAuth2Config(end_session_path="logout")))

        assert client.get(f"/{ISSUER}/logout").status_code == 200
        document = client.get(f"/{ISSUER}/.well-known/openid-configuration").json()
        assert document["end_session_endpoint"] == f"{ISSUER_URL}/logout"


class TestMisc:
    """Test preflight, favicon and metrics."""

    @pytest.mark.parametrize("path", ["/", f"/{ISSUER}/token", "/any/deep/path"])
    def test_preflight(self, client, path):
        """Test OPTIONS on any path returns wildcard CORS headers."""
        response = client.options(path)

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "*"
        assert response.headers["access-control-allow-headers"] == "*"

    def test_favicon(self, client):
        """Test favicon returns an empty body."""
        response = client.get("/favicon.ico")

        assert response.status_code == 200
        assert response.content == b""

    def test_metrics_count_tokens(self, client):
        """Test issued tokens show up in the metrics endpoint."""
        client.post(f"/{ISSUER}/token", data={"grant_type": "client_credentials", "client_id": "c"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'mock_oauth2_tokens_issued_total{issuer="issuer1",grant_type="client_credentials"} 1.0' in response.text


class TestTestUtils:
    """Test arbitrary JWT signing endpoint."""

    def test_sign_with_claims_and_expiry(self, client):
        """Test signing returns a JWT with the given claims and expiry."""
        response = client.post(
            f"/{ISSUER}/testutils/token",
            content=json.dumps({"expiry": "PT1H", "claims": {"aud": "x"}}),
        )

        assert response.status_code == 200
        claims = decode(client, response.text)
        assert claims["aud"] == "x"
        assert abs((claims["exp"] - claims["iat"]) - 3600) <= 1

    def test_sign_defaults(self, client):
        """Test an empty object uses the default expiry."""
        response = client.post(f"/{ISSUER}/testutils/token", content="{}")

        claims = decode(client, response.text)
        assert claims["exp"] - claims["iat"] == 3600

    def test_non_string_claims_are_stringified(self, client):
        """Test non-string claim values are included as JSON text."""
        response = client.post(
            f"/{ISSUER}/testutils/token",
            json={"claims": {"n": 5, "roles": ["a", "b"]}, "expiry": "P0DT0H10M30S"},
        )

        claims = decode(client, response.text)
        assert claims["n"] == "5"
        assert claims["roles"] == '["a", "b"]'
        assert claims["exp"] - claims["iat"] == 630

    def test_malformed_json(self, client):
        """Test malformed JSON returns 400 with the parser message."""
        response = client.post(f"/{ISSUER}/testutils/token", content="{not json")

        assert response.status_code == 400
        assert "Expecting" in response.text

    def test_malformed_duration(self, client):
        """Test a malformed duration returns 400 with format examples."""
        response = client.post(
            f"/{ISSUER}/testutils/token",
            json={"expiry": "not-a-duration"},
        )

        assert response.status_code == 400
        assert "`not-a-duration`" in response.text
        assert "P1D" in response.text
        assert "PT1H" in response.text
        assert "P0DT0H10M30S" in response.text

    @pytest.mark.parametrize("expiry", ["01:00:00", "P1Y", "1 day", "60"])
    def test_non_iso_duration_rejected(self, client, expiry):
        """Test durations outside ISO-8601 days, hours, minutes and seconds return 400."""
        response = client.post(f"/{ISSUER}/testutils/token", json={"expiry": expiry})

        assert response.status_code == 400
        assert f"`{expiry}`" in response.text
