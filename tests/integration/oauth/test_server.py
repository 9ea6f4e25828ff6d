"""
Integration tests for the embeddable MockOAuth2Server.

Start a real uvicorn server on a free port and talk to it over HTTP.
"""

import threading
import time

import httpx
import jwt
import pytest

from mockoauth2 import MockOAuth2Server
from mockoauth2.oauth.callbacks import DefaultTokenCallback


@pytest.fixture(scope="module")
def server():
    with MockOAuth2Server() as running:
        yield running


def verify(server, token, issuer_id):
    jwks = httpx.get(server.jwks_url(issuer_id)).json()
    key = jwt.PyJWK(jwks["keys"][0])
    return jwt.decode(token, key.key, algorithms=["RS256"], options={"verify_aud": False})


class TestMockOAuth2Server:
    """Test suite for MockOAuth2Server."""

    def test_port_assigned(self, server):
        """Test a free port is chosen when none is given."""
        assert server.port != 0
        assert server.base_url() == f"http://127.0.0.1:{server.port}"

    def test_well_known(self, server):
        """Test discovery over HTTP."""
        response = httpx.get(server.well_known_url("issuer1"))

        assert response.status_code == 200
        data = response.json()
        assert data["issuer"] == server.issuer_url("issuer1")
        assert data["token_endpoint"] == server.token_endpoint_url("issuer1")
        assert data["authorization_endpoint"] == server.authorization_endpoint_url("issuer1")

    def test_enqueued_callback(self, server):
        """Test an enqueued callback shapes the next token."""
        server.enqueue_callback(
            DefaultTokenCallback(issuer_id="issuer1", audience=["myapp"], claims={"role": "x"})
        )

        response = httpx.post(
            server.token_endpoint_url("issuer1"),
            data={"grant_type": "client_credentials", "client_id": "client1", "scope": "api"},
        )

        assert response.status_code == 200
        claims = verify(server, response.json()["access_token"], "issuer1")
        assert claims["aud"] == "myapp"
        assert claims["role"] == "x"
        assert claims["sub"] == "client1"

    def test_issue_token(self, server):
        """Test tokens issued directly validate against the issuer's JWKS."""
        token = server.issue_token("issuer2", subject="alice", audience=["api"], claims={"acr": "1"})

        claims = verify(server, token, "issuer2")
        assert claims["iss"] == server.issuer_url("issuer2")
        assert claims["sub"] == "alice"
        assert claims["aud"] == "api"
        assert claims["acr"] == "1"
        assert claims["exp"] - claims["iat"] == 3600

    def test_start_twice(self, server):
        """Test a running server cannot be started again."""
        with pytest.raises(RuntimeError):
            server.start()

    def test_slow_request_does_not_block_others(self, monkeypatch):
        """Test a slow handler does not delay a concurrent request."""
        with MockOAuth2Server() as running:
            provider = running.handler.token_provider
            original = provider._private_key
            entered = threading.Event()

            def slow_private_key(issuer_id):
                if issuer_id == "slow":
                    entered.set()
                    time.sleep(1)
                return original(issuer_id)

            monkeypatch.setattr(provider, "_private_key", slow_private_key)
            slow = threading.Thread(target=httpx.get, args=(running.jwks_url("slow"),), kwargs={"timeout": 10})
            slow.start()
            try:
                assert entered.wait(5)
                started = time.monotonic()
                response = httpx.get(f"{running.base_url()}/favicon.ico")
                elapsed = time.monotonic() - started
            finally:
                slow.join()

        assert response.status_code == 200
        assert elapsed < 0.5
