"""
Embeddable mock OAuth2 server for test suites.

Runs the FastAPI app with uvicorn in a background thread and exposes the
helpers tests need: endpoint URLs, token callback injection and direct token
issuance.
"""

import logging
import threading
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional

import uvicorn

from mockoauth2.cli import create_app
from mockoauth2.core.config_manager import MockOAuth2Config
from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.request_handler import OAuth2HttpRequestHandler

logger = logging.getLogger(__name__)


class MockOAuth2Server:
    """Mock OAuth2 server running in-process on a background thread."""

    def __init__(self, config: Optional[MockOAuth2Config] = None, host: str = "127.0.0.1", port: int = 0):
        """
        Initialize server.

        Args:
            config: Server configuration, defaults if None
            host: Interface to bind
            port: Port to bind; 0 picks a free port on start
        """
        self.config = config or MockOAuth2Config()
        self.host = host
        self.port = port
        self.handler = OAuth2HttpRequestHandler(self.config)
        self.app = create_app(handler=self.handler)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self, timeout: float = 10.0) -> None:
        """Start serving and wait until the socket is bound."""
        if self._thread is not None:
            raise RuntimeError("server already started")
        uvicorn_config = uvicorn.Config(
            self.app, host=self.host, port=self.port, log_level="warning", access_log=False
        )
        self._server = uvicorn.Server(uvicorn_config)
        self._thread = threading.Thread(target=self._server.run, name="mock-oauth2-server", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if time.monotonic() > deadline or not self._thread.is_alive():
                raise RuntimeError(f"server did not start within {timeout} seconds")
            time.sleep(0.01)
        if self.port == 0:
            self.port = self._server.servers[0].sockets[0].getsockname()[1]
        logger.info(f"Mock OAuth2 server listening on {self.base_url()}")

    def shutdown(self) -> None:
        if self._server is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout=10.0)
        self._server = None
        self._thread = None

    def __enter__(self) -> "MockOAuth2Server":
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.shutdown()

    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def issuer_url(self, issuer_id: str) -> str:
        return f"{self.base_url()}/{issuer_id}"

    def well_known_url(self, issuer_id: str) -> str:
        return f"{self.issuer_url(issuer_id)}/.well-known/openid-configuration"

    def jwks_url(self, issuer_id: str) -> str:
        return f"{self.issuer_url(issuer_id)}/jwks"

    def token_endpoint_url(self, issuer_id: str) -> str:
        return f"{self.issuer_url(issuer_id)}/token"

    def authorization_endpoint_url(self, issuer_id: str) -> str:
        return f"{self.issuer_url(issuer_id)}/authorize"

    def enqueue_callback(self, callback: TokenCallback) -> None:
        self.handler.enqueue_token_callback(callback)

    def issue_token(
        self,
        issuer_id: str = "default",
        subject: str = "default",
        audience: Optional[List[str]] = None,
        claims: Optional[Dict[str, Any]] = None,
        expiry: int = 3600,
    ) -> str:
        """Sign an access token for ``issuer_id`` without going through HTTP."""
        audience = audience or ["default"]
        token_claims: Dict[str, Any] = {
            "iss": self.issuer_url(issuer_id),
            "sub": subject,
            "aud": audience[0] if len(audience) == 1 else audience,
            "tid": issuer_id,
        }
        token_claims.update(claims or {})
        return self.handler.token_provider.jwt(token_claims, timedelta(seconds=expiry), issuer_id)
