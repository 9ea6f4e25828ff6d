"""
Request handler for the mock OAuth2 / OpenID Connect authorization server.

Classifies requests into the server's endpoints, dispatches token requests
to the grant handler for their grant type, and resolves which token
callback decides the issued token's contents.

Author: Mock OAuth2 Server Team
Date: 2026-10-18
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from mockoauth2.core.config_manager import MockOAuth2Config
from mockoauth2.oauth.callbacks import DefaultTokenCallback, TokenCallback, TokenCallbackQueue
from mockoauth2.oauth.exception_mapper import ExceptionMapper
from mockoauth2.oauth.exceptions import ClientInputError, OAuth2Error, OAuth2Exception, invalid_grant
from mockoauth2.oauth.grants import (
    AuthorizationCodeHandler,
    ClientCredentialsGrantHandler,
    GrantHandler,
    GrantType,
    JwtBearerGrantHandler,
    RefreshTokenGrantHandler,
    RefreshTokenManager,
    TokenExchangeGrantHandler,
)
from mockoauth2.oauth.http import (
    OAuth2HttpRequest,
    OAuth2HttpResponse,
    authentication_success,
    html_response,
    json_response,
    redirect_response,
    text_response,
)
from mockoauth2.oauth.login import LoginRequestHandler
from mockoauth2.oauth.metrics import OAuth2Metrics
from mockoauth2.oauth.token_provider import TokenProvider
from mockoauth2.oauth.token_validator import TokenValidator

logger = logging.getLogger(__name__)

OIDC_WELL_KNOWN = "/{issuer_id}/.well-known/openid-configuration"
OAUTH2_WELL_KNOWN = "/{issuer_id}/.well-known/oauth-authorization-server"
JWKS = "/{issuer_id}/jwks"
AUTHORIZATION = "/{issuer_id}/authorize"
TOKEN = "/{issuer_id}/token"
USER_INFO = "/{issuer_id}/userinfo"
TESTUTILS_JWKS = "/{issuer_id}/testutils/jwks"
TESTUTILS_SIGN = "/{issuer_id}/testutils/token"
ANY_PATH = "/{full_path:path}"

ANY_METHOD = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")

DEFAULT_TEST_TOKEN_EXPIRY = "PT1H"

_duration = TypeAdapter(timedelta)

# days, hours, minutes and (fractional) seconds, at least one present
_ISO_DURATION = re.compile(
    r"P(?=\d|T\d)(?:\d+D)?(?:T(?=\d)(?:\d+H)?(?:\d+M)?(?:\d+(?:\.\d{1,9})?S)?)?",
    re.IGNORECASE,
)

RouteHandler = Callable[[OAuth2HttpRequest], OAuth2HttpResponse]


@dataclass(frozen=True)
class Route:
    """HTTP methods and path pattern served by a handler function."""

    methods: Tuple[str, ...]
    path: str
    handler: RouteHandler
    name: str


class OAuth2HttpRequestHandler:
    """
    Serves every endpoint of the mock authorization server.

    One instance serves all concurrent requests. The grant dispatch table and
    route table are built once here and never modified.
    """

    def __init__(
        self,
        config: Optional[MockOAuth2Config] = None,
        token_provider: Optional[TokenProvider] = None,
        token_callback_queue: Optional[TokenCallbackQueue] = None,
        metrics: Optional[OAuth2Metrics] = None,
    ):
        """
        Initialize request handler.

        Args:
            config: Server configuration, defaults if None
            token_provider: Key holder and JWT signer, a new one if None
            token_callback_queue: Queue of one-shot token callbacks, a new one if None
            metrics: Prometheus metrics collector, a new one if None
        """
        self.config = config or MockOAuth2Config()
        self.token_provider = token_provider or TokenProvider()
        self.token_callback_queue = token_callback_queue or TokenCallbackQueue()
        self.metrics = metrics or OAuth2Metrics()
        self.static_token_callbacks: Tuple[TokenCallback, ...] = tuple(
            self.config.static_token_callbacks()
        )

        self.login_request_handler = LoginRequestHandler()
        self.refresh_token_manager = RefreshTokenManager()
        self.exception_handler = ExceptionMapper(self.metrics)

        self.grant_handlers: Mapping[GrantType, GrantHandler] = MappingProxyType({
            GrantType.AUTHORIZATION_CODE: AuthorizationCodeHandler(
                self.token_provider, self.refresh_token_manager
            ),
            GrantType.CLIENT_CREDENTIALS: ClientCredentialsGrantHandler(self.token_provider),
            GrantType.JWT_BEARER: JwtBearerGrantHandler(self.token_provider),
            GrantType.TOKEN_EXCHANGE: TokenExchangeGrantHandler(self.token_provider),
            GrantType.REFRESH_TOKEN: RefreshTokenGrantHandler(
                self.token_provider,
                self.refresh_token_manager,
                rotate=self.config.rotate_refresh_tokens,
            ),
        })

        self.routes: Tuple[Route, ...] = tuple(self._build_routes())

    def enqueue_token_callback(self, callback: TokenCallback) -> None:
        """Use ``callback`` for the next token issued by its issuer."""
        self.token_callback_queue.add(callback)

    def _build_routes(self) -> List[Route]:
        end_session_path = "/{issuer_id}/" + self.config.end_session_path.strip("/")
        return [
            Route(("GET",), "/favicon.ico", self.favicon, "favicon"),
            Route(("GET",), "/metrics", self.metrics_endpoint, "metrics"),
            Route(("GET",), OIDC_WELL_KNOWN, self.well_known, "oidc_well_known"),
            Route(("GET",), OAUTH2_WELL_KNOWN, self.well_known, "oauth2_well_known"),
            Route(("GET",), JWKS, self.jwks, "jwks"),
            Route(("GET",), AUTHORIZATION, self.authorization_get, "authorization_get"),
            Route(("POST",), AUTHORIZATION, self.authorization_post, "authorization_post"),
            Route(("GET",), TOKEN, self.token_get, "token_get"),
            Route(("POST",), TOKEN, self.token_post, "token_post"),
            Route(ANY_METHOD, end_session_path, self.end_session, "end_session"),
            Route(("GET", "POST"), USER_INFO, self.userinfo, "userinfo"),
            Route(("GET",), TESTUTILS_JWKS, self.testutils_jwks, "testutils_jwks"),
            Route(("POST",), TESTUTILS_SIGN, self.testutils_sign, "testutils_sign"),
            Route(("OPTIONS",), ANY_PATH, self.preflight, "preflight"),
        ]

    def favicon(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        return OAuth2HttpResponse(status=200)

    def metrics_endpoint(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        return OAuth2HttpResponse(
            status=200,
            headers={"Content-Type": self.metrics.content_type},
            body=self.metrics.export().decode("utf-8"),
        )

    def well_known(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        logger.debug(f"returning well-known json data for url={request.url}")
        return json_response(self.well_known_document(request.issuer_url()))

    def well_known_document(self, issuer_url: str) -> Dict[str, Any]:
        """Discovery metadata with every endpoint rooted at ``issuer_url``."""
        return {
            "issuer": issuer_url,
            "authorization_endpoint": f"{issuer_url}/authorize",
            "end_session_endpoint": f"{issuer_url}/{self.config.end_session_path.strip('/')}",
            "token_endpoint": f"{issuer_url}/token",
            "userinfo_endpoint": f"{issuer_url}/userinfo",
            "jwks_uri": f"{issuer_url}/jwks",
            "response_types_supported": ["query", "fragment", "form_post"],
            "response_modes_supported": ["query", "fragment", "form_post"],
            "subject_types_supported": ["public"],
            "id_token_signing_alg_values_supported": [TokenProvider.ALGORITHM],
            "grant_types_supported": [g.value for g in self.grant_handlers],
            "code_challenge_methods_supported": ["plain", "S256"],
            "token_endpoint_auth_methods_supported": [
                "client_secret_basic",
                "client_secret_post",
                "private_key_jwt",
                "none",
            ],
        }

    def jwks(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        logger.debug(f"handle jwks request on url={request.url}")
        return json_response(self.token_provider.public_jwk_set(request.issuer_id()))

    @property
    def authorization_code_handler(self) -> AuthorizationCodeHandler:
        return self.grant_handlers[GrantType.AUTHORIZATION_CODE]

    def authorization_get(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        auth_request = request.as_authentication_request()
        if self.config.interactive_login or auth_request.is_prompt():
            return html_response(self.login_request_handler.login_html(request))
        return authentication_success(
            self.authorization_code_handler.authorization_code_response(
                auth_request, request.issuer_id()
            )
        )

    def authorization_post(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        auth_request = request.as_authentication_request()
        login = self.login_request_handler.login_submit(request)
        return authentication_success(
            self.authorization_code_handler.authorization_code_response(
                auth_request, request.issuer_id(), login
            )
        )

    def end_session(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        logger.debug(f"handle end session request {request}")
        post_logout_redirect_uri = request.query_parameter("post_logout_redirect_uri")
        if post_logout_redirect_uri:
            return redirect_response(post_logout_redirect_uri)
        return html_response("logged out")

    def token_get(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        return text_response("unsupported method", status=405)

    def token_post(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        logger.debug(f"handle token request {request}")
        grant_type = request.grant_type()
        issuer_id = request.issuer_id()
        token_callback = self.token_callback_from_queue_or_default(issuer_id)
        grant_handler = self.grant_handlers.get(GrantType.parse(grant_type)) or invalid_grant(grant_type)
        token_response = grant_handler.token_response(request, request.issuer_url(), token_callback)
        self.metrics.record_token_issued(issuer_id, grant_type)
        return json_response(
            token_response.to_json(),
            headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
        )

    def token_callback_from_queue_or_default(self, issuer_id: str) -> TokenCallback:
        """
        Resolve the callback deciding the next token for ``issuer_id``.

        The head of the queue is taken only when it belongs to ``issuer_id``;
        otherwise the first static callback for the issuer is used, then a
        default one.
        """
        queued = self.token_callback_queue.take_if_issuer(issuer_id)
        if queued is not None:
            logger.debug(f"using enqueued token callback for issuer {issuer_id}")
            self.metrics.record_callback_consumed(issuer_id)
            return queued
        for callback in self.static_token_callbacks:
            if callback.issuer_id() == issuer_id:
                return callback
        return DefaultTokenCallback(issuer_id=issuer_id)

    def userinfo(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        token = request.bearer_token()
        if token is None:
            raise OAuth2Exception(
                OAuth2Error.INVALID_TOKEN.with_description("missing bearer token")
            )
        validator = TokenValidator(
            issuer=request.issuer_url(),
            public_key=self.token_provider.public_key_pem(request.issuer_id()),
        )
        result = validator.validate_token(token)
        if not result.valid:
            raise OAuth2Exception(OAuth2Error.INVALID_TOKEN.with_description(result.error))
        return json_response(result.claims)

    def preflight(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        return OAuth2HttpResponse(
            status=200,
            headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    def testutils_jwks(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        return json_response(self.token_provider.full_jwk_set(request.issuer_id()))

    def testutils_sign(self, request: OAuth2HttpRequest) -> OAuth2HttpResponse:
        issuer_id = request.issuer_id()
        try:
            claims, expiry = self._parse_sign_request(request.body)
        except ClientInputError as e:
            logger.warning(f"rejected test token request on url={request.url}: {e.message}")
            return text_response(e.message, status=400)
        return text_response(self.token_provider.jwt(claims, expiry, issuer_id))

    @staticmethod
    def _parse_sign_request(body: str) -> Tuple[Dict[str, str], timedelta]:
        """
        Parse a ``{"claims": {...}, "expiry": "PT1H"}`` body.

        Claim values that are not strings are kept as their JSON text.

        Raises:
            ClientInputError: If the body is not a JSON object or the expiry is
                not an ISO-8601 duration
        """
        try:
            parsed = json.loads(body or "{}")
        except json.JSONDecodeError as e:
            raise ClientInputError(str(e))
        if not isinstance(parsed, dict):
            raise ClientInputError("request body must be a JSON object")

        raw_claims = parsed.get("claims") or {}
        if not isinstance(raw_claims, dict):
            raise ClientInputError("claims must be a JSON object")
        claims = {
            k: v if isinstance(v, str) else json.dumps(v)
            for k, v in raw_claims.items()
        }

        expiry_text = parsed.get("expiry")
        if expiry_text is None:
            expiry_text = DEFAULT_TEST_TOKEN_EXPIRY
        expiry_text = str(expiry_text)
        try:
            if not _ISO_DURATION.fullmatch(expiry_text):
                raise ValueError("Text cannot be parsed to a Duration")
            expiry = _duration.validate_python(expiry_text.upper())
        except (ValueError, ValidationError) as e:
            raise ClientInputError(
                str(e)
                + f"\n`{expiry_text}`"
                + "\nExamples of ISO-8601 duration string format:\n"
                + "P1D (1 day), "
                + "PT1H (1 hour), "
                + "P0DT0H10M30S (0 days, 0 hours, 10 minutes, 30 seconds)"
            )
        return claims, expiry
