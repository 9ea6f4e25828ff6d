"""
Authorization code grant (RFC 6749 section 4.1) with PKCE (RFC 7636).
"""

import base64
import hashlib
import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from mockoauth2.oauth.callbacks import Login, LoginTokenCallback, TokenCallback
from mockoauth2.oauth.exceptions import OAuth2Error, OAuth2Exception, TokenStateError
from mockoauth2.oauth.grants.base import GrantHandler, TokenResponse
from mockoauth2.oauth.grants.refresh_token_manager import (
    MAX_TRACKED_TOKENS,
    RefreshTokenGrant,
    RefreshTokenManager,
)
from mockoauth2.oauth.http import (
    AuthenticationRequest,
    AuthorizationCodeResponse,
    OAuth2HttpRequest,
)
from mockoauth2.oauth.token_provider import TokenProvider

logger = logging.getLogger(__name__)


@dataclass
class _IssuedCode:
    issuer_id: str
    auth_request: AuthenticationRequest
    login: Optional[Login] = None


class AuthorizationCodeHandler(GrantHandler):
    """Issues authorization codes and redeems them at the token endpoint.

    At most ``max_codes`` unredeemed codes are kept; the oldest is dropped first.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        refresh_token_manager: RefreshTokenManager,
        max_codes: int = MAX_TRACKED_TOKENS,
    ):
        self.token_provider = token_provider
        self.refresh_token_manager = refresh_token_manager
        self.max_codes = max_codes
        self._codes: "OrderedDict[str, _IssuedCode]" = OrderedDict()
        self._lock = threading.Lock()

    def authorization_code_response(
        self,
        auth_request: AuthenticationRequest,
        issuer_id: str,
        login: Optional[Login] = None,
    ) -> AuthorizationCodeResponse:
        """Issue a one-time code bound to the issuer and the request's client, scope and nonce."""
        code = str(uuid.uuid4())
        with self._lock:
            self._codes[code] = _IssuedCode(issuer_id, auth_request, login)
            while len(self._codes) > self.max_codes:
                self._codes.popitem(last=False)
        logger.debug(f"issued authorization code for client {auth_request.client_id}")
        return AuthorizationCodeResponse(
            redirect_uri=auth_request.redirect_uri,
            code=code,
            state=auth_request.state,
            response_mode=auth_request.response_mode,
        )

    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        token_request = request.as_token_request()
        code = token_request.require("code")
        issued = self._take_code(code, request.issuer_id())
        auth_request = issued.auth_request

        redirect_uri = token_request.param("redirect_uri")
        if redirect_uri and redirect_uri != auth_request.redirect_uri:
            raise TokenStateError("redirect_uri does not match the authorization request")
        self._verify_pkce(auth_request, token_request.param("code_verifier"))

        if token_request.client_id is None:
            token_request.client_id = auth_request.client_id
        if token_request.scope is None:
            token_request.scope = " ".join(auth_request.scope)

        if issued.login is not None:
            callback = LoginTokenCallback(issued.login, callback)

        nonce = auth_request.nonce
        id_token = self.token_provider.id_token(token_request, issuer_url, callback, nonce)
        access_token = self.token_provider.access_token(token_request, issuer_url, callback, nonce)
        refresh_token = self.refresh_token_manager.refresh_token(
            RefreshTokenGrant(
                issuer_id=issued.issuer_id,
                callback=callback,
                client_id=token_request.client_id,
                scope=token_request.scope,
                nonce=nonce,
            )
        )
        return TokenResponse(
            access_token=access_token,
            id_token=id_token,
            refresh_token=refresh_token,
            expires_in=callback.token_expiry(),
            scope=token_request.scope,
        )

    def _take_code(self, code: str, issuer_id: str) -> _IssuedCode:
        with self._lock:
            issued = self._codes.get(code)
            if issued is None:
                raise TokenStateError("code is invalid, expired or has already been used")
            if issued.issuer_id != issuer_id:
                raise TokenStateError("code was issued by another issuer")
            del self._codes[code]
        return issued

    @staticmethod
    def _verify_pkce(auth_request: AuthenticationRequest, code_verifier: Optional[str]) -> None:
        if auth_request.code_challenge is None:
            return
        if code_verifier is None:
            raise OAuth2Exception(
                OAuth2Error.INVALID_GRANT.with_description("code_verifier is required")
            )
        method = auth_request.code_challenge_method or "plain"
        if method == "S256":
            digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
            computed = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        else:
            computed = code_verifier
        if computed != auth_request.code_challenge:
            raise OAuth2Exception(
                OAuth2Error.INVALID_GRANT.with_description("code_verifier does not match code_challenge")
            )
