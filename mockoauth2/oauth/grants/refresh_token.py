"""
Refresh token grant (RFC 6749 section 6).
"""

import logging

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.grants.base import GrantHandler, TokenResponse
from mockoauth2.oauth.grants.refresh_token_manager import RefreshTokenGrant, RefreshTokenManager
from mockoauth2.oauth.http import OAuth2HttpRequest
from mockoauth2.oauth.token_provider import TokenProvider

logger = logging.getLogger(__name__)


class RefreshTokenGrantHandler(GrantHandler):
    """Reissues tokens from the context bound to a single-use refresh token.

    The callback resolved for the request is ignored; the one bound to the
    refresh token decides the token contents.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        refresh_token_manager: RefreshTokenManager,
        rotate: bool = True,
    ):
        self.token_provider = token_provider
        self.refresh_token_manager = refresh_token_manager
        self.rotate = rotate

    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        token_request = request.as_token_request()
        grant = self.refresh_token_manager.consume(
            token_request.require("refresh_token"), request.issuer_id()
        )

        token_request.client_id = token_request.client_id or grant.client_id
        token_request.scope = token_request.scope or grant.scope

        bound_callback = grant.callback
        id_token = self.token_provider.id_token(token_request, issuer_url, bound_callback, grant.nonce)
        access_token = self.token_provider.access_token(token_request, issuer_url, bound_callback, grant.nonce)

        refresh_token = None
        if self.rotate:
            refresh_token = self.refresh_token_manager.refresh_token(
                RefreshTokenGrant(
                    issuer_id=grant.issuer_id,
                    callback=bound_callback,
                    client_id=token_request.client_id,
                    scope=token_request.scope,
                    nonce=grant.nonce,
                )
            )
        return TokenResponse(
            access_token=access_token,
            id_token=id_token,
            refresh_token=refresh_token,
            expires_in=bound_callback.token_expiry(),
            scope=token_request.scope,
        )
