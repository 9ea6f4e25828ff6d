"""
Token exchange grant (RFC 8693).
"""

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.grants.base import (
    ACCESS_TOKEN_TYPE,
    GrantHandler,
    TokenResponse,
    unverified_claims,
)
from mockoauth2.oauth.http import OAuth2HttpRequest
from mockoauth2.oauth.token_provider import TokenProvider


class TokenExchangeGrantHandler(GrantHandler):
    """Exchanges a subject token for an access token from this issuer."""

    def __init__(self, token_provider: TokenProvider):
        self.token_provider = token_provider

    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        token_request = request.as_token_request()
        received_claims = unverified_claims(token_request.require("subject_token"), "subject_token")
        access_token = self.token_provider.exchange_access_token(
            token_request, issuer_url, received_claims, callback
        )
        return TokenResponse(
            access_token=access_token,
            issued_token_type=ACCESS_TOKEN_TYPE,
            expires_in=callback.token_expiry(),
            scope=token_request.scope,
        )
