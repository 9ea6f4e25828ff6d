"""
JWT bearer assertion grant (RFC 7523 section 2.1).
"""

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.grants.base import GrantHandler, TokenResponse, unverified_claims
from mockoauth2.oauth.http import OAuth2HttpRequest
from mockoauth2.oauth.token_provider import TokenProvider


class JwtBearerGrantHandler(GrantHandler):
    """Re-issues the claims of a JWT assertion as an access token.

    The assertion's signature is not verified.
    """

    def __init__(self, token_provider: TokenProvider):
        self.token_provider = token_provider

    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        token_request = request.as_token_request()
        received_claims = unverified_claims(token_request.require("assertion"), "assertion")
        access_token = self.token_provider.exchange_access_token(
            token_request, issuer_url, received_claims, callback
        )
        return TokenResponse(
            access_token=access_token,
            expires_in=callback.token_expiry(),
            scope=token_request.scope or received_claims.get("scope"),
        )
