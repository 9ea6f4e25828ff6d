"""
Client credentials grant (RFC 6749 section 4.4).
"""

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.exceptions import OAuth2Error, OAuth2Exception
from mockoauth2.oauth.grants.base import GrantHandler, TokenResponse
from mockoauth2.oauth.http import OAuth2HttpRequest
from mockoauth2.oauth.token_provider import TokenProvider


class ClientCredentialsGrantHandler(GrantHandler):
    """Issues an access token whose subject is the client itself."""

    def __init__(self, token_provider: TokenProvider):
        self.token_provider = token_provider

    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        token_request = request.as_token_request()
        if token_request.client_id is None:
            raise OAuth2Exception(
                OAuth2Error.INVALID_CLIENT.with_description("Missing required client authentication")
            )
        access_token = self.token_provider.access_token(token_request, issuer_url, callback)
        return TokenResponse(
            access_token=access_token,
            expires_in=callback.token_expiry(),
            scope=token_request.scope,
        )
