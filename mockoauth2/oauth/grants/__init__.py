"""
Grant handlers, one per supported OAuth 2.0 grant type.
"""

from mockoauth2.oauth.grants.base import (
    ACCESS_TOKEN_TYPE,
    GrantHandler,
    GrantType,
    TokenResponse,
)
from mockoauth2.oauth.grants.authorization_code import AuthorizationCodeHandler
from mockoauth2.oauth.grants.client_credentials import ClientCredentialsGrantHandler
from mockoauth2.oauth.grants.jwt_bearer import JwtBearerGrantHandler
from mockoauth2.oauth.grants.refresh_token import RefreshTokenGrantHandler
from mockoauth2.oauth.grants.refresh_token_manager import RefreshTokenGrant, RefreshTokenManager
from mockoauth2.oauth.grants.token_exchange import TokenExchangeGrantHandler

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "GrantHandler",
    "GrantType",
    "TokenResponse",
    "AuthorizationCodeHandler",
    "ClientCredentialsGrantHandler",
    "JwtBearerGrantHandler",
    "RefreshTokenGrantHandler",
    "RefreshTokenGrant",
    "RefreshTokenManager",
    "TokenExchangeGrantHandler",
]
