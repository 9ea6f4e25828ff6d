"""
OAuth 2.0 / OIDC authorization server internals.

Provides grant handling, token callbacks and JWT issuance.
"""

from mockoauth2.oauth.exceptions import (
    ClientInputError,
    ErrorObject,
    GeneralOAuth2Error,
    OAuth2Error,
    OAuth2Exception,
    ParseError,
    TokenStateError,
    UnsupportedGrantError,
)
from mockoauth2.oauth.callbacks import (
    DefaultTokenCallback,
    Login,
    RequestMapping,
    RequestMappingTokenCallback,
    TokenCallback,
    TokenCallbackQueue,
)
from mockoauth2.oauth.token_provider import TokenProvider

__all__ = [
    # Exceptions
    "ClientInputError",
    "ErrorObject",
    "GeneralOAuth2Error",
    "OAuth2Error",
    "OAuth2Exception",
    "ParseError",
    "TokenStateError",
    "UnsupportedGrantError",
    # Token callbacks
    "DefaultTokenCallback",
    "Login",
    "RequestMapping",
    "RequestMappingTokenCallback",
    "TokenCallback",
    "TokenCallbackQueue",
    # Token provider
    "TokenProvider",
]
