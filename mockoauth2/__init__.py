"""
Mock OAuth2 Server: OAuth2 / OpenID Connect authorization server for tests

Issues real signed JWTs for any issuer and lets tests control the claims of
the next token.
"""

__version__ = "0.1.0"

from .server import MockOAuth2Server

__all__ = ["MockOAuth2Server", "__version__"]
