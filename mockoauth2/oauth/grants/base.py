"""
Grant handler contract and shared token response model.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.exceptions import invalid_request
from mockoauth2.oauth.http import OAuth2HttpRequest


class GrantType(str, Enum):
    """Supported OAuth 2.0 grant types."""

    AUTHORIZATION_CODE = "authorization_code"
    CLIENT_CREDENTIALS = "client_credentials"
    JWT_BEARER = "urn:ietf:params:oauth:grant-type:jwt-bearer"
    REFRESH_TOKEN = "refresh_token"
    TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["GrantType"]:
        """Get the grant type for a request value, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


ACCESS_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"


@dataclass
class TokenResponse:
    """OAuth 2.0 token response."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 3600
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    issued_token_type: Optional[str] = None
    scope: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class GrantHandler(ABC):
    """Issues tokens for one grant type."""

    @abstractmethod
    def token_response(
        self,
        request: OAuth2HttpRequest,
        issuer_url: str,
        callback: TokenCallback,
    ) -> TokenResponse:
        """
        Build the token response for a token endpoint request.

        Args:
            request: Incoming ``POST /token`` request
            issuer_url: URL of the issuer the request was sent to
            callback: Token callback resolved for the issuer

        Returns:
            Token response to serialize as JSON

        Raises:
            GeneralOAuth2Error: On grant-specific violations
        """


def unverified_claims(token: str, parameter: str) -> Dict[str, Any]:
    """Decode the claims of a JWT parameter without verifying its signature."""
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise invalid_request(f"Invalid {parameter}: {e}")
