"""
OAuth 2.0 error objects and exceptions for the mock authorization server.

Author: Mock OAuth2 Server Team
Date: 2026-10-18
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class ErrorObject:
    """OAuth 2.0 error code with description and implied HTTP status."""

    code: str
    description: Optional[str] = None
    http_status: int = 400

    def with_description(self, description: str) -> "ErrorObject":
        """Return a copy of this error with another description."""
        return replace(self, description=description)

    def to_json(self) -> dict:
        body = {"error": self.code}
        if self.description:
            body["error_description"] = self.description
        return body


class OAuth2Error:
    """Standard error objects (RFC 6749 section 5.2, RFC 6750 section 3.1)."""

    INVALID_REQUEST = ErrorObject("invalid_request", "Invalid request", 400)
    INVALID_CLIENT = ErrorObject("invalid_client", "Client authentication failed", 401)
    INVALID_GRANT = ErrorObject("invalid_grant", "Invalid grant", 400)
    UNAUTHORIZED_CLIENT = ErrorObject("unauthorized_client", "Unauthorized client", 400)
    UNSUPPORTED_GRANT_TYPE = ErrorObject("unsupported_grant_type", "Unsupported grant type", 400)
    INVALID_SCOPE = ErrorObject("invalid_scope", "Invalid, unknown or malformed scope", 400)
    INVALID_TOKEN = ErrorObject("invalid_token", "Invalid access token", 401)
    SERVER_ERROR = ErrorObject("server_error", "Unexpected server error", 500)


class GeneralOAuth2Error(Exception):
    """Base exception for OAuth 2.0 failures, optionally carrying an ErrorObject."""

    def __init__(self, message: str, error_object: Optional[ErrorObject] = None):
        super().__init__(message)
        self.message = message
        self.error_object = error_object


class OAuth2Exception(GeneralOAuth2Error):
    """Protocol error that always carries its own ErrorObject."""

    def __init__(self, error_object: ErrorObject, message: Optional[str] = None):
        super().__init__(message or error_object.description or error_object.code, error_object)


class ParseError(GeneralOAuth2Error):
    """Raised when an authorization or token request is malformed."""


class UnsupportedGrantError(OAuth2Exception):
    """Raised when the grant type has no registered handler."""

    def __init__(self, grant_type: Optional[str]):
        if grant_type:
            description = f"grant_type {grant_type} not supported."
        else:
            description = "grant_type is missing."
        super().__init__(OAuth2Error.INVALID_GRANT.with_description(description))
        self.grant_type = grant_type


class TokenStateError(OAuth2Exception):
    """Raised when a code or refresh token is unknown, expired or already used."""

    def __init__(self, description: str):
        super().__init__(OAuth2Error.INVALID_GRANT.with_description(description))


class ClientInputError(ValueError):
    """Raised when a test-utility request body cannot be used (HTTP 400)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def invalid_grant(grant_type: Optional[str]):
    """Raise the error for a grant type that cannot be dispatched."""
    raise UnsupportedGrantError(grant_type)


def invalid_request(description: str) -> ParseError:
    """Build a ParseError carrying an ``invalid_request`` error object."""
    return ParseError(description, OAuth2Error.INVALID_REQUEST.with_description(description))
