"""
JWT Token Validator for the mock authorization server.

Validates access tokens presented to the userinfo endpoint against the
issuer's signing key.

Author: Mock OAuth2 Server Team
Date: 2026-10-18
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import jwt


logger = logging.getLogger(__name__)


class TokenValidationError(Exception):
    """Raised when a token fails validation."""


@dataclass
class ValidationResult:
    """Token validation result."""

    valid: bool
    claims: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class TokenValidator:
    """
    Validates JWT tokens issued by the mock authorization server.

    Supports:
    - Signature verification with the issuer's public key
    - Token expiration validation
    - Issuer validation
    """

    def __init__(self, issuer: str, public_key: bytes):
        """
        Initialize token validator.

        Args:
            issuer: Expected ``iss`` claim (the issuer URL)
            public_key: RSA public key (PEM format)
        """
        self.issuer = issuer
        self.public_key = public_key

    def validate_token(self, token: str) -> ValidationResult:
        """
        Validate JWT token.

        Args:
            token: JWT token string

        Returns:
            Validation result with claims if valid
        """
        try:
            claims = self._decode_token(token)
            self._validate_issuer(claims)
            self._validate_expiration(claims)
        except TokenValidationError as e:
            logger.warning(f"Invalid token: {e}")
            return ValidationResult(valid=False, error=str(e))

        logger.debug(f"Token validated successfully for sub={claims.get('sub')}")
        return ValidationResult(valid=True, claims=claims)

    def _decode_token(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.public_key,
                algorithms=["RS256"],
                options={
                    "verify_exp": False,  # validated separately
                    "verify_aud": False,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise TokenValidationError(f"Token signature verification failed: {e}")
        except jwt.PyJWTError as e:
            raise TokenValidationError(f"Token decode failed: {e}")

    def _validate_issuer(self, claims: Dict[str, Any]) -> None:
        if claims.get("iss") != self.issuer:
            raise TokenValidationError(
                f"Invalid issuer. Expected: {self.issuer}, Got: {claims.get('iss')}"
            )

    def _validate_expiration(self, claims: Dict[str, Any]) -> None:
        exp = claims.get("exp")
        if exp is None:
            return
        now = datetime.now(timezone.utc)
        exp_time = datetime.fromtimestamp(exp, tz=timezone.utc)
        if now >= exp_time:
            raise TokenValidationError(
                f"Token expired at {exp_time.isoformat()}. Current time: {now.isoformat()}"
            )
