"""
JWT Token Provider for the mock authorization server.

Holds one RSA signing key per issuer and issues signed JWTs
(ID tokens, access tokens and arbitrary test tokens).

Author: Mock OAuth2 Server Team
Date: 2026-10-18
"""

import logging
import threading
import uuid
from base64 import urlsafe_b64encode
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import jwt
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.http import TokenRequest

logger = logging.getLogger(__name__)


class TokenProvider:
    """
    Issues RS256-signed JWTs for any number of issuers.

    Supports:
    - Lazily generated RSA key pair per issuer id (``kid`` = issuer id)
    - Public and full (private) JWK sets
    - ID token, access token and exchanged access token creation
    """

    ALGORITHM = "RS256"
    KEY_SIZE = 2048

    def __init__(self, key_size: int = KEY_SIZE):
        """
        Initialize token provider.

        Args:
            key_size: RSA key size in bits for newly generated keys
        """
        self.key_size = key_size
        self._keys: Dict[str, rsa.RSAPrivateKey] = {}
        self._lock = threading.Lock()

    def public_jwk_set(self, issuer_id: str) -> Dict[str, Any]:
        """Get the public JSON Web Key Set for an issuer."""
        return {"keys": [self._jwk(issuer_id, include_private=False)]}

    def full_jwk_set(self, issuer_id: str) -> Dict[str, Any]:
        """Get the JSON Web Key Set for an issuer including private key material."""
        return {"keys": [self._jwk(issuer_id, include_private=True)]}

    def public_key_pem(self, issuer_id: str) -> bytes:
        return self._private_key(issuer_id).public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def jwt(
        self,
        claims: Dict[str, Any],
        expiry: timedelta = timedelta(hours=1),
        issuer_id: str = "default",
        type_header: str = "JWT",
    ) -> str:
        """
        Sign an arbitrary claim set.

        Args:
            claims: Claims to include; they override the generated time claims
            expiry: Token lifetime
            issuer_id: Issuer whose key signs the token
            type_header: Value of the ``typ`` header

        Returns:
            Compact serialized JWT
        """
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int((now + expiry).timestamp()),
        }
        payload.update(claims)
        return self._sign(payload, issuer_id, type_header)

    def id_token(
        self,
        token_request: TokenRequest,
        issuer_url: str,
        callback: TokenCallback,
        nonce: Optional[str] = None,
    ) -> str:
        """Create an ID token; audience is the requesting client."""
        claims = self._default_claims(
            issuer_url,
            callback.subject(token_request),
            [token_request.client_id_or_default()],
            callback.token_expiry(),
        )
        if nonce:
            claims["nonce"] = nonce
        claims.update(callback.add_claims(token_request))
        return self._sign(claims, _issuer_id(issuer_url), callback.type_header(token_request))

    def access_token(
        self,
        token_request: TokenRequest,
        issuer_url: str,
        callback: TokenCallback,
        nonce: Optional[str] = None,
    ) -> str:
        """Create an access token; audience comes from the callback."""
        claims = self._default_claims(
            issuer_url,
            callback.subject(token_request),
            callback.audience(token_request),
            callback.token_expiry(),
        )
        if nonce:
            claims["nonce"] = nonce
        claims.update(callback.add_claims(token_request))
        return self._sign(claims, _issuer_id(issuer_url), callback.type_header(token_request))

    def exchange_access_token(
        self,
        token_request: TokenRequest,
        issuer_url: str,
        received_claims: Dict[str, Any],
        callback: TokenCallback,
    ) -> str:
        """Re-issue a received claim set as an access token from this issuer."""
        claims = dict(received_claims)
        claims.update(
            self._default_claims(
                issuer_url,
                received_claims.get("sub") or callback.subject(token_request),
                callback.audience(token_request),
                callback.token_expiry(),
            )
        )
        claims.update(callback.add_claims(token_request))
        return self._sign(claims, _issuer_id(issuer_url), callback.type_header(token_request))

    def _default_claims(self, issuer_url: str, subject: Optional[str], audience, expiry: int) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "iss": issuer_url,
            "aud": audience[0] if len(audience) == 1 else list(audience),
            "iat": int(now.timestamp()),
            "nbf": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=expiry)).timestamp()),
            "jti": str(uuid.uuid4()),
        }
        if subject is not None:
            claims["sub"] = subject
        return claims

    def _sign(self, claims: Dict[str, Any], issuer_id: str, type_header: str) -> str:
        token = jwt.encode(
            claims,
            self._private_key_pem(issuer_id),
            algorithm=self.ALGORITHM,
            headers={"kid": issuer_id, "typ": type_header},
        )
        logger.info(
            f"Issued token for issuer={issuer_id}, "
            f"sub={claims.get('sub')}, exp={claims.get('exp')}"
        )
        return token

    def _private_key(self, issuer_id: str) -> rsa.RSAPrivateKey:
        with self._lock:
            key = self._keys.get(issuer_id)
            if key is None:
                logger.info(f"Generating RSA key pair for issuer {issuer_id}")
                key = rsa.generate_private_key(
                    public_exponent=65537,
                    key_size=self.key_size,
                    backend=default_backend(),
                )
                self._keys[issuer_id] = key
            return key

    def _private_key_pem(self, issuer_id: str) -> bytes:
        return self._private_key(issuer_id).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def _jwk(self, issuer_id: str, include_private: bool) -> Dict[str, str]:
        private_key = self._private_key(issuer_id)
        public_numbers = private_key.public_key().public_numbers()
        jwk = {
            "kty": "RSA",
            "use": "sig",
            "kid": issuer_id,
            "alg": self.ALGORITHM,
            "n": self._int_to_base64url(public_numbers.n),
            "e": self._int_to_base64url(public_numbers.e),
        }
        if include_private:
            numbers = private_key.private_numbers()
            jwk.update({
                "d": self._int_to_base64url(numbers.d),
                "p": self._int_to_base64url(numbers.p),
                "q": self._int_to_base64url(numbers.q),
                "dp": self._int_to_base64url(numbers.dmp1),
                "dq": self._int_to_base64url(numbers.dmq1),
                "qi": self._int_to_base64url(numbers.iqmp),
            })
        return jwk

    @staticmethod
    def _int_to_base64url(value: int) -> str:
        """
        Convert integer to base64url string.

        Args:
            value: Integer value

        Returns:
            Base64url encoded string without padding
        """
        value_bytes = value.to_bytes((value.bit_length() + 7) // 8, byteorder="big")
        return urlsafe_b64encode(value_bytes).decode("utf-8").rstrip("=")


def _issuer_id(issuer_url: str) -> str:
    segments = [s for s in urlsplit(issuer_url).path.split("/") if s]
    return segments[0] if segments else "default"
