"""
Token callbacks: per-issuer control of subject, audience, claims and expiry.

Tests inject one-shot callbacks through ``TokenCallbackQueue``; static ones
come from configuration.

Author: Mock OAuth2 Server Team
Date: 2026-10-18
"""

import json
import logging
import re
import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

from mockoauth2.oauth.http import TokenRequest

logger = logging.getLogger(__name__)

CLIENT_CREDENTIALS = "client_credentials"
TOKEN_EXCHANGE = "urn:ietf:params:oauth:grant-type:token-exchange"

_PLACEHOLDER = re.compile(r"\$\{(\w+)\}")


class TokenCallback(ABC):
    """Decides the contents of the next token issued for an issuer."""

    @abstractmethod
    def issuer_id(self) -> str:
        ...

    @abstractmethod
    def subject(self, token_request: TokenRequest) -> Optional[str]:
        ...

    @abstractmethod
    def type_header(self, token_request: TokenRequest) -> str:
        ...

    @abstractmethod
    def audience(self, token_request: TokenRequest) -> List[str]:
        ...

    @abstractmethod
    def add_claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        ...

    @abstractmethod
    def token_expiry(self) -> int:
        """Token lifetime in seconds."""


class DefaultTokenCallback(TokenCallback):
    """Callback with baseline claims, also used for test injection."""

    def __init__(
        self,
        issuer_id: str = "default",
        subject: Optional[str] = None,
        type_header: str = "JWT",
        audience: Optional[List[str]] = None,
        claims: Optional[Dict[str, Any]] = None,
        expiry: int = 3600,
    ):
        self._issuer_id = issuer_id
        self._subject = subject or str(uuid.uuid4())
        self._type_header = type_header
        self._audience = audience
        self._claims = dict(claims or {})
        self._expiry = expiry

    def __repr__(self) -> str:
        return f"DefaultTokenCallback(issuer_id={self._issuer_id!r}, subject={self._subject!r})"

    def issuer_id(self) -> str:
        return self._issuer_id

    def subject(self, token_request: TokenRequest) -> Optional[str]:
        if token_request.grant_type == CLIENT_CREDENTIALS:
            return token_request.client_id_or_default()
        return self._subject

    def type_header(self, token_request: TokenRequest) -> str:
        return self._type_header

    def audience(self, token_request: TokenRequest) -> List[str]:
        if self._audience is not None:
            return list(self._audience)
        audience_param = token_request.param("audience")
        if token_request.grant_type == TOKEN_EXCHANGE and audience_param:
            return audience_param.split()
        scopes = [s for s in token_request.scopes() if s not in ("openid", "offline_access")]
        if scopes:
            return scopes
        return ["default"]

    def add_claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        claims = dict(self._claims)
        claims.update({"azp": token_request.client_id_or_default(), "tid": self._issuer_id})
        return claims

    def token_expiry(self) -> int:
        return self._expiry


@dataclass
class RequestMapping:
    """Claims to use when a token request parameter matches a value.

    ``match`` of ``*`` accepts any value. ``${param}`` placeholders in string
    claim values are replaced with the request parameter of that name.
    """

    request_param: str
    match: str
    claims: Dict[str, Any] = field(default_factory=dict)
    type_header: str = "JWT"

    def is_match(self, token_request: TokenRequest) -> bool:
        value = token_request.param(self.request_param)
        return value is not None and (self.match == "*" or self.match == value)

    def resolved_claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        return {k: _substitute(v, token_request) for k, v in self.claims.items()}


def _substitute(value: Any, token_request: TokenRequest) -> Any:
    if isinstance(value, str):
        return _PLACEHOLDER.sub(lambda m: token_request.param(m.group(1)) or "", value)
    if isinstance(value, list):
        return [_substitute(v, token_request) for v in value]
    return value


class RequestMappingTokenCallback(TokenCallback):
    """Static callback from configuration choosing claims by request parameters."""

    def __init__(self, issuer_id: str, request_mappings: List[RequestMapping], token_expiry: int = 3600):
        self._issuer_id = issuer_id
        self._request_mappings = request_mappings
        self._token_expiry = token_expiry

    def __repr__(self) -> str:
        return f"RequestMappingTokenCallback(issuer_id={self._issuer_id!r})"

    def issuer_id(self) -> str:
        return self._issuer_id

    def _claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        for mapping in self._request_mappings:
            if mapping.is_match(token_request):
                return mapping.resolved_claims(token_request)
        return {}

    def subject(self, token_request: TokenRequest) -> Optional[str]:
        return self._claims(token_request).get("sub")

    def type_header(self, token_request: TokenRequest) -> str:
        for mapping in self._request_mappings:
            if mapping.is_match(token_request):
                return mapping.type_header
        return "JWT"

    def audience(self, token_request: TokenRequest) -> List[str]:
        aud = self._claims(token_request).get("aud")
        if isinstance(aud, list):
            return aud
        if aud:
            return [aud]
        return []

    def add_claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        return {k: v for k, v in self._claims(token_request).items() if k not in ("sub", "aud")}

    def token_expiry(self) -> int:
        return self._token_expiry


@dataclass
class Login:
    """Identity submitted through the interactive login form."""

    username: str
    claims: Optional[str] = None

    def claims_map(self) -> Dict[str, Any]:
        if not self.claims:
            return {}
        try:
            parsed = json.loads(self.claims)
        except json.JSONDecodeError:
            logger.warning(f"ignoring login claims that are not valid JSON: {self.claims}")
            return {}
        return parsed if isinstance(parsed, dict) else {}


class LoginTokenCallback(TokenCallback):
    """Wraps another callback, taking subject and extra claims from a login."""

    def __init__(self, login: Login, delegate: TokenCallback):
        self.login = login
        self.delegate = delegate

    def issuer_id(self) -> str:
        return self.delegate.issuer_id()

    def subject(self, token_request: TokenRequest) -> Optional[str]:
        return self.login.username

    def type_header(self, token_request: TokenRequest) -> str:
        return self.delegate.type_header(token_request)

    def audience(self, token_request: TokenRequest) -> List[str]:
        return self.delegate.audience(token_request)

    def add_claims(self, token_request: TokenRequest) -> Dict[str, Any]:
        claims = self.delegate.add_claims(token_request)
        claims.update(self.login.claims_map())
        return claims

    def token_expiry(self) -> int:
        return self.delegate.token_expiry()


class TokenCallbackQueue:
    """
    Thread-safe FIFO of one-shot token callbacks.

    ``take_if_issuer`` removes the head only when it belongs to the requested
    issuer; an unmatched head stays queued and is never waited on.
    """

    def __init__(self):
        self._queue: Deque[TokenCallback] = deque()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def add(self, callback: TokenCallback) -> None:
        with self._lock:
            self._queue.append(callback)
        logger.debug(f"enqueued token callback for issuer {callback.issuer_id()}")

    def take_if_issuer(self, issuer_id: str) -> Optional[TokenCallback]:
        with self._lock:
            if self._queue and self._queue[0].issuer_id() == issuer_id:
                return self._queue.popleft()
        return None

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()
