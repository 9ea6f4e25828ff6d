"""
Refresh token bookkeeping.

Each refresh token is bound to the issuer and context it was issued in and
can be consumed exactly once.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from mockoauth2.oauth.callbacks import TokenCallback
from mockoauth2.oauth.exceptions import TokenStateError

logger = logging.getLogger(__name__)

MAX_TRACKED_TOKENS = 10_000


@dataclass(frozen=True)
class RefreshTokenGrant:
    """Authorization context a refresh token was issued for."""

    issuer_id: str
    callback: TokenCallback
    client_id: Optional[str]
    scope: Optional[str]
    nonce: Optional[str] = None


class RefreshTokenManager:
    """
    Thread-safe store of valid refresh tokens.

    Both the valid tokens and the record of consumed ones are capped at
    ``max_tokens``; the oldest entries are dropped first.
    """

    def __init__(self, max_tokens: int = MAX_TRACKED_TOKENS):
        self.max_tokens = max_tokens
        self._grants: "OrderedDict[str, RefreshTokenGrant]" = OrderedDict()
        self._consumed: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    def refresh_token(self, grant: RefreshTokenGrant) -> str:
        """Issue an opaque refresh token bound to ``grant``."""
        token = str(uuid.uuid4())
        with self._lock:
            self._grants[token] = grant
            _trim(self._grants, self.max_tokens)
        logger.debug(f"issued refresh token for client {grant.client_id}")
        return token

    def consume(self, token: str, issuer_id: str) -> RefreshTokenGrant:
        """
        Mark a refresh token as used and return its grant.

        Args:
            token: Refresh token presented by the client
            issuer_id: Issuer the token is presented to

        Raises:
            TokenStateError: If the token is unknown, already consumed or
                was issued by another issuer
        """
        with self._lock:
            grant = self._grants.get(token)
            if grant is None:
                if token in self._consumed:
                    raise TokenStateError("refresh_token has already been used")
                raise TokenStateError("invalid refresh_token")
            if grant.issuer_id != issuer_id:
                raise TokenStateError("refresh_token was issued by another issuer")
            del self._grants[token]
            self._consumed[token] = None
            _trim(self._consumed, self.max_tokens)
        logger.debug(f"consumed refresh token for client {grant.client_id}")
        return grant


def _trim(entries: "OrderedDict", limit: int) -> None:
    while len(entries) > limit:
        entries.popitem(last=False)
