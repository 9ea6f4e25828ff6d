"""
Framework-independent HTTP request/response values used by the route handlers.

Route handlers receive an ``OAuth2HttpRequest`` and return an
``OAuth2HttpResponse``; the FastAPI adapter in ``routes.py`` converts to and
from Starlette objects.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from html import escape
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

import jwt

from mockoauth2.oauth.exceptions import (
    OAuth2Error,
    OAuth2Exception,
    ParseError,
    invalid_request,
)

logger = logging.getLogger(__name__)


@dataclass
class TokenRequest:
    """Parsed ``POST /token`` request."""

    grant_type: Optional[str]
    parameters: Dict[str, str]
    client_id: Optional[str] = None
    scope: Optional[str] = None

    def param(self, name: str) -> Optional[str]:
        return self.parameters.get(name) or None

    def require(self, name: str) -> str:
        """Get a required parameter.

        Raises:
            ParseError: If the parameter is missing or empty
        """
        value = self.param(name)
        if value is None:
            raise invalid_request(f"Missing required parameter: {name}")
        return value

    def scopes(self) -> List[str]:
        return self.scope.split() if self.scope else []

    def client_id_or_default(self) -> str:
        return self.client_id or "unknown"


@dataclass
class AuthenticationRequest:
    """OpenID Connect authentication request (authorization endpoint)."""

    client_id: str
    redirect_uri: str
    response_type: str
    scope: List[str]
    state: Optional[str] = None
    nonce: Optional[str] = None
    prompt: List[str] = field(default_factory=list)
    response_mode: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None

    @classmethod
    def from_parameters(cls, params: Dict[str, str]) -> "AuthenticationRequest":
        """Parse an authentication request from query or form parameters.

        Raises:
            ParseError: If a required parameter is missing or invalid
        """
        for name in ("client_id", "redirect_uri", "response_type"):
            if not params.get(name):
                raise invalid_request(f"Missing required parameter: {name}")

        scope = params.get("scope", "").split()
        if "openid" not in scope:
            raise invalid_request("The scope must include an openid value")

        if params["response_type"] != "code":
            raise ParseError(
                f"Unsupported response_type: {params['response_type']}",
                OAuth2Error.INVALID_REQUEST.with_description(
                    f"Unsupported response_type: {params['response_type']}"
                ),
            )

        return cls(
            client_id=params["client_id"],
            redirect_uri=params["redirect_uri"],
            response_type=params["response_type"],
            scope=scope,
            state=params.get("state") or None,
            nonce=params.get("nonce") or None,
            prompt=params.get("prompt", "").split(),
            response_mode=params.get("response_mode") or None,
            code_challenge=params.get("code_challenge") or None,
            code_challenge_method=params.get("code_challenge_method") or None,
        )

    def is_prompt(self) -> bool:
        """Whether the client demands an interactive login."""
        return "login" in self.prompt


@dataclass
class AuthorizationCodeResponse:
    """Redirect data for a successful authentication."""

    redirect_uri: str
    code: str
    state: Optional[str] = None
    response_mode: Optional[str] = None


@dataclass
class OAuth2HttpRequest:
    """Incoming HTTP request: method, URL, headers and body."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}
        self._parts = urlsplit(self.url)

    def __str__(self) -> str:
        return f"{self.method} {self.url}"

    @property
    def path(self) -> str:
        return self._parts.path

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def query_parameters(self) -> Dict[str, str]:
        return dict(parse_qsl(self._parts.query, keep_blank_values=True))

    def query_parameter(self, name: str) -> Optional[str]:
        return self.query_parameters().get(name)

    def form_parameters(self) -> Dict[str, str]:
        return dict(parse_qsl(self.body, keep_blank_values=True))

    def issuer_id(self) -> str:
        """First path segment of the URL, naming the issuer.

        Raises:
            OAuth2Exception: If the path has no segments
        """
        segments = [s for s in self._parts.path.split("/") if s]
        if not segments:
            raise OAuth2Exception(
                OAuth2Error.INVALID_REQUEST.with_description(
                    "issuerId must be first segment in url path"
                )
            )
        return unquote(segments[0])

    def issuer_url(self) -> str:
        """Base URL of the issuer this request was sent to."""
        return urlunsplit((self._parts.scheme, self._parts.netloc, f"/{self.issuer_id()}", "", ""))

    def grant_type(self) -> Optional[str]:
        return self.form_parameters().get("grant_type") or None

    def as_token_request(self) -> TokenRequest:
        """Parse the form body as a token request.

        Raises:
            ParseError: If the body lacks a grant type or client credentials are malformed
        """
        params = self.form_parameters()
        grant_type = params.get("grant_type")
        if not grant_type:
            raise invalid_request("Missing grant_type parameter")
        return TokenRequest(
            grant_type=grant_type,
            parameters=params,
            client_id=self._client_id(params),
            scope=params.get("scope") or None,
        )

    def as_authentication_request(self) -> AuthenticationRequest:
        """Parse the query string (and form body on POST) as an authentication request."""
        params = self.query_parameters()
        if self.method.upper() == "POST":
            for key, value in self.form_parameters().items():
                params.setdefault(key, value)
        return AuthenticationRequest.from_parameters(params)

    def bearer_token(self) -> Optional[str]:
        authorization = self.header("authorization")
        if authorization and authorization.lower().startswith("bearer "):
            return authorization[7:].strip() or None
        return None

    def _client_id(self, params: Dict[str, str]) -> Optional[str]:
        authorization = self.header("authorization")
        if authorization and authorization.lower().startswith("basic "):
            try:
                decoded = base64.b64decode(authorization[6:].strip()).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise invalid_request(f"Malformed client_secret_basic authentication: {e}")
            client_id, _, _ = decoded.partition(":")
            return unquote(client_id)

        assertion = params.get("client_assertion")
        if assertion:
            try:
                claims = jwt.decode(assertion, options={"verify_signature": False})
            except jwt.PyJWTError as e:
                raise invalid_request(f"Invalid client_assertion: {e}")
            return claims.get("sub") or claims.get("iss")

        return params.get("client_id") or None


@dataclass
class OAuth2HttpResponse:
    """Outgoing HTTP response: status, headers and body."""

    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


def json_response(content: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> OAuth2HttpResponse:
    response_headers = {"Content-Type": "application/json;charset=UTF-8"}
    response_headers.update(headers or {})
    return OAuth2HttpResponse(status=status, headers=response_headers, body=json.dumps(content))


def html_response(content: str, status: int = 200) -> OAuth2HttpResponse:
    return OAuth2HttpResponse(
        status=status,
        headers={"Content-Type": "text/html;charset=UTF-8"},
        body=content,
    )


def text_response(content: str, status: int = 200) -> OAuth2HttpResponse:
    return OAuth2HttpResponse(
        status=status,
        headers={"Content-Type": "text/plain;charset=UTF-8"},
        body=content,
    )


def redirect_response(location: str) -> OAuth2HttpResponse:
    return OAuth2HttpResponse(status=302, headers={"Location": location})


def oauth2_error_response(error_object) -> OAuth2HttpResponse:
    return json_response(
        error_object.to_json(),
        status=error_object.http_status,
        headers={"Cache-Control": "no-store", "Pragma": "no-cache"},
    )


def authentication_success(response: AuthorizationCodeResponse) -> OAuth2HttpResponse:
    """Deliver an authorization code to the client's redirect URI.

    The code and state go in the query string by default, in the fragment for
    ``response_mode=fragment``, or in an auto-submitting form for
    ``response_mode=form_post``.
    """
    params = {"code": response.code}
    if response.state:
        params["state"] = response.state

    if response.response_mode == "form_post":
        inputs = "\n".join(
            f'<input type="hidden" name="{escape(k)}" value="{escape(v)}"/>'
            for k, v in params.items()
        )
        return html_response(
            "<html><head><title>Submit This Form</title></head>"
            '<body onload="javascript:document.forms[0].submit()">'
            f'<form method="post" action="{escape(response.redirect_uri)}">{inputs}</form>'
            "</body></html>"
        )

    parts = urlsplit(response.redirect_uri)
    if response.response_mode == "fragment":
        location = urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, urlencode(params)))
    else:
        query = parse_qsl(parts.query, keep_blank_values=True) + list(params.items())
        location = urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))
    logger.debug(f"redirecting to {location}")
    return redirect_response(location)
