"""
Maps failures raised while handling a request to OAuth 2.0 error responses.
"""

import logging
from typing import Optional
from urllib.parse import quote_plus

from mockoauth2.oauth.exceptions import (
    ErrorObject,
    GeneralOAuth2Error,
    OAuth2Error,
    OAuth2Exception,
    ParseError,
)
from mockoauth2.oauth.http import OAuth2HttpRequest, OAuth2HttpResponse, oauth2_error_response
from mockoauth2.oauth.metrics import OAuth2Metrics

logger = logging.getLogger(__name__)


def to_error_object(error: Exception) -> ErrorObject:
    """
    Translate an exception to the error object sent to the client.

    Args:
        error: Exception raised by a route handler

    Returns:
        The exception's own error object where it carries one, otherwise
        ``invalid_request`` for parse failures and ``server_error`` for anything else
    """
    msg = quote_plus(str(error))
    if isinstance(error, OAuth2Exception):
        return error.error_object
    if isinstance(error, ParseError):
        return error.error_object or OAuth2Error.INVALID_REQUEST.with_description(
            f"failed to parse request: {msg}"
        )
    if isinstance(error, GeneralOAuth2Error) and error.error_object is not None:
        return error.error_object
    return OAuth2Error.SERVER_ERROR.with_description(f"unexpected exception with message: {msg}")


class ExceptionMapper:
    """Logs a failure with its request and builds the JSON error response."""

    def __init__(self, metrics: Optional[OAuth2Metrics] = None):
        self.metrics = metrics

    def __call__(self, request: OAuth2HttpRequest, error: Exception) -> OAuth2HttpResponse:
        logger.error(
            f"received exception when handling request: {request.url}.",
            exc_info=(type(error), error, error.__traceback__),
        )
        error_object = to_error_object(error)
        if self.metrics is not None:
            self.metrics.record_error(error_object.code)
        return oauth2_error_response(error_object)
