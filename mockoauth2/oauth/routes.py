"""
FastAPI routes for the mock authorization server.

Turns the request handler's route table into an ``APIRouter``. Every
endpoint reads the request, runs the synchronous route handler on a worker
thread and hands any failure to the handler's exception mapper.
"""

import asyncio
import logging
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import Response

from mockoauth2.core.logging_config import clear_request_context, set_request_context
from mockoauth2.oauth.http import OAuth2HttpRequest, OAuth2HttpResponse
from mockoauth2.oauth.request_handler import OAuth2HttpRequestHandler, Route

logger = logging.getLogger(__name__)


async def to_oauth2_request(request: Request) -> OAuth2HttpRequest:
    body = await request.body()
    return OAuth2HttpRequest(
        method=request.method,
        url=str(request.url),
        headers=dict(request.headers),
        body=body.decode("utf-8", errors="replace"),
    )


def to_response(response: OAuth2HttpResponse) -> Response:
    return Response(
        content=response.body,
        status_code=response.status,
        headers=response.headers,
    )


def _endpoint(handler: OAuth2HttpRequestHandler, route: Route):
    async def endpoint(request: Request) -> Response:
        set_request_context(
            request.headers.get("x-correlation-id") or str(uuid.uuid4()),
            request.path_params.get("issuer_id"),
        )
        oauth2_request = await to_oauth2_request(request)
        try:
            # key generation and signing are CPU bound; keep the loop free
            response = await asyncio.to_thread(route.handler, oauth2_request)
        except Exception as e:
            response = handler.exception_handler(oauth2_request, e)
        finally:
            clear_request_context()
        return to_response(response)

    endpoint.__name__ = route.name
    return endpoint


def create_router(handler: OAuth2HttpRequestHandler) -> APIRouter:
    """Create FastAPI router serving every route of ``handler``.

    Returns:
        Configured APIRouter
    """
    router = APIRouter()
    for route in handler.routes:
        router.add_api_route(
            route.path,
            _endpoint(handler, route),
            methods=list(route.methods),
            name=route.name,
            include_in_schema=route.path != "/{full_path:path}",
        )
    logger.debug(f"registered {len(handler.routes)} routes")
    return router
