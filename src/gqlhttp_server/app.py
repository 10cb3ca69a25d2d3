"""Starlette adapter for the GraphQL over HTTP handler.

Maps a Starlette request onto the transport-neutral `Request` and the
handler's `ResponsePayload` back onto a Starlette `Response`, verbatim.
"""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response
from starlette.routing import Route

from gqlhttp_pipeline import HandlerOptions, OperationHandler, Request, create_handler

# Every method reaches the handler so it can answer 405 itself
ROUTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def to_request(request: StarletteRequest) -> Request:
    return Request(
        method=request.method,
        url=str(request.url),
        headers=request.headers.raw,
        body=request.body,
        raw=request,
    )


def make_endpoint(handler: OperationHandler):
    async def graphql_endpoint(request: StarletteRequest) -> Response:
        body, init = await handler(to_request(request))
        return Response(content=body, status_code=init.status, headers=init.headers)

    return graphql_endpoint


def create_app(
    options: HandlerOptions,
    path: str = "/graphql",
) -> Starlette:
    """Create the Starlette application serving the handler at ``path``."""
    handler = create_handler(options)

    routes = [
        Route(path, make_endpoint(handler), methods=ROUTED_METHODS),
    ]

    app = Starlette(routes=routes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.handler = handler
    return app
