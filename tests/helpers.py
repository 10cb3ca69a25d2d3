"""Shared test helpers: schemas, request builders, in-process fetch, sinks.

`asgi_fetch` drives a Starlette app in-process through
``httpx.ASGITransport``, so audits and clients run against the real
adapter without opening a socket.

Usage::

    app = create_app(HandlerOptions(schema=build_test_schema()))
    fetch = asgi_fetch(app)
    res = await fetch("GET", "http://testserver/graphql?query={hello}")
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlencode

import httpx
from graphql import (
    GraphQLArgument,
    GraphQLField,
    GraphQLNonNull,
    GraphQLObjectType,
    GraphQLSchema,
    GraphQLString,
)

from gqlhttp_pipeline import Request

URL = "http://testserver/graphql"


async def _ticks() -> AsyncIterator[str]:
    yield "tick"


def _boom(*_: Any) -> str:
    raise ValueError("resolver exploded")


def build_test_schema() -> GraphQLSchema:
    """Query/Mutation/Subscription schema used across the suite.

    - ``hello`` -> "world"
    - ``greet(name)`` -> "Hello, <name>!"
    - ``boom`` raises (nullable, so data survives as ``{"boom": null}``)
    - ``strict`` raises on a non-null field, so data is ``null``
    - ``viewer`` echoes the context value
    """
    query = GraphQLObjectType(
        "Query",
        {
            "hello": GraphQLField(GraphQLString, resolve=lambda *_: "world"),
            "greet": GraphQLField(
                GraphQLString,
                args={"name": GraphQLArgument(GraphQLNonNull(GraphQLString))},
                resolve=lambda _obj, _info, name: f"Hello, {name}!",
            ),
            "boom": GraphQLField(GraphQLString, resolve=_boom),
            "strict": GraphQLField(GraphQLNonNull(GraphQLString), resolve=_boom),
            "viewer": GraphQLField(
                GraphQLString, resolve=lambda _obj, info: str(info.context)
            ),
        },
    )
    mutation = GraphQLObjectType(
        "Mutation",
        {"dontChange": GraphQLField(GraphQLString, resolve=lambda *_: "didntChange")},
    )
    subscription = GraphQLObjectType(
        "Subscription",
        {
            "ticks": GraphQLField(
                GraphQLString,
                subscribe=lambda *_: _ticks(),
                resolve=lambda value, _info: value,
            )
        },
    )
    return GraphQLSchema(query=query, mutation=mutation, subscription=subscription)


def get_request(
    query: str | None = None,
    *,
    accept: str | None = None,
    headers: dict[str, str] | None = None,
    **params: str,
) -> Request:
    """GET request with the given query string parameters."""
    if query is not None:
        params = {"query": query, **params}
    all_headers = dict(headers or {})
    if accept is not None:
        all_headers["accept"] = accept
    url = f"{URL}?{urlencode(params)}" if params else URL
    return Request(method="GET", url=url, headers=all_headers)


def post_request(
    body: Any = None,
    *,
    accept: str | None = None,
    content_type: str | None = "application/json",
    headers: dict[str, str] | None = None,
) -> Request:
    """POST request; dict bodies are JSON-encoded, strings sent as-is."""
    all_headers = dict(headers or {})
    if content_type is not None:
        all_headers["content-type"] = content_type
    if accept is not None:
        all_headers["accept"] = accept
    if isinstance(body, dict):
        body = json.dumps(body)
    return Request(method="POST", url=URL, headers=all_headers, body=body)


def asgi_fetch(app: Any):
    """Audit fetch function bound to an ASGI app."""

    async def fetch(
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport) as client:
            client.headers.pop("accept", None)
            return await client.request(method, url, headers=headers, content=content)

    return fetch


class RecordingSink:
    """Client sink remembering every call; ``closed`` resolves on close."""

    def __init__(self) -> None:
        self.values: list[Any] = []
        self.errors: list[BaseException] = []
        self.completed = 0
        self.closed = asyncio.get_running_loop().create_future()

    def next(self, value: Any) -> None:
        self.values.append(value)

    def error(self, error: BaseException) -> None:
        self.errors.append(error)
        if not self.closed.done():
            self.closed.set_result("error")

    def complete(self) -> None:
        self.completed += 1
        if not self.closed.done():
            self.closed.set_result("complete")

    @property
    def terminal_calls(self) -> int:
        return len(self.errors) + self.completed
