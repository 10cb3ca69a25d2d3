"""End-to-end tests through the Starlette adapter (in-process ASGI)."""

from __future__ import annotations

import httpx
import pytest
from helpers import build_test_schema

from gqlhttp_pipeline import HandlerOptions
from gqlhttp_server import build_reference_schema, create_app

GQL = "application/graphql-response+json"


def make_client(**options) -> httpx.AsyncClient:
    options.setdefault("schema", build_test_schema())
    options.setdefault("production", False)
    app = create_app(HandlerOptions(**options))
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


class TestStarletteAdapter:
    @pytest.mark.asyncio
    async def test_post_hello_without_accept(self):
        async with make_client() as client:
            client.headers.pop("accept", None)
            res = await client.post(
                "/graphql",
                content='{"query":"{ hello }"}',
                headers={"content-type": "application/json"},
            )
        assert res.status_code == 200
        assert res.json() == {"data": {"hello": "world"}}
        assert res.headers["content-type"] == "application/json; charset=utf-8"

    @pytest.mark.asyncio
    async def test_post_empty_body(self):
        async with make_client() as client:
            res = await client.post("/graphql", headers={"content-type": "application/json"})
        assert res.status_code == 400
        assert res.json() == {"errors": [{"message": "Missing body"}]}

    @pytest.mark.asyncio
    async def test_get_with_graphql_response_accept(self):
        async with make_client() as client:
            res = await client.get(
                "/graphql", params={"query": "{ __typename }"}, headers={"accept": GQL}
            )
        assert res.status_code == 200
        assert GQL in res.headers["content-type"]
        assert res.json() == {"data": {"__typename": "Query"}}

    @pytest.mark.asyncio
    async def test_get_mutation_rejected(self):
        async with make_client() as client:
            res = await client.get(
                "/graphql", params={"query": "mutation{__typename}"}, headers={"accept": GQL}
            )
        assert 400 <= res.status_code <= 499
        assert res.headers["allow"] == "POST"

    @pytest.mark.asyncio
    async def test_unsupported_method_reaches_handler(self):
        async with make_client() as client:
            res = await client.put("/graphql", content="{}")
        assert res.status_code == 405
        assert res.headers["allow"] == "GET, POST"

    @pytest.mark.asyncio
    async def test_custom_path(self):
        app = create_app(HandlerOptions(schema=build_reference_schema()), path="/api")
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            res = await client.get("/api", params={"query": "{ hello }"})
            missing = await client.get("/graphql", params={"query": "{ hello }"})
        assert res.json() == {"data": {"hello": "world"}}
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_context_sees_native_request(self):
        def context(request, args):
            return request.raw.headers.get("x-user")

        async with make_client(context=context) as client:
            res = await client.get(
                "/graphql", params={"query": "{ viewer }"}, headers={"x-user": "ada"}
            )
        assert res.json() == {"data": {"viewer": "ada"}}

    @pytest.mark.asyncio
    async def test_reference_schema_mutation(self):
        app = create_app(HandlerOptions(schema=build_reference_schema()))
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            res = await client.post("/graphql", json={"query": "mutation { dontChange }"})
        assert res.json() == {"data": {"dontChange": "didntChange"}}
