"""Tests for the GraphQL over HTTP client: delivery, errors, retries, cancellation."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx
from helpers import RecordingSink

from gqlhttp_client import AbortSignal, NetworkError, create_client
from gqlhttp_pipeline import HandlerOptions, OperationParams
from gqlhttp_server import build_reference_schema, create_app

URL = "http://api.test/graphql"


def ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": data})


class TestDelivery:
    @pytest.mark.asyncio
    @respx.mock
    async def test_one_next_then_complete(self):
        respx.post(URL).mock(return_value=ok({"hello": "world"}))
        sink = RecordingSink()

        create_client(URL).subscribe({"query": "{ hello }"}, sink)

        assert await asyncio.wait_for(sink.closed, 2.0) == "complete"
        assert sink.values == [{"data": {"hello": "world"}}]
        assert sink.terminal_calls == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_shape(self):
        route = respx.post(URL).mock(return_value=ok({"hello": "world"}))
        client = create_client(URL, headers={"authorization": "Bearer t"})

        await client.execute(OperationParams(query="{ hello }", operation_name="Q"))

        request = route.calls.last.request
        assert request.headers["content-type"] == "application/json; charset=utf-8"
        assert request.headers["accept"] == "application/graphql-response+json, application/json"
        assert request.headers["authorization"] == "Bearer t"
        assert json.loads(request.content) == {"query": "{ hello }", "operationName": "Q"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_dynamic_url_and_headers(self):
        route = respx.post("http://other.test/graphql").mock(return_value=ok({"a": 1}))
        tokens = iter(["first", "second"])

        async def headers():
            return {"authorization": next(tokens)}

        client = create_client(lambda: "http://other.test/graphql", headers=headers)
        await client.execute({"query": "{ a }"})
        await client.execute({"query": "{ a }"})

        assert [c.request.headers["authorization"] for c in route.calls] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_against_reference_server(self):
        app = create_app(HandlerOptions(schema=build_reference_schema()))
        http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
        async with http_client:
            client = create_client("http://testserver/graphql", http_client=http_client)
            result = await client.execute({"query": "{ hello }"})
        assert result == {"data": {"hello": "world"}}


class TestErrors:
    @pytest.mark.asyncio
    @respx.mock
    async def test_non_2xx_is_network_error(self):
        respx.post(URL).mock(return_value=httpx.Response(503))
        sink = RecordingSink()

        create_client(URL).subscribe({"query": "{ a }"}, sink)

        assert await asyncio.wait_for(sink.closed, 2.0) == "error"
        [error] = sink.errors
        assert isinstance(error, NetworkError)
        assert error.response.status_code == 503
        assert str(error) == "Server responded with 503: Service Unavailable"
        assert sink.values == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_failure(self):
        respx.post(URL).mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(NetworkError, match="connection refused") as info:
            await create_client(URL).execute({"query": "{ a }"})
        assert info.value.response is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_content_type(self):
        respx.post(URL).mock(return_value=httpx.Response(200, content=b"{}"))
        with pytest.raises(NetworkError, match="Missing response content-type"):
            await create_client(URL).execute({"query": "{ a }"})

    @pytest.mark.asyncio
    @respx.mock
    async def test_unsupported_content_type(self):
        respx.post(URL).mock(
            return_value=httpx.Response(200, text="<html/>", headers={"content-type": "text/html"})
        )
        with pytest.raises(NetworkError, match="Unsupported response content-type text/html"):
            await create_client(URL).execute({"query": "{ a }"})

    @pytest.mark.asyncio
    @respx.mock
    async def test_sink_failure_is_reported_as_error(self):
        respx.post(URL).mock(return_value=ok({"a": 1}))
        sink = RecordingSink()

        def explode(value):
            raise ValueError("sink exploded")

        sink.next = explode  # type: ignore[method-assign]
        create_client(URL).subscribe({"query": "{ a }"}, sink)

        assert await asyncio.wait_for(sink.closed, 2.0) == "error"
        assert str(sink.errors[0]) == "sink exploded"


class TestRetries:
    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_until_success(self):
        route = respx.post(URL).mock(
            side_effect=[httpx.Response(502), httpx.Response(502), ok({"a": 1})]
        )
        attempts = []

        async def should_retry(error, retries):
            attempts.append(retries)
            return retries < 5

        result = await create_client(URL, should_retry=should_retry).execute({"query": "{ a }"})

        assert result == {"data": {"a": 1}}
        assert attempts == [0, 1]
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_gives_up_when_told(self):
        route = respx.post(URL).mock(return_value=httpx.Response(500))
        client = create_client(URL, should_retry=lambda error, retries: retries < 2)

        with pytest.raises(NetworkError):
            await client.execute({"query": "{ a }"})
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_never_retries_by_default(self):
        route = respx.post(URL).mock(return_value=httpx.Response(500))
        with pytest.raises(NetworkError):
            await create_client(URL).execute({"query": "{ a }"})
        assert route.call_count == 1


class TestCancellation:
    @staticmethod
    def hanging_client() -> tuple[httpx.AsyncClient, asyncio.Event]:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.Event().wait()
            return httpx.Response(200, json={"data": {}})

        return httpx.AsyncClient(transport=httpx.MockTransport(handler)), started

    @pytest.mark.asyncio
    async def test_unsubscribe_aborts_in_flight_request(self):
        http_client, started = self.hanging_client()
        client = create_client(URL, http_client=http_client)
        sink = RecordingSink()

        unsubscribe = client.subscribe({"query": "{ a }"}, sink)
        await asyncio.wait_for(started.wait(), 2.0)
        unsubscribe()

        assert await asyncio.wait_for(sink.closed, 2.0) == "complete"
        assert sink.values == []
        assert sink.terminal_calls == 1

    @pytest.mark.asyncio
    async def test_dispose_aborts_everything_and_rejects_new_subscriptions(self):
        http_client, started = self.hanging_client()
        client = create_client(URL, http_client=http_client)
        sinks = [RecordingSink(), RecordingSink()]
        for sink in sinks:
            client.subscribe({"query": "{ a }"}, sink)
        await asyncio.wait_for(started.wait(), 2.0)

        client.dispose()

        for sink in sinks:
            assert await asyncio.wait_for(sink.closed, 2.0) == "complete"
            assert sink.values == []
        assert client.disposed
        with pytest.raises(RuntimeError, match="Client has been disposed"):
            client.subscribe({"query": "{ a }"}, RecordingSink())

    @pytest.mark.asyncio
    @respx.mock
    async def test_dispose_right_after_subscribe_delivers_no_value(self):
        respx.post(URL).mock(return_value=ok({"a": 1}))
        client = create_client(URL)
        sink = RecordingSink()

        client.subscribe({"query": "{ a }"}, sink)
        client.dispose()

        assert await asyncio.wait_for(sink.closed, 2.0) == "complete"
        assert sink.values == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_unsubscribe_after_completion_is_noop(self):
        respx.post(URL).mock(return_value=ok({"a": 1}))
        client = create_client(URL)
        sink = RecordingSink()

        unsubscribe = client.subscribe({"query": "{ a }"}, sink)
        await asyncio.wait_for(sink.closed, 2.0)
        unsubscribe()
        await asyncio.sleep(0)

        assert sink.values == [{"data": {"a": 1}}]
        assert sink.completed == 1
        assert client._disposal.listener_count == 0


class TestAbortSignal:
    def test_callbacks_fire_once(self):
        signal = AbortSignal()
        fired = []
        signal.on_abort(lambda: fired.append(1))
        signal.set()
        signal.set()
        assert fired == [1]
        assert signal.is_set

    def test_unregister(self):
        signal = AbortSignal()
        fired = []
        unregister = signal.on_abort(lambda: fired.append(1))
        unregister()
        signal.set()
        assert fired == []
        assert signal.listener_count == 0

    def test_late_registration_fires_immediately(self):
        signal = AbortSignal()
        signal.set()
        fired = []
        signal.on_abort(lambda: fired.append(1))
        assert fired == [1]

    def test_failing_callback_is_logged_and_others_still_fire(self, caplog):
        signal = AbortSignal()
        fired = []

        def explode():
            raise RuntimeError("callback exploded")

        signal.on_abort(explode)
        signal.on_abort(lambda: fired.append(1))
        signal.set()
        assert fired == [1]
        assert "Abort callback failed" in caplog.text
