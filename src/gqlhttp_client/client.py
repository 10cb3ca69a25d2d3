"""GraphQL over HTTP client.

Every ``subscribe`` issues exactly one POST (plus retries) and pushes the
decoded result into a sink: at most one ``next``, then exactly one of
``error`` or ``complete``.

Usage::

    client = create_client("http://localhost:4000/graphql")

    class Printer:
        def next(self, value): print(value)
        def error(self, err): print("failed:", err)
        def complete(self): print("done")

    unsubscribe = client.subscribe({"query": "{ hello }"}, Printer())

    # or simply
    result = await client.execute({"query": "{ hello }"})
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import httpx

from gqlhttp_client.abort import AbortSignal
from gqlhttp_pipeline.types import OperationParams

logger = logging.getLogger(__name__)

REQUEST_CONTENT_TYPE = "application/json; charset=utf-8"
REQUEST_ACCEPT = "application/graphql-response+json, application/json"

_RESPONSE_MEDIA_TYPES = ("application/graphql-response+json", "application/json")

# in-flight subscription tasks
_running: set[asyncio.Task[None]] = set()

Producer = Callable[[], Any]
HeadersInput = Mapping[str, str] | Producer | None
ShouldRetry = Callable[["NetworkError", int], "bool | Awaitable[bool]"]


class NetworkError(Exception):
    """The request failed on the transport level or with a non-2xx status.

    ``response`` is the ``httpx.Response`` when the server answered.
    """

    def __init__(self, message: str, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response

    @classmethod
    def from_response(cls, response: httpx.Response) -> NetworkError:
        return cls(
            f"Server responded with {response.status_code}: {response.reason_phrase}",
            response,
        )


class Sink(Protocol):
    def next(self, value: dict[str, Any]) -> None: ...

    def error(self, error: BaseException) -> None: ...

    def complete(self) -> None: ...


class _GuardedSink:
    """Delivers at most one ``next`` and exactly one terminal call."""

    def __init__(self, sink: Sink) -> None:
        self._sink = sink
        self._delivered = False
        self._closed = False

    def next(self, value: dict[str, Any]) -> None:
        if self._closed or self._delivered:
            return
        self._delivered = True
        self._sink.next(value)

    def error(self, error: BaseException) -> None:
        if self._closed:
            return
        self._closed = True
        self._sink.error(error)

    def complete(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sink.complete()


async def _resolve(value: Any) -> Any:
    if callable(value):
        value = value()
        if inspect.isawaitable(value):
            value = await value
    return value


def _request_body(params: OperationParams | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(params, OperationParams):
        return params.to_json()
    return {key: value for key, value in params.items() if value is not None}


def _never_retry(error: NetworkError, retries: int) -> bool:
    return False


# ------------------------------------------------------------------ #
# Client
# ------------------------------------------------------------------ #


class Client:
    """Disposable GraphQL over HTTP client. Build it with `create_client`."""

    def __init__(
        self,
        url: str | Producer,
        *,
        headers: HeadersInput = None,
        should_retry: ShouldRetry | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = headers
        self._should_retry = should_retry or _never_retry
        self._http_client = http_client
        self._disposal = AbortSignal()

    @property
    def disposed(self) -> bool:
        return self._disposal.is_set

    def subscribe(
        self,
        params: OperationParams | Mapping[str, Any],
        sink: Sink,
    ) -> Callable[[], None]:
        """Schedule the operation and return its disposer.

        Must be called with a running event loop. Calling the disposer
        aborts the in-flight request; the sink then completes without
        receiving a value.

        Raises:
            RuntimeError: The client has been disposed.
        """
        if self._disposal.is_set:
            raise RuntimeError("Client has been disposed")

        guarded = _GuardedSink(sink)
        control = AbortSignal()
        unlisten = self._disposal.on_abort(control.set)

        task = asyncio.ensure_future(self._run(params, guarded, control))
        _running.add(task)
        control.on_abort(task.cancel)

        def settle(done: asyncio.Task[None]) -> None:
            _running.discard(done)
            unlisten()
            try:
                if done.cancelled() or control.is_set:
                    guarded.complete()
                elif (err := done.exception()) is not None:
                    guarded.error(err)
                else:
                    guarded.complete()
            except Exception:  # noqa: BLE001
                logger.exception("Sink raised while closing the subscription")

        task.add_done_callback(settle)
        return control.set

    async def execute(self, params: OperationParams | Mapping[str, Any]) -> dict[str, Any] | None:
        """Run one operation and return its result.

        Resolves to ``None`` when the subscription was aborted.

        Raises:
            NetworkError: The request failed (after any retries).
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any] | None] = loop.create_future()
        box: dict[str, Any] = {}

        class _FutureSink:
            def next(self, value: dict[str, Any]) -> None:
                box["value"] = value

            def error(self, error: BaseException) -> None:
                if not future.done():
                    future.set_exception(error)

            def complete(self) -> None:
                if not future.done():
                    future.set_result(box.get("value"))

        dispose = self.subscribe(params, _FutureSink())
        try:
            return await future
        finally:
            dispose()

    def dispose(self) -> None:
        """Abort every active subscription and reject new ones."""
        self._disposal.set()

    # -- internals ---------------------------------------------------- #

    async def _run(
        self,
        params: OperationParams | Mapping[str, Any],
        sink: _GuardedSink,
        control: AbortSignal,
    ) -> None:
        retries = 0
        while True:
            try:
                result = await self._attempt(params)
            except NetworkError as err:
                should = await _resolve(lambda: self._should_retry(err, retries))
                if control.is_set:
                    return
                if not should:
                    raise
                retries += 1
                logger.debug("Retrying operation (attempt %d): %s", retries, err)
                continue

            if not control.is_set:
                sink.next(result)
            return

    async def _attempt(self, params: OperationParams | Mapping[str, Any]) -> dict[str, Any]:
        url = await _resolve(self._url)
        headers = dict(await _resolve(self._headers) or {})
        headers["content-type"] = REQUEST_CONTENT_TYPE
        headers["accept"] = REQUEST_ACCEPT
        content = json.dumps(_request_body(params))

        if self._http_client is not None:
            return await self._post(self._http_client, url, headers, content)
        async with httpx.AsyncClient() as http_client:
            return await self._post(http_client, url, headers, content)

    @staticmethod
    async def _post(
        http_client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        content: str,
    ) -> dict[str, Any]:
        try:
            response = await http_client.post(url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            raise NetworkError(str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            raise NetworkError.from_response(response)

        content_type = response.headers.get("content-type")
        if not content_type:
            raise NetworkError("Missing response content-type", response)
        if not any(media in content_type for media in _RESPONSE_MEDIA_TYPES):
            raise NetworkError(f"Unsupported response content-type {content_type}", response)

        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError("Unparsable response body", response) from exc


def create_client(
    url: str | Producer,
    *,
    headers: HeadersInput = None,
    should_retry: ShouldRetry | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Client:
    """Make a client for the GraphQL over HTTP endpoint at ``url``.

    Args:
        url: The endpoint, or a zero-argument (sync or async) producer
            resolved on every attempt.
        headers: Extra request headers, or a producer of them.
        should_retry: ``(error, retries)`` deciding whether a
            `NetworkError` is retried. Never retries by default.
        http_client: Shared ``httpx.AsyncClient``. A short-lived one is
            opened per attempt otherwise.
    """
    return Client(url, headers=headers, should_retry=should_retry, http_client=http_client)
