"""Transport-neutral request, parameter and response types.

Host framework adapters build a `Request` from their native request
object and apply the returned `ResponsePayload` verbatim to their
native response. Nothing in here knows about a particular framework.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import httpx
from graphql import DocumentNode, GraphQLSchema

RawBody = str | bytes | Mapping[str, Any] | None
BodyLoader = Callable[[], "RawBody | Awaitable[RawBody]"]


class RequestError(Exception):
    """The request itself is malformed (bad method payload, body or parameters).

    Always answered with ``400 Bad Request``; the message is the
    client-visible error message.
    """


@dataclass(frozen=True)
class Request:
    """One inbound HTTP request, immutable for the lifetime of the call.

    ``body`` is either the raw body or a zero-argument loader (sync or
    async) so adapters can defer reading the stream until a POST
    actually needs it.
    """

    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: RawBody | BodyLoader = None
    raw: Any = None
    context: Any = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, httpx.Headers):
            object.__setattr__(self, "headers", httpx.Headers(self.headers or {}))
        object.__setattr__(self, "method", self.method.upper())

    def header(self, key: str) -> str | None:
        """Case-insensitive header lookup; repeated headers are comma-joined."""
        return self.headers.get(key)


@dataclass(frozen=True)
class OperationParams:
    """GraphQL request parameters extracted from a GET or POST request."""

    query: str
    operation_name: str | None = None
    variables: dict[str, Any] | None = None
    extensions: dict[str, Any] | None = None

    def to_json(self) -> dict[str, Any]:
        """Wire representation, omitting unset optional members."""
        body: dict[str, Any] = {"query": self.query}
        if self.operation_name is not None:
            body["operationName"] = self.operation_name
        if self.variables is not None:
            body["variables"] = self.variables
        if self.extensions is not None:
            body["extensions"] = self.extensions
        return body


@dataclass(frozen=True)
class ResponseInit:
    status: int
    status_text: str
    headers: dict[str, str] = field(default_factory=dict)


class ResponsePayload(NamedTuple):
    """Body and init of the single response produced for a request."""

    body: str | None
    init: ResponseInit


@dataclass
class OperationArgs:
    """Arguments handed to the execution engine.

    Mirrors the keyword arguments of ``graphql.execute``.
    """

    schema: GraphQLSchema | None = None
    document: DocumentNode | None = None
    root_value: Any = None
    context_value: Any = None
    variable_values: dict[str, Any] | None = None
    operation_name: str | None = None

    def as_kwargs(self) -> dict[str, Any]:
        return {
            "schema": self.schema,
            "document": self.document,
            "root_value": self.root_value,
            "context_value": self.context_value,
            "variable_values": self.variable_values,
            "operation_name": self.operation_name,
        }
