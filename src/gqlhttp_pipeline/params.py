"""Extract GraphQL request parameters from GET and POST requests.

- GET: ``query``, ``operationName``, ``variables`` and ``extensions`` from
  the URL query string, the latter two JSON-decoded.
- POST: the same four members from a JSON object body.

Every failure raises `RequestError` with the client-visible message.
The request is never mutated.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Mapping
from typing import Any

import httpx

from gqlhttp_pipeline.types import OperationParams, Request, RequestError

SUPPORTED_METHODS = ("GET", "POST")


async def load_body(request: Request) -> Any:
    """Resolve a lazily loaded body to its raw value."""
    body = request.body
    if callable(body):
        body = body()
        if inspect.isawaitable(body):
            body = await body
    return body


def _content_charset(request: Request) -> str:
    content_type = "".join((request.header("content-type") or "").split()).lower()
    _, *params = content_type.split(";")
    charset = next((p for p in params if p.startswith("charset=")), "charset=utf-8")
    return charset.removeprefix("charset=")


def _decode_json_member(raw: str | None) -> Any:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


def _params_from_url(request: Request) -> dict[str, Any]:
    try:
        search = httpx.URL(request.url).params
        return {
            "query": search.get("query"),
            "operationName": search.get("operationName"),
            "variables": _decode_json_member(search.get("variables")),
            "extensions": _decode_json_member(search.get("extensions")),
        }
    except (ValueError, httpx.InvalidURL) as exc:
        raise RequestError("Unparsable URL") from exc


async def _params_from_body(request: Request) -> Mapping[str, Any]:
    if _content_charset(request) not in ("utf-8", "utf8"):
        raise RequestError("Unsupported charset")

    body = await load_body(request)
    if body is None or body == "" or body == b"":
        raise RequestError("Missing body")

    if isinstance(body, Mapping):
        data: Any = body
    else:
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise RequestError("Unparsable JSON body") from exc

    if not isinstance(data, Mapping):
        raise RequestError("JSON body must be an object")
    return data


def validate_params(data: Mapping[str, Any]) -> OperationParams:
    """Check raw parameter members and build `OperationParams`."""
    query = data.get("query")
    if query is None or query == "":
        raise RequestError("Missing query")
    if not isinstance(query, str):
        raise RequestError("Invalid query")

    variables = data.get("variables")
    if variables is not None and not isinstance(variables, dict):
        raise RequestError("Invalid variables")

    operation_name = data.get("operationName")
    if operation_name is not None and not isinstance(operation_name, str):
        raise RequestError("Invalid operationName")

    extensions = data.get("extensions")
    if extensions is not None and not isinstance(extensions, dict):
        raise RequestError("Invalid extensions")

    return OperationParams(
        query=query,
        operation_name=operation_name,
        variables=variables,
        extensions=extensions,
    )


async def parse_request_params(request: Request) -> OperationParams:
    """Default parameter parser for GET and POST requests.

    Raises:
        RequestError: The method is unsupported or the parameters are
            missing, unparsable or of the wrong type.
    """
    if request.method == "GET":
        data: Mapping[str, Any] = _params_from_url(request)
    elif request.method == "POST":
        data = await _params_from_body(request)
    else:
        raise RequestError(f"Unsupported method {request.method}")
    return validate_params(data)
