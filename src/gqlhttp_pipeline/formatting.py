"""Error formatting and JSON serialisation of response bodies."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from graphql import ExecutionResult

FormatError = Callable[[Exception], Any]


def identity_format_error(error: Exception) -> Exception:
    return error


def error_to_json(error: Any) -> dict[str, Any]:
    """Serialise one (already formatted) error.

    A mapping is taken as-is, an object exposing a ``formatted`` mapping
    (``GraphQLError`` does) uses that, anything else becomes
    ``{"message": str(error)}``.
    """
    if isinstance(error, Mapping):
        return dict(error)
    formatted = getattr(error, "formatted", None)
    if isinstance(formatted, Mapping):
        return dict(formatted)
    return {"message": str(error)}


def format_errors(
    errors: Iterable[Exception],
    format_error: FormatError = identity_format_error,
) -> list[dict[str, Any]]:
    return [error_to_json(format_error(err)) for err in errors]


def render_result(
    result: ExecutionResult,
    format_error: FormatError = identity_format_error,
) -> dict[str, Any]:
    """Build the response document for an execution result.

    ``data`` is always present (``null`` when execution failed before
    producing any), ``errors`` and ``extensions`` only when non-empty.
    """
    body: dict[str, Any] = {"data": result.data}
    if result.errors:
        body["errors"] = format_errors(result.errors, format_error)
    if result.extensions:
        body["extensions"] = result.extensions
    return body


def render_errors(
    errors: Iterable[Exception],
    format_error: FormatError = identity_format_error,
) -> dict[str, Any]:
    return {"errors": format_errors(errors, format_error)}


def dumps(document: Any) -> str:
    """Compact JSON, non-ASCII left as-is (bodies are sent as UTF-8)."""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False, default=str)
