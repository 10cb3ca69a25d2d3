"""Tagged results for pipeline stages and hooks.

A stage either continues with a value, answers the request right away
with a complete payload, or fails with validation-style errors::

    async def on_subscribe(request, params):
        if params.query in BLOCKED:
            return Fail([GraphQLError("Operation not allowed")])
        if cached := cache.get(params.query):
            return Continue(cached)        # an ExecutionResult
        return None                        # carry on with the defaults

Hooks may also return plain values; `to_stage` turns them into the
tagged form so the pipeline only ever branches on the variant type.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from graphql import GraphQLError

from gqlhttp_pipeline.types import ResponsePayload

T = TypeVar("T")


@dataclass(frozen=True)
class Continue(Generic[T]):
    """Proceed to the next stage. ``None`` means "use the defaults"."""

    value: T | None = None


@dataclass(frozen=True)
class Respond:
    """Stop here and send this payload as-is."""

    payload: ResponsePayload


@dataclass(frozen=True)
class Fail:
    """Stop here and report these errors as a validation failure."""

    errors: Sequence[GraphQLError]


StageResult = Continue[Any] | Respond | Fail


def to_stage(value: Any) -> StageResult:
    """Normalise a hook's return value into a `StageResult`.

    - tagged variants pass through untouched
    - ``None`` continues with defaults
    - a `ResponsePayload` responds
    - a non-empty list of ``GraphQLError`` fails
    - anything else continues with that value
    """
    if isinstance(value, (Continue, Respond, Fail)):
        return value
    if value is None:
        return Continue()
    if isinstance(value, ResponsePayload):
        return Respond(value)
    if (
        isinstance(value, (list, tuple))
        and value
        and all(isinstance(err, GraphQLError) for err in value)
    ):
        return Fail(list(value))
    return Continue(value)
