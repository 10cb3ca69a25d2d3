"""The GraphQL over HTTP operation pipeline.

`create_handler` builds an `OperationHandler`: an async callable turning
a transport-neutral `Request` into exactly one `ResponsePayload`.

Stages, in order (any of them may answer the request early):

1. Method check, media type negotiation, parameter parsing
2. Schema resolution (static schema or per-request resolver)
3. Context construction (static value or per-request factory)
4. ``on_subscribe`` -- prepared arguments, a cached result, a custom
   response or validation errors
5. Document parsing and validation
6. Operation checks (no subscriptions, no mutations over GET) and
   variable coercion
7. Execution through the execution engine
8. ``on_operation`` -- replace the result or respond
9. ``on_complete`` -- always, once the response is final

Expected failures are rendered according to the status table. Anything
else raised by a hook, resolver or collaborator is an internal failure
answered with ``500`` (details only outside production mode).

Usage::

    handler = create_handler(HandlerOptions(schema=schema))
    body, init = await handler(Request(method="GET", url="/graphql?query={hello}"))
"""

from __future__ import annotations

import inspect
import itertools
import logging
import os
import time
import traceback
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import graphql
from graphql import (
    ExecutionResult,
    GraphQLError,
    GraphQLSchema,
    OperationType,
    get_operation_ast,
    specified_rules,
)
from graphql.execution.values import get_variable_values

from gqlhttp_pipeline.events import (
    EventEmitter,
    InternalFailureRaised,
    OperationEvent,
    OperationExecuted,
    RequestParsed,
    ResponseRendered,
    StageShortCircuited,
)
from gqlhttp_pipeline.formatting import (
    FormatError,
    dumps,
    identity_format_error,
    render_errors,
    render_result,
)
from gqlhttp_pipeline.media import MediaType, content_type_for, negotiate_media_type
from gqlhttp_pipeline.params import SUPPORTED_METHODS, parse_request_params, validate_params
from gqlhttp_pipeline.stages import Continue, Fail, Respond, StageResult, to_stage
from gqlhttp_pipeline.status import OutcomeKind, make_response_init, status_text
from gqlhttp_pipeline.types import (
    OperationArgs,
    OperationParams,
    Request,
    RequestError,
    ResponseInit,
    ResponsePayload,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal Server Error"


def _production_from_env() -> bool:
    return os.environ.get("GQLHTTP_ENV", "").strip().lower() == "production"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _is_async_iterable(value: Any) -> bool:
    return hasattr(value, "__aiter__")


# ------------------------------------------------------------------ #
# Options
# ------------------------------------------------------------------ #


@dataclass
class HandlerOptions:
    """Configuration for `create_handler`.

    Callables may be sync or async. Hooks return either a tagged
    `StageResult` or a plain value (see `gqlhttp_pipeline.stages`).

    Attributes:
        schema: A ``GraphQLSchema``, or ``(request, partial_args)``
            returning a schema or a `ResponsePayload`. May stay ``None``
            when ``on_subscribe`` always supplies prepared arguments.
        context: Execution context value, or ``(request, args)``
            returning the value or a `ResponsePayload`.
        root_value: Root value handed to the execution engine.
        validation_rules: Rules APPENDED to graphql's ``specified_rules``,
            or ``(request, args, specified_rules)`` returning the
            EXCLUSIVE rule list.
        parse_request_params: Replaces the default parameter parser.
            Returns `OperationParams`, a `ResponsePayload`, or ``None`` to
            fall back to the default.
        on_subscribe: ``(request, params)`` run before parsing. Returns
            ``None``, prepared `OperationArgs`, an ``ExecutionResult``,
            a `ResponsePayload`, or a list of ``GraphQLError``.
        on_operation: ``(request, args, result)`` run after execution.
            Returns ``None``, a replacement ``ExecutionResult``, a
            `ResponsePayload`, or a list of ``GraphQLError``.
        on_complete: ``(request, args)`` run once the response is final.
            ``args`` is ``None`` if the pipeline stopped before building
            them. Failures are logged, never surfaced.
        format_error: Applied to every error before serialisation.
        parse / validate / execute: The execution engine collaborators.
        production: Hide internal failure details from clients.
            Defaults to ``GQLHTTP_ENV=production``.
        on_event: Callback receiving every `OperationEvent`.
    """

    schema: GraphQLSchema | Callable[..., Any] | None = None
    context: Any = None
    root_value: Any = None
    validation_rules: Sequence[Any] | Callable[..., Any] = ()
    parse_request_params: Callable[[Request], Any] | None = None
    on_subscribe: Callable[[Request, OperationParams], Any] | None = None
    on_operation: Callable[[Request, OperationArgs, ExecutionResult], Any] | None = None
    on_complete: Callable[[Request, OperationArgs | None], Any] | None = None
    format_error: FormatError = identity_format_error
    parse: Callable[[str], Any] = graphql.parse
    validate: Callable[..., list[GraphQLError]] = graphql.validate
    execute: Callable[..., Any] = graphql.execute
    production: bool = field(default_factory=_production_from_env)
    on_event: Callable[[OperationEvent], None] | None = None


# ------------------------------------------------------------------ #
# Rendering helpers
# ------------------------------------------------------------------ #


def method_not_allowed(allow: str, body: str | None = None, **headers: str) -> ResponsePayload:
    return ResponsePayload(
        body,
        ResponseInit(
            status=405,
            status_text=status_text(405),
            headers={"allow": allow, **headers},
        ),
    )


def internal_failure_response(
    error: BaseException,
    media_type: MediaType,
    *,
    production: bool,
) -> ResponsePayload:
    """The ``500`` answer for an unexpected exception."""
    if production:
        errors: list[dict[str, Any]] = [{"message": INTERNAL_ERROR_MESSAGE}]
    else:
        errors = [
            {
                "message": str(error) or error.__class__.__name__,
                "stack": "".join(traceback.format_exception(error)),
            }
        ]
    init = make_response_init(OutcomeKind.INTERNAL_FAILURE, media_type)
    return ResponsePayload(dumps({"errors": errors}), init)


# ------------------------------------------------------------------ #
# Per-request run
# ------------------------------------------------------------------ #


class _OperationRun:
    """State of one request travelling through the pipeline."""

    def __init__(
        self,
        options: HandlerOptions,
        request: Request,
        media_type: MediaType,
        emitter: EventEmitter,
        request_id: int = 0,
    ) -> None:
        self.options = options
        self.request = request
        self.media_type = media_type
        self.emitter = emitter
        self.request_id = request_id
        self.args: OperationArgs | None = None

    # -- rendering ---------------------------------------------------- #

    def _render_errors(self, kind: OutcomeKind, errors: Sequence[Exception]) -> ResponsePayload:
        init = make_response_init(kind, self.media_type)
        body = dumps(render_errors(errors, self.options.format_error))
        self.emitter.emit(
            ResponseRendered(
                kind.value, init.status, self.media_type.value, request_id=self.request_id
            )
        )
        return ResponsePayload(body, init)

    def _render_result(self, result: ExecutionResult) -> ResponsePayload:
        # partial data stays 200; only a result without data counts as failed
        has_errors = bool(result.errors) and result.data is None
        init = make_response_init(
            OutcomeKind.EXECUTION_PRODUCED, self.media_type, has_errors=has_errors
        )
        body = dumps(render_result(result, self.options.format_error))
        self.emitter.emit(
            ResponseRendered(
                OutcomeKind.EXECUTION_PRODUCED.value,
                init.status,
                self.media_type.value,
                request_id=self.request_id,
            )
        )
        return ResponsePayload(body, init)

    def _short_circuit(self, stage: str, payload: ResponsePayload) -> ResponsePayload:
        self.emitter.emit(
            StageShortCircuited(stage, payload.init.status, request_id=self.request_id)
        )
        return payload

    def _streaming_unsupported(self) -> ResponsePayload:
        return self._render_errors(
            OutcomeKind.STREAMING_UNSUPPORTED,
            [GraphQLError("Subscriptions are not supported")],
        )

    # -- stages ------------------------------------------------------- #

    async def _parse_params(self) -> StageResult:
        override = self.options.parse_request_params
        if override is not None:
            stage = to_stage(await _maybe_await(override(self.request)))
            if isinstance(stage, Continue) and isinstance(stage.value, Mapping):
                return Continue(validate_params(stage.value))
            if not isinstance(stage, Continue) or stage.value is not None:
                return stage
        return Continue(await parse_request_params(self.request))

    async def _resolve_schema(self, partial: OperationArgs) -> StageResult:
        schema = self.options.schema
        if schema is None or isinstance(schema, GraphQLSchema):
            return Continue(schema)
        return to_stage(await _maybe_await(schema(self.request, partial)))

    async def _resolve_context(self, args: OperationArgs) -> StageResult:
        context = self.options.context
        if callable(context):
            return to_stage(await _maybe_await(context(self.request, args)))
        return Continue(context)

    async def _on_subscribe(self, params: OperationParams) -> StageResult:
        if self.options.on_subscribe is None:
            return Continue()
        return to_stage(await _maybe_await(self.options.on_subscribe(self.request, params)))

    async def _validation_rules(self, args: OperationArgs) -> list[Any]:
        rules = self.options.validation_rules
        if callable(rules):
            return list(await _maybe_await(rules(self.request, args, specified_rules)))
        return [*specified_rules, *rules]

    # -- run ---------------------------------------------------------- #

    async def run(self) -> ResponsePayload:
        request = self.request
        if request.method not in SUPPORTED_METHODS:
            return method_not_allowed(", ".join(SUPPORTED_METHODS))

        try:
            stage = await self._parse_params()
        except RequestError as err:
            return self._render_errors(OutcomeKind.REQUEST_MALFORMED, [err])
        if isinstance(stage, Respond):
            return self._short_circuit("parse_request_params", stage.payload)
        if isinstance(stage, Fail):
            return self._render_errors(OutcomeKind.REQUEST_MALFORMED, stage.errors)
        params: OperationParams = stage.value
        self.emitter.emit(
            RequestParsed(request.method, params.operation_name, request_id=self.request_id)
        )

        partial = OperationArgs(
            root_value=self.options.root_value,
            variable_values=params.variables,
            operation_name=params.operation_name,
        )

        stage = await self._resolve_schema(partial)
        if isinstance(stage, Respond):
            return self._short_circuit("schema", stage.payload)
        if isinstance(stage, Fail):
            return self._render_errors(OutcomeKind.DOCUMENT_VALIDATION_FAILED, stage.errors)
        schema = stage.value

        stage = await self._resolve_context(
            OperationArgs(
                schema=schema,
                root_value=partial.root_value,
                variable_values=partial.variable_values,
                operation_name=partial.operation_name,
            )
        )
        if isinstance(stage, Respond):
            return self._short_circuit("context", stage.payload)
        if isinstance(stage, Fail):
            return self._render_errors(OutcomeKind.DOCUMENT_VALIDATION_FAILED, stage.errors)
        context_value = stage.value

        stage = await self._on_subscribe(params)
        if isinstance(stage, Respond):
            return self._short_circuit("on_subscribe", stage.payload)
        if isinstance(stage, Fail):
            return self._render_errors(OutcomeKind.DOCUMENT_VALIDATION_FAILED, stage.errors)
        prepared = stage.value

        if isinstance(prepared, ExecutionResult):
            return self._render_result(prepared)

        if isinstance(prepared, OperationArgs):
            args = prepared
            if args.schema is None:
                args.schema = schema
            if args.context_value is None:
                args.context_value = context_value
            if args.root_value is None:
                args.root_value = partial.root_value
            self.args = args
            if args.schema is None:
                raise RuntimeError("The GraphQL schema is not provided")
            if args.document is None:
                raise RuntimeError("Prepared operation arguments are missing the document")
        elif prepared is not None:
            raise TypeError(f"on_subscribe returned an unsupported value: {prepared!r}")
        else:
            if schema is None:
                raise RuntimeError("The GraphQL schema is not provided")

            try:
                document = self.options.parse(params.query)
            except GraphQLError as err:
                return self._render_errors(OutcomeKind.DOCUMENT_PARSE_FAILED, [err])

            args = OperationArgs(
                schema=schema,
                document=document,
                root_value=partial.root_value,
                context_value=context_value,
                variable_values=params.variables,
                operation_name=params.operation_name,
            )
            self.args = args

            rules = await self._validation_rules(args)
            errors = self.options.validate(args.schema, args.document, rules)
            if errors:
                return self._render_errors(OutcomeKind.DOCUMENT_VALIDATION_FAILED, errors)

        operation = get_operation_ast(args.document, args.operation_name)
        if operation is None:
            return self._render_errors(
                OutcomeKind.DOCUMENT_VALIDATION_FAILED,
                [GraphQLError("Unable to detect operation AST")],
            )
        if operation.operation == OperationType.SUBSCRIPTION:
            return self._streaming_unsupported()
        if operation.operation == OperationType.MUTATION and request.method == "GET":
            body = dumps(
                render_errors(
                    [GraphQLError("Cannot perform mutations over GET")],
                    self.options.format_error,
                )
            )
            return self._short_circuit(
                "operation",
                method_not_allowed(
                    "POST", body, **{"content-type": content_type_for(self.media_type)}
                ),
            )

        coerced = get_variable_values(
            args.schema, operation.variable_definitions or [], args.variable_values or {}
        )
        if isinstance(coerced, list):
            return self._render_errors(OutcomeKind.VARIABLE_COERCION_FAILED, coerced)

        started = time.monotonic()
        result = await _maybe_await(self.options.execute(**args.as_kwargs()))
        if _is_async_iterable(result):
            aclose = getattr(result, "aclose", None)
            if aclose is not None:
                await aclose()
            return self._streaming_unsupported()
        self.emitter.emit(
            OperationExecuted(
                operation.operation.value,
                time.monotonic() - started,
                len(result.errors or []),
                request_id=self.request_id,
            )
        )

        if self.options.on_operation is not None:
            stage = to_stage(
                await _maybe_await(self.options.on_operation(request, args, result))
            )
            if isinstance(stage, Respond):
                return self._short_circuit("on_operation", stage.payload)
            if isinstance(stage, Fail):
                return self._render_errors(OutcomeKind.DOCUMENT_VALIDATION_FAILED, stage.errors)
            if isinstance(stage.value, ExecutionResult):
                result = stage.value
            elif stage.value is not None:
                raise TypeError(f"on_operation returned an unsupported value: {stage.value!r}")

        return self._render_result(result)


# ------------------------------------------------------------------ #
# Handler
# ------------------------------------------------------------------ #


class OperationHandler:
    """Framework-agnostic GraphQL over HTTP request handler.

    Plug it into any HTTP server through a thin adapter (see
    ``gqlhttp_server.app`` for Starlette). The handler never raises for
    a request: internal failures become ``500`` responses and are logged.
    """

    def __init__(self, options: HandlerOptions) -> None:
        self.options = options
        self.emitter = EventEmitter(on_event=options.on_event)
        self._request_ids = itertools.count(1)

    async def __call__(self, request: Request) -> ResponsePayload:
        media_type = negotiate_media_type(request.header("accept"))
        run = _OperationRun(
            self.options, request, media_type, self.emitter, next(self._request_ids)
        )
        try:
            payload = await run.run()
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Internal error while handling %s %s", request.method, request.url
            )
            self.emitter.emit(InternalFailureRaised(repr(exc), request_id=run.request_id))
            payload = internal_failure_response(
                exc, media_type, production=self.options.production
            )

        on_complete = self.options.on_complete
        if on_complete is not None:
            await self._notify_async(lambda: on_complete(request, run.args))
        return payload

    @staticmethod
    async def _notify_async(callback: Callable[[], Any | Awaitable[Any]]) -> None:
        try:
            await _maybe_await(callback())
        except Exception:  # noqa: BLE001
            logger.exception("on_complete hook failed")


def create_handler(options: HandlerOptions | None = None, **kwargs: Any) -> OperationHandler:
    """Make a GraphQL over HTTP handler.

    Accepts either a ready `HandlerOptions` or its fields as keywords::

        handler = create_handler(schema=schema, production=True)
    """
    if options is None:
        options = HandlerOptions(**kwargs)
    elif kwargs:
        raise TypeError("Pass either HandlerOptions or keyword options, not both")
    return OperationHandler(options)
