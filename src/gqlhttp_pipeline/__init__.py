"""GraphQL over HTTP request/response pipeline.

Turns a transport-neutral `Request` into a GraphQL over HTTP
`ResponsePayload`:

- `parse_request_params` -- GET query string / POST JSON body parameters
- `negotiate_media_type` -- response media type from the Accept header
- `resolve_status` -- status code per outcome and media type
- `create_handler` -- the full pipeline with its hook points
"""

from gqlhttp_pipeline.events import (
    EventEmitter,
    InternalFailureRaised,
    OperationEvent,
    OperationExecuted,
    RequestParsed,
    ResponseRendered,
    StageShortCircuited,
)
from gqlhttp_pipeline.formatting import render_errors, render_result
from gqlhttp_pipeline.handler import (
    HandlerOptions,
    OperationHandler,
    create_handler,
    internal_failure_response,
)
from gqlhttp_pipeline.media import MediaType, content_type_for, negotiate_media_type
from gqlhttp_pipeline.params import parse_request_params, validate_params
from gqlhttp_pipeline.stages import Continue, Fail, Respond, StageResult, to_stage
from gqlhttp_pipeline.status import OutcomeKind, make_response_init, resolve_status
from gqlhttp_pipeline.types import (
    OperationArgs,
    OperationParams,
    Request,
    RequestError,
    ResponseInit,
    ResponsePayload,
)

__all__ = [
    # Types
    "Request",
    "RequestError",
    "OperationParams",
    "OperationArgs",
    "ResponseInit",
    "ResponsePayload",
    # Stages
    "Continue",
    "Respond",
    "Fail",
    "StageResult",
    "to_stage",
    # Components
    "parse_request_params",
    "validate_params",
    "MediaType",
    "negotiate_media_type",
    "content_type_for",
    "OutcomeKind",
    "resolve_status",
    "make_response_init",
    "render_result",
    "render_errors",
    # Handler
    "HandlerOptions",
    "OperationHandler",
    "create_handler",
    "internal_failure_response",
    # Events
    "EventEmitter",
    "OperationEvent",
    "RequestParsed",
    "StageShortCircuited",
    "OperationExecuted",
    "ResponseRendered",
    "InternalFailureRaised",
]
