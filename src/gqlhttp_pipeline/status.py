"""Outcome classification and the status code table.

Every terminal event of the pipeline carries an `OutcomeKind`. The
status line is a pure function of that kind and the negotiated media
type: ``application/json`` stays lenient (200 unless the request itself
is broken) while ``application/graphql-response+json`` encodes failure
classes in the status code.
"""

from __future__ import annotations

from enum import StrEnum
from http import HTTPStatus

from gqlhttp_pipeline.media import MediaType, content_type_for
from gqlhttp_pipeline.types import ResponseInit


class OutcomeKind(StrEnum):
    REQUEST_MALFORMED = "request_malformed"
    DOCUMENT_PARSE_FAILED = "document_parse_failed"
    DOCUMENT_VALIDATION_FAILED = "document_validation_failed"
    VARIABLE_COERCION_FAILED = "variable_coercion_failed"
    EXECUTION_PRODUCED = "execution_produced"
    STREAMING_UNSUPPORTED = "streaming_unsupported"
    INTERNAL_FAILURE = "internal_failure"


# (kind, has_errors) -> (application/json, application/graphql-response+json)
_STATUS_TABLE: dict[tuple[OutcomeKind, bool], tuple[int, int]] = {
    (OutcomeKind.REQUEST_MALFORMED, True): (400, 400),
    (OutcomeKind.DOCUMENT_PARSE_FAILED, True): (200, 400),
    (OutcomeKind.DOCUMENT_VALIDATION_FAILED, True): (200, 400),
    (OutcomeKind.VARIABLE_COERCION_FAILED, True): (200, 400),
    (OutcomeKind.EXECUTION_PRODUCED, False): (200, 200),
    (OutcomeKind.EXECUTION_PRODUCED, True): (200, 400),
    (OutcomeKind.STREAMING_UNSUPPORTED, True): (400, 400),
    (OutcomeKind.INTERNAL_FAILURE, True): (500, 500),
}


def resolve_status(
    kind: OutcomeKind,
    media_type: MediaType,
    *,
    has_errors: bool = False,
) -> int:
    """Status code for an outcome under the negotiated media type.

    ``has_errors`` only matters for `OutcomeKind.EXECUTION_PRODUCED`;
    every other kind is an error by definition.
    """
    if kind != OutcomeKind.EXECUTION_PRODUCED:
        has_errors = True
    legacy, native = _STATUS_TABLE[(kind, has_errors)]
    return legacy if media_type == MediaType.JSON else native


def status_text(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def make_response_init(
    kind: OutcomeKind,
    media_type: MediaType,
    *,
    has_errors: bool = False,
) -> ResponseInit:
    """Status line and headers for a rendered (JSON bodied) response."""
    status = resolve_status(kind, media_type, has_errors=has_errors)
    return ResponseInit(
        status=status,
        status_text=status_text(status),
        headers={"content-type": content_type_for(media_type)},
    )
