"""Response media type negotiation from the ``Accept`` header.

Preference order, first match wins:

1. ``application/graphql-response+json`` -- the transport's own type
2. ``application/json`` -- the legacy type, kept for older clients
3. ``*/*`` or ``application/*`` -- resolves to ``application/json``

Negotiation never fails: an Accept header naming none of the above
still gets ``application/json``. Quality values are not weighed.
"""

from __future__ import annotations

from enum import StrEnum


class MediaType(StrEnum):
    """Media types a response can be rendered as."""

    GRAPHQL_RESPONSE_JSON = "application/graphql-response+json"
    JSON = "application/json"


def _accepted_tokens(accept: str | None) -> list[str]:
    """Media types from an Accept header, parameters stripped.

    Entries that ask for a charset other than utf-8 are dropped; utf-8
    is the only charset responses are ever encoded in.
    """
    tokens: list[str] = []
    for entry in "".join((accept or "*/*").split()).lower().split(","):
        media_type, *params = entry.split(";")
        charset = next((p for p in params if p.startswith("charset=")), "charset=utf-8")
        if charset not in ("charset=utf-8", "charset=utf8"):
            continue
        if media_type:
            tokens.append(media_type)
    return tokens


def negotiate_media_type(accept: str | None) -> MediaType:
    """Pick the response media type for the given ``Accept`` header value."""
    tokens = _accepted_tokens(accept)
    if MediaType.GRAPHQL_RESPONSE_JSON in tokens:
        return MediaType.GRAPHQL_RESPONSE_JSON
    # application/json, the wildcards and no match at all land on the legacy type
    return MediaType.JSON


def content_type_for(media_type: MediaType) -> str:
    """The ``content-type`` header value for a rendered response."""
    return f"{media_type.value}; charset=utf-8"
