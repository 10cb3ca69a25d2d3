"""GraphQL over HTTP client with push-based results and cancellation."""

from gqlhttp_client.abort import AbortSignal
from gqlhttp_client.client import (
    REQUEST_ACCEPT,
    REQUEST_CONTENT_TYPE,
    Client,
    NetworkError,
    Sink,
    create_client,
)

__all__ = [
    "AbortSignal",
    "Client",
    "NetworkError",
    "REQUEST_ACCEPT",
    "REQUEST_CONTENT_TYPE",
    "Sink",
    "create_client",
]
