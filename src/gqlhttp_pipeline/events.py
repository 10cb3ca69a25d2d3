"""Operation pipeline events.

Typed, frozen dataclasses describing what happened to a request on its
way through the pipeline. Each concrete type inherits from
`OperationEvent` and exposes a human-readable `description` property.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationEvent:
    """Something that happened to one request.

    ``request_id`` numbers the requests served by one handler, so stream
    consumers can tell concurrent requests apart.
    """

    request_id: int = field(default=0, kw_only=True)

    @property
    def description(self) -> str:
        return type(self).__name__


# ------------------------------------------------------------------ #
# Request lifecycle
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class RequestParsed(OperationEvent):
    """Emitted once the request parameters have been extracted."""

    method: str
    operation_name: str | None

    @property
    def description(self) -> str:
        name = self.operation_name or "<anonymous>"
        return f"{self.method} request parsed (operation={name})"


@dataclass(frozen=True)
class StageShortCircuited(OperationEvent):
    """Emitted when a stage or hook answers the request itself."""

    stage: str
    status: int

    @property
    def description(self) -> str:
        return f"Stage '{self.stage}' short-circuited with {self.status}"


@dataclass(frozen=True)
class OperationExecuted(OperationEvent):
    """Emitted after the execution engine returns."""

    operation: str
    duration: float
    error_count: int

    @property
    def description(self) -> str:
        return (
            f"{self.operation.capitalize()} executed in {self.duration * 1000:.1f}ms "
            f"({self.error_count} errors)"
        )


@dataclass(frozen=True)
class ResponseRendered(OperationEvent):
    """Emitted when the pipeline renders its own response."""

    outcome: str
    status: int
    media_type: str

    @property
    def description(self) -> str:
        return f"Responded {self.status} {self.media_type} ({self.outcome})"


@dataclass(frozen=True)
class InternalFailureRaised(OperationEvent):
    """Emitted when a hook, resolver or collaborator raised unexpectedly."""

    error: str

    @property
    def description(self) -> str:
        return f"Internal failure: {self.error}"


# ------------------------------------------------------------------ #
# Event emitter
# ------------------------------------------------------------------ #


_CLOSED = object()


class EventEmitter:
    """Fans pipeline events out to an ``on_event`` callback and to streams.

    The callback runs synchronously inside `emit`; its failures are logged
    and never reach the emitting code. Every ``events()`` iterator owns a
    queue registered when iteration starts; events emitted with no
    iterator attached are only seen by the callback. `close` ends all
    streams, current and future.
    """

    def __init__(
        self,
        on_event: Callable[[OperationEvent], None] | None = None,
    ) -> None:
        self._on_event = on_event
        self._queues: list[asyncio.Queue[OperationEvent | object]] = []
        self._closed = False

    def emit(self, event: OperationEvent) -> None:
        """Deliver ``event`` to the callback and every open stream."""
        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event listener failed on %s", type(event).__name__)
        if not self._closed:
            for queue in self._queues:
                queue.put_nowait(event)

    def close(self) -> None:
        """End every stream; later emits still reach the callback."""
        self._closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)

    def subscribe(self) -> asyncio.Queue[OperationEvent | object]:
        """Register a stream queue; pair with `unsubscribe`."""
        queue: asyncio.Queue[OperationEvent | object] = asyncio.Queue()
        if self._closed:
            queue.put_nowait(_CLOSED)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[OperationEvent | object]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    async def events(self) -> AsyncIterator[OperationEvent]:
        """Stream events emitted from now until `close`."""
        queue = self.subscribe()
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                yield item  # type: ignore[misc]
        finally:
            self.unsubscribe(queue)
