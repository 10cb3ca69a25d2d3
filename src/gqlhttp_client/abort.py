"""Cooperative cancellation primitive for client subscriptions.

One `AbortSignal` belongs to the client and holds the listener list of
every active subscription; each subscription owns its own signal and
links it into the client's with `on_abort`, unlinking once it settles.
Listeners therefore never accumulate past the number of requests in
flight.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class AbortSignal:
    """Set-once flag with a list of abort listeners.

    Usage::

        signal = AbortSignal()
        unregister = signal.on_abort(task.cancel)

        # From the disposer:
        signal.set()

        # Once the task settled on its own:
        unregister()
    """

    def __init__(self) -> None:
        self._aborted = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def is_set(self) -> bool:
        return self._aborted

    def set(self) -> None:
        """Abort, running each listener once. Repeated calls do nothing."""
        if self._aborted:
            return
        self._aborted = True
        # listeners may unregister themselves while firing
        for listener in list(self._listeners):
            self._fire(listener)
        self._listeners.clear()

    def on_abort(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Add ``callback`` as a listener and return its remover.

        On an already aborted signal ``callback`` runs right away and the
        remover does nothing.
        """
        if self._aborted:
            self._fire(callback)
            return lambda: None

        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @staticmethod
    def _fire(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001
            logger.exception("Abort callback failed")
