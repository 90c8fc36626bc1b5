"""Event Dispatcher - fan-out of server events to registered observers.

Events are queued by the transport's reader and delivered by a separate
worker task, so an observer may await follow-up requests on the client
while the reader keeps consuming responses.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .protocol.messages import ObsEvent

logger = logging.getLogger(__name__)

# Observers receive the parsed event and the owning client
Observer = Callable[[ObsEvent, Any], Awaitable[None] | None]


class EventDispatcher:
    """Ordered observer list with per-observer failure isolation.

    Ordering guarantees:
    - For one event, observers run in registration order
    - Across events, delivery follows arrival order (one event at a time)
    """

    def __init__(self, owner: Any = None) -> None:
        self._owner = owner
        self._listeners: list[Observer] = []
        self._queue: asyncio.Queue[ObsEvent | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    @property
    def listeners(self) -> list[Observer]:
        """Registered observers, in registration order."""
        return self._listeners.copy()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add_listener(self, observer: Observer) -> None:
        """Register an observer. Registering twice means two deliveries."""
        self._listeners.append(observer)

    def remove_listener(self, observer: Observer) -> None:
        """Remove the first registration of an observer, if present."""
        with contextlib.suppress(ValueError):
            self._listeners.remove(observer)

    async def dispatch(self, event: ObsEvent) -> None:
        """Deliver one event to every observer.

        A failing observer is logged and skipped; the rest still run.
        """
        # Snapshot so observers can (un)register while being called
        for observer in list(self._listeners):
            try:
                result = observer(event, self._owner)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Error in observer for {event.update_type}")

    def submit(self, event: ObsEvent) -> None:
        """Queue an event for delivery by the worker task."""
        self._queue.put_nowait(event)

    def start(self) -> None:
        """Start the delivery worker."""
        if self.is_running:
            return
        self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Deliver already queued events, then stop the worker."""
        if self._worker is None:
            return

        if asyncio.current_task() is self._worker:
            # Called from inside an observer; let the worker wind down on its own
            self._queue.put_nowait(None)
            return

        self._queue.put_nowait(None)
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            await self.dispatch(event)
