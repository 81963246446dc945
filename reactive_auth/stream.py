from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Callable
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

EventT = TypeVar("EventT")

_CLOSED = object()


class ListenerRegistration:
    """A listener registered with the auth client, removable exactly once."""

    def __init__(self, kind: str, handle: Any, remove: Callable[[Any], None]) -> None:
        self.kind = kind
        self.handle = handle
        self._remove: Callable[[Any], None] | None = remove
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._remove is not None

    def remove(self) -> bool:
        """Deregister the listener. Repeat calls do nothing and return False."""
        with self._lock:
            remove, self._remove = self._remove, None

        if remove is None:
            return False

        remove(self.handle)
        logger.info("Auth listener removed", kind=self.kind)
        return True

    def __repr__(self) -> str:
        return f"ListenerRegistration(kind={self.kind!r}, active={self.active})"


class ListenerStream(Generic[EventT], AsyncIterator[EventT]):
    """A push-based async stream of listener notifications.

    The stream never ends on its own. Cancelling it removes the underlying
    listener and ends iteration; notifications not yet consumed are dropped.
    Must be created inside a running event loop.
    """

    def __init__(self, kind: str, buffer_size: int = 0) -> None:
        self.kind = kind
        self._buffer_size = buffer_size
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._registration: ListenerRegistration | None = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def registration(self) -> ListenerRegistration | None:
        return self._registration

    @property
    def cancelled(self) -> bool:
        return self._closed

    def attach(self, registration: ListenerRegistration) -> None:
        self._registration = registration

    def push(self, event: EventT) -> None:
        if self._closed:
            return
        self._call_in_loop(self._enqueue, event)

    def cancel(self) -> None:
        """Remove the listener and stop iteration. Safe to call repeatedly."""
        if self._registration is not None:
            self._registration.remove()

        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._call_in_loop(self._close_queue)

    async def aclose(self) -> None:
        self.cancel()

    def _enqueue(self, event: EventT) -> None:
        if self._closed:
            return

        if self._buffer_size and self._queue.qsize() >= self._buffer_size:
            self._queue.get_nowait()
            logger.warning(
                "Listener stream buffer full, dropping oldest notification",
                kind=self.kind,
                buffer_size=self._buffer_size,
            )

        self._queue.put_nowait(event)

    def _close_queue(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def _call_in_loop(self, fn: Callable[..., None], *args: Any) -> None:
        if threading.get_ident() == self._loop_thread:
            fn(*args)
            return

        try:
            self._loop.call_soon_threadsafe(fn, *args)
        except RuntimeError:
            logger.debug("Event loop closed, dropping listener notification", kind=self.kind)

    def __aiter__(self) -> ListenerStream[EventT]:
        return self

    async def __anext__(self) -> EventT:
        item = await self._queue.get()
        if item is _CLOSED:
            # Leave the marker for any other consumer
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> ListenerStream[EventT]:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.cancel()
