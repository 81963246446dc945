"""
Single-shot deferred producers.

A Deferred wraps one callback-style call. Nothing happens until it is
activated, either by awaiting it or by calling ``subscribe``. Each activation
runs the call again and ends in exactly one success or one failure.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable, Generator
from typing import Any, Generic, TypeVar

import structlog

from .exceptions import AuthOperationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Start = Callable[[Callable[[T], None], Callable[[Any], None]], None]


def as_exception(error: Any, operation: str | None = None) -> BaseException:
    """Return ``error`` unchanged if it is an exception, otherwise wrap it."""
    if isinstance(error, BaseException):
        return error
    return AuthOperationError(error, operation=operation)


class Subscription(Generic[T]):
    """One activation of a Deferred.

    The first completion reported by the wrapped client is forwarded; any later
    completion is dropped. Cancelling stops forwarding but does not abort the
    call already in flight.
    """

    def __init__(
        self,
        operation: str,
        on_success: Callable[[T], None],
        on_failure: Callable[[BaseException], None],
    ) -> None:
        self.operation = operation
        self._on_success = on_success
        self._on_failure = on_failure
        self._lock = threading.Lock()
        self._done = False
        self._cancelled = False

    @property
    def done(self) -> bool:
        """Whether the wrapped call has reported back."""
        return self._done

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Stop forwarding the result. Returns False if there was nothing to cancel."""
        with self._lock:
            if self._done or self._cancelled:
                return False
            self._cancelled = True
        logger.debug("Auth operation cancelled", operation=self.operation)
        return True

    def succeed(self, value: T) -> None:
        if self._claim("success"):
            self._on_success(value)

    def fail(self, error: Any) -> None:
        if self._claim("failure"):
            self._on_failure(as_exception(error, self.operation))

    def _claim(self, outcome: str) -> bool:
        with self._lock:
            if self._done:
                logger.warning(
                    "Ignoring repeated completion from auth client",
                    operation=self.operation,
                    outcome=outcome,
                )
                return False
            self._done = True
            cancelled = self._cancelled

        if cancelled:
            logger.debug(
                "Dropping completion of cancelled operation",
                operation=self.operation,
                outcome=outcome,
            )
            return False

        logger.debug("Auth operation settled", operation=self.operation, outcome=outcome)
        return True

    def __repr__(self) -> str:
        return (
            f"Subscription(operation={self.operation!r}, done={self._done}, "
            f"cancelled={self._cancelled})"
        )


def _log_failure(error: BaseException) -> None:
    logger.error("Unhandled auth operation failure", error=str(error))


class Deferred(Generic[T]):
    """
    Cold, single-shot producer for one auth operation.

    Example:
        ```python
        result = await auth.sign_in_with_email_password("user@example.com", "secret")

        # or, callback style
        subscription = auth.fetch_sign_in_methods("user@example.com").subscribe(
            on_success=print,
            on_failure=handle_error,
        )
        subscription.cancel()
        ```
    """

    def __init__(self, operation: str, start: Start[T]) -> None:
        self.operation = operation
        self._start = start

    def subscribe(
        self,
        on_success: Callable[[T], None],
        on_failure: Callable[[BaseException], None] | None = None,
    ) -> Subscription[T]:
        """
        Activate the operation and forward its outcome to callbacks.

        Args:
            on_success: Called with the operation result
            on_failure: Called with the error. Unhandled failures are logged.

        Returns:
            Subscription that can be cancelled

        Raises:
            Exception: Whatever on_success or on_failure raised, when the
                client reports back before subscribe returns.
        """
        subscription = Subscription(self.operation, on_success, on_failure or _log_failure)
        logger.debug("Auth operation activated", operation=self.operation)

        try:
            self._start(subscription.succeed, subscription.fail)
        except Exception as e:
            # Raised by on_success or on_failure, not by the client
            if subscription.done:
                raise
            subscription.fail(e)

        return subscription

    async def run(self) -> T:
        """Activate the operation and wait for its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()

        def settle(setter: Callable[[Any], None], value: Any) -> None:
            if not future.done():
                setter(value)

        def deliver(setter: Callable[[Any], None], value: Any) -> None:
            # The wrapped client may call back from any thread
            try:
                loop.call_soon_threadsafe(settle, setter, value)
            except RuntimeError:
                logger.debug("Event loop closed before auth operation settled", operation=self.operation)

        subscription = self.subscribe(
            lambda value: deliver(future.set_result, value),
            lambda error: deliver(future.set_exception, error),
        )

        try:
            return await future
        except asyncio.CancelledError:
            subscription.cancel()
            raise

    def __await__(self) -> Generator[Any, None, T]:
        return self.run().__await__()

    def __repr__(self) -> str:
        return f"Deferred(operation={self.operation!r})"
