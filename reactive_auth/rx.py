"""RxPY bridges for the reactive auth adapter.

Each Observable here is cold: every subscription activates the operation or
registers a listener of its own, and disposing the subscription cancels the
forwarding or removes that listener.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

import reactivex as rx
from reactivex import Observable
from reactivex.abc import DisposableBase, ObserverBase, SchedulerBase
from reactivex.disposable import Disposable

from .adapter import ReactiveAuth
from .deferred import Deferred
from .exceptions import AuthStreamError
from .models import AuthStateChange
from .stream import ListenerRegistration

T = TypeVar("T")


def from_deferred(deferred: Deferred[T]) -> Observable[T]:
    """Expose a Deferred as an Observable that emits once and completes.

    Args:
        deferred: The operation to run on each subscription.

    Returns:
        Observable emitting the operation result, or an error.
    """

    def subscribe(observer: ObserverBase[T], scheduler: SchedulerBase | None = None) -> DisposableBase:
        def on_success(value: T) -> None:
            observer.on_next(value)
            observer.on_completed()

        subscription = deferred.subscribe(on_success, observer.on_error)
        return Disposable(subscription.cancel)

    return rx.create(subscribe)


def _observe_listener(
    listen: Callable[[Callable[[AuthStateChange], None]], ListenerRegistration],
) -> Observable[AuthStateChange]:
    def subscribe(
        observer: ObserverBase[AuthStateChange],
        scheduler: SchedulerBase | None = None,
    ) -> DisposableBase:
        try:
            registration = listen(observer.on_next)
        except AuthStreamError as e:
            observer.on_error(e)
            return Disposable()
        return Disposable(registration.remove)

    return rx.create(subscribe)


def observe_auth_state(auth: ReactiveAuth) -> Observable[AuthStateChange]:
    """Observable of auth state changes. Never completes on its own."""
    return _observe_listener(auth.listen_auth_state)


def observe_id_token(auth: ReactiveAuth) -> Observable[AuthStateChange]:
    """Observable of ID token changes. Never completes on its own."""
    return _observe_listener(auth.listen_id_token)
