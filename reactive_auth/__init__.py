"""
reactive-auth - Awaitable and streaming adapters for callback-based auth clients.

Wraps a callback-style identity client so each operation becomes a cold,
single-shot Deferred and each persistent listener becomes a cancellable
stream. The adapter adds no authentication logic of its own.

Example usage:
    from reactive_auth import ReactiveAuth
    from reactive_auth.memory import MemoryAuthClient

    client = MemoryAuthClient()
    auth = ReactiveAuth(client)

    # Single-shot operations
    result = await auth.create_user("user@example.com", "secret123")
    methods = await auth.fetch_sign_in_methods("user@example.com")

    # Auth state stream
    async with auth.auth_state_changes() as changes:
        async for change in changes:
            print(change.user)

RxPY:
    from reactive_auth.rx import from_deferred, observe_auth_state

    observe_auth_state(auth).subscribe(on_next=print)
"""

from .adapter import ReactiveAuth
from .client import CallbackAuthClient
from .config import AuthStreamConfig
from .deferred import Deferred, Subscription
from .exceptions import (
    AuthErrorCode,
    AuthOperationError,
    AuthStreamError,
    ContextUnavailableError,
    EmptyResultError,
    IdentityError,
)
from .models import (
    ActionCodeInfo,
    ActionCodeOperation,
    ActionCodeSettings,
    AdditionalUserInfo,
    AuthDataResult,
    AuthStateChange,
    User,
)
from .stream import ListenerRegistration, ListenerStream
from .version import __version__

__all__ = [
    # Adapter
    "ReactiveAuth",
    "CallbackAuthClient",
    "AuthStreamConfig",
    # Primitives
    "Deferred",
    "Subscription",
    "ListenerStream",
    "ListenerRegistration",
    # Exceptions
    "AuthStreamError",
    "AuthOperationError",
    "ContextUnavailableError",
    "EmptyResultError",
    "IdentityError",
    "AuthErrorCode",
    # Models
    "User",
    "AdditionalUserInfo",
    "AuthDataResult",
    "ActionCodeInfo",
    "ActionCodeOperation",
    "ActionCodeSettings",
    "AuthStateChange",
    # Version
    "__version__",
]
