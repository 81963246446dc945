"""
Callback-based auth client interface.

This is the boundary of the adapter: the shape of the identity library being
wrapped. Operations report back through a callback instead of returning a
value. Result-bearing operations call ``callback(result, error)``; operations
without a result call ``callback(error)``. Exactly one of result/error is
expected to be set.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

from .models import ActionCodeInfo, ActionCodeSettings, AuthDataResult

T = TypeVar("T")

ResultCallback = Callable[[T | None, Any], None]
CompletionCallback = Callable[[Any], None]
StateListener = Callable[[Any, Any], None]


class CallbackAuthClient(ABC):
    """Abstract interface for a callback-based identity client."""

    @property
    @abstractmethod
    def current_user(self) -> Any:
        """The signed-in user, or None."""
        ...

    # Anonymous authentication
    @abstractmethod
    def sign_in_anonymously(self, callback: ResultCallback[AuthDataResult]) -> None:
        """Create and sign in an anonymous user."""
        ...

    # Email/password authentication
    @abstractmethod
    def create_user(
        self,
        email: str,
        password: str,
        callback: ResultCallback[AuthDataResult],
    ) -> None:
        """Create a user and sign it in."""
        ...

    @abstractmethod
    def sign_in_with_email_password(
        self,
        email: str,
        password: str,
        callback: ResultCallback[AuthDataResult],
    ) -> None:
        """Sign in with an email address and password."""
        ...

    # Email link authentication
    @abstractmethod
    def sign_in_with_email_link(
        self,
        email: str,
        link: str,
        callback: ResultCallback[AuthDataResult],
    ) -> None:
        """Sign in with an email address and a sign-in link."""
        ...

    @abstractmethod
    def send_sign_in_link(
        self,
        email: str,
        action_code_settings: ActionCodeSettings,
        callback: CompletionCallback,
    ) -> None:
        """Send a sign-in link to an email address."""
        ...

    @abstractmethod
    def fetch_sign_in_methods(
        self,
        email: str,
        callback: ResultCallback[list[str]],
    ) -> None:
        """List the sign-in methods previously used by an email address."""
        ...

    # Password reset and action codes
    @abstractmethod
    def confirm_password_reset(
        self,
        code: str,
        new_password: str,
        callback: CompletionCallback,
    ) -> None:
        """Reset a password using an out-of-band code."""
        ...

    @abstractmethod
    def verify_password_reset_code(self, code: str, callback: ResultCallback[str]) -> None:
        """Check a password reset code and report the email it was issued for."""
        ...

    @abstractmethod
    def check_action_code(self, code: str, callback: ResultCallback[ActionCodeInfo]) -> None:
        """Check an out-of-band code and report its metadata."""
        ...

    @abstractmethod
    def apply_action_code(self, code: str, callback: CompletionCallback) -> None:
        """Apply an out-of-band code."""
        ...

    @abstractmethod
    def send_password_reset(
        self,
        email: str,
        callback: CompletionCallback,
        action_code_settings: ActionCodeSettings | None = None,
    ) -> None:
        """Send a password reset email."""
        ...

    @abstractmethod
    def sign_out(self) -> None:
        """Sign out the current user."""
        ...

    # Listeners
    @abstractmethod
    def add_state_did_change_listener(self, listener: StateListener) -> Any:
        """Register an auth state listener and return its handle."""
        ...

    @abstractmethod
    def remove_state_did_change_listener(self, handle: Any) -> None:
        """Remove an auth state listener by handle."""
        ...

    @abstractmethod
    def add_id_token_did_change_listener(self, listener: StateListener) -> Any:
        """Register an ID token listener and return its handle."""
        ...

    @abstractmethod
    def remove_id_token_did_change_listener(self, handle: Any) -> None:
        """Remove an ID token listener by handle."""
        ...
