"""
Reactive adapter over a callback-based auth client.

ReactiveAuth turns each callback-style operation of a CallbackAuthClient into
a Deferred, and each persistent listener into a ListenerStream. It holds only
a weak reference to the client, so wrapping a client never keeps it alive.
"""

import weakref
from collections.abc import Callable
from typing import Any

import structlog

from .client import CallbackAuthClient
from .config import AuthStreamConfig
from .deferred import Deferred
from .exceptions import ContextUnavailableError, EmptyResultError
from .models import ActionCodeInfo, ActionCodeSettings, AuthDataResult, AuthStateChange
from .stream import ListenerRegistration, ListenerStream

logger = structlog.get_logger(__name__)

AUTH_STATE = "auth_state"
ID_TOKEN = "id_token"


class ReactiveAuth:
    """
    Awaitable and streaming view of a callback-based auth client.

    Example:
        ```python
        from reactive_auth import ReactiveAuth

        auth = ReactiveAuth(client)

        result = await auth.create_user("user@example.com", "password")

        async with auth.auth_state_changes() as changes:
            async for change in changes:
                print(change.user)
        ```
    """

    def __init__(
        self,
        client: CallbackAuthClient,
        config: AuthStreamConfig | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            client: The callback-based client to wrap. Only weakly referenced.
            config: Adapter configuration. If None, uses default config.
        """
        self.config = config or AuthStreamConfig()
        self._client_ref = weakref.ref(client)
        logger.info("ReactiveAuth initialized", client=type(client).__name__)

    @property
    def client(self) -> CallbackAuthClient | None:
        """The wrapped client, or None once it has been released."""
        return self._client_ref()

    def _require_client(self, operation: str) -> CallbackAuthClient:
        client = self._client_ref()
        if client is None:
            raise ContextUnavailableError(operation)
        return client

    def _deferred(
        self,
        operation: str,
        invoke: Callable[[CallbackAuthClient, Callable[..., None]], None],
        has_result: bool = True,
    ) -> Deferred[Any]:
        """Build a Deferred that runs ``invoke`` against the client on activation."""

        def start(succeed: Callable[[Any], None], fail: Callable[[Any], None]) -> None:
            client = self._client_ref()
            if client is None:
                if self.config.on_context_released == "stall":
                    logger.warning("Auth client released, operation will not complete", operation=operation)
                    return
                raise ContextUnavailableError(operation)

            if has_result:

                def callback(result: Any, error: Any) -> None:
                    if error is not None:
                        fail(error)
                    elif result is not None:
                        succeed(result)
                    else:
                        fail(EmptyResultError(operation))

            else:

                def callback(error: Any) -> None:
                    if error is not None:
                        fail(error)
                    else:
                        succeed(None)

            invoke(client, callback)

        return Deferred(operation, start)

    # Anonymous authentication

    def sign_in_anonymously(self) -> Deferred[AuthDataResult]:
        """
        Create and sign in an anonymous user.

        If an anonymous user is already signed in, that user is returned. Any
        other signed-in user is signed out.

        Returns:
            Deferred emitting the sign-in result

        Remark:
            OPERATION_NOT_ALLOWED: anonymous accounts are not enabled.
        """
        return self._deferred(
            "sign_in_anonymously",
            lambda client, callback: client.sign_in_anonymously(callback),
        )

    # Email/password authentication

    def create_user(self, email: str, password: str) -> Deferred[AuthDataResult]:
        """
        Create a user and, on success, sign it in.

        Args:
            email: The user's email address
            password: The user's desired password

        Returns:
            Deferred emitting the sign-in result

        Remark:
            INVALID_EMAIL: the email address is malformed.
            EMAIL_ALREADY_IN_USE: an account already exists for the email.
            OPERATION_NOT_ALLOWED: email and password accounts are not enabled.
            WEAK_PASSWORD: the password is considered too weak.
        """
        return self._deferred(
            "create_user",
            lambda client, callback: client.create_user(email, password, callback),
        )

    def sign_in_with_email_password(self, email: str, password: str) -> Deferred[AuthDataResult]:
        """
        Sign in with an email address and password.

        Remark:
            OPERATION_NOT_ALLOWED: email and password accounts are not enabled.
            USER_DISABLED: the account is disabled.
            WRONG_PASSWORD: the password is incorrect.
            INVALID_EMAIL: the email address is malformed.
        """
        return self._deferred(
            "sign_in_with_email_password",
            lambda client, callback: client.sign_in_with_email_password(email, password, callback),
        )

    # Email link authentication

    def sign_in_with_email_link(self, email: str, link: str) -> Deferred[AuthDataResult]:
        """Sign in with an email address and the sign-in link sent to it."""
        return self._deferred(
            "sign_in_with_email_link",
            lambda client, callback: client.sign_in_with_email_link(email, link, callback),
        )

    def send_sign_in_link(self, email: str, action_code_settings: ActionCodeSettings) -> Deferred[None]:
        """
        Send a sign-in link to an email address.

        Args:
            email: The email address of the user
            action_code_settings: Settings for building and handling the link

        Returns:
            Deferred emitting None once the link was sent
        """
        return self._deferred(
            "send_sign_in_link",
            lambda client, callback: client.send_sign_in_link(email, action_code_settings, callback),
            has_result=False,
        )

    def fetch_sign_in_methods(self, email: str) -> Deferred[list[str]]:
        """List the sign-in methods previously used with an email address."""
        return self._deferred(
            "fetch_sign_in_methods",
            lambda client, callback: client.fetch_sign_in_methods(email, callback),
        )

    # Password reset and action codes

    def confirm_password_reset(self, code: str, new_password: str) -> Deferred[None]:
        """
        Reset a password given an out-of-band code and the new password.

        Remark:
            WEAK_PASSWORD: the new password is considered too weak.
            EXPIRED_ACTION_CODE: the code has expired.
            INVALID_ACTION_CODE: the code is invalid or already used.
        """
        return self._deferred(
            "confirm_password_reset",
            lambda client, callback: client.confirm_password_reset(code, new_password, callback),
            has_result=False,
        )

    def verify_password_reset_code(self, code: str) -> Deferred[str]:
        """Check a password reset code; emits the email it was issued for."""
        return self._deferred(
            "verify_password_reset_code",
            lambda client, callback: client.verify_password_reset_code(code, callback),
        )

    def check_action_code(self, code: str) -> Deferred[ActionCodeInfo]:
        """Check an out-of-band code; emits its metadata."""
        return self._deferred(
            "check_action_code",
            lambda client, callback: client.check_action_code(code, callback),
        )

    def apply_action_code(self, code: str) -> Deferred[None]:
        """
        Apply an out-of-band code.

        Codes that need an extra parameter, such as password reset codes, are
        rejected by the client.
        """
        return self._deferred(
            "apply_action_code",
            lambda client, callback: client.apply_action_code(code, callback),
            has_result=False,
        )

    def send_password_reset(
        self,
        email: str,
        action_code_settings: ActionCodeSettings | None = None,
    ) -> Deferred[None]:
        """
        Send a password reset email.

        Args:
            email: The email address of the user
            action_code_settings: Optional settings for building the reset link

        Returns:
            Deferred emitting None once the email was sent

        Remark:
            INVALID_EMAIL: the email address is malformed.
            USER_NOT_FOUND: no account exists for the email.
            MISSING_CONTINUE_URI: settings were given without a continue URL.
            MISSING_ANDROID_PACKAGE_NAME: android_install_app is set without a package name.
        """
        if action_code_settings is None:
            invoke = lambda client, callback: client.send_password_reset(email, callback)  # noqa: E731
        else:
            invoke = lambda client, callback: client.send_password_reset(  # noqa: E731
                email, callback, action_code_settings=action_code_settings
            )
        return self._deferred("send_password_reset", invoke, has_result=False)

    # Listeners

    def _listen(
        self,
        kind: str,
        on_change: Callable[[AuthStateChange], None],
    ) -> ListenerRegistration:
        client = self._require_client(kind)

        def listener(auth: Any, user: Any) -> None:
            on_change(AuthStateChange(auth, user))

        if kind == AUTH_STATE:
            handle = client.add_state_did_change_listener(listener)
            remove = client.remove_state_did_change_listener
        else:
            handle = client.add_id_token_did_change_listener(listener)
            remove = client.remove_id_token_did_change_listener

        logger.info("Auth listener registered", kind=kind)
        return ListenerRegistration(kind, handle, remove)

    def listen_auth_state(self, on_change: Callable[[AuthStateChange], None]) -> ListenerRegistration:
        """
        Register a callback for auth state changes.

        The callback fires on registration, when a user with a different uid
        signs in, and when the current user signs out.
        """
        return self._listen(AUTH_STATE, on_change)

    def listen_id_token(self, on_change: Callable[[AuthStateChange], None]) -> ListenerRegistration:
        """
        Register a callback for ID token changes.

        Fires in the same cases as listen_auth_state, plus on every sign-in
        and whenever the current user's token is refreshed.
        """
        return self._listen(ID_TOKEN, on_change)

    def _stream(self, kind: str) -> ListenerStream[AuthStateChange]:
        stream: ListenerStream[AuthStateChange] = ListenerStream(kind, self.config.stream_buffer_size)
        stream.attach(self._listen(kind, stream.push))
        return stream

    def auth_state_changes(self) -> ListenerStream[AuthStateChange]:
        """
        Stream auth state changes until cancelled.

        Every call registers its own listener. Must be called from a running
        event loop.

        Returns:
            ListenerStream emitting AuthStateChange(auth, user) tuples
        """
        return self._stream(AUTH_STATE)

    def id_token_changes(self) -> ListenerStream[AuthStateChange]:
        """Stream ID token changes until cancelled."""
        return self._stream(ID_TOKEN)
