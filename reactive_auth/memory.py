"""
In-memory identity client.

Provides a callback-based implementation of CallbackAuthClient that keeps
accounts, action codes and listeners in memory. Useful for tests and local
development without an identity backend.
"""

from __future__ import annotations

import re
import secrets
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

import structlog
from passlib.context import CryptContext

from .client import CallbackAuthClient, CompletionCallback, ResultCallback, StateListener
from .exceptions import AuthErrorCode, IdentityError
from .models import (
    ActionCodeInfo,
    ActionCodeOperation,
    ActionCodeSettings,
    AdditionalUserInfo,
    AuthDataResult,
    User,
)

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6
DEFAULT_ACTION_URL = "https://auth.example.invalid/__/auth/action"

PASSWORD_PROVIDER = "password"
ANONYMOUS_PROVIDER = "anonymous"
PASSWORD_SIGN_IN_METHOD = "password"
EMAIL_LINK_SIGN_IN_METHOD = "emailLink"

LINK_MODES = {
    ActionCodeOperation.EMAIL_SIGN_IN: "signIn",
    ActionCodeOperation.PASSWORD_RESET: "resetPassword",
    ActionCodeOperation.VERIFY_EMAIL: "verifyEmail",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password for storage"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash"""
    return pwd_context.verify(plain_password, hashed_password)


def generate_action_code() -> str:
    """Generate an out-of-band action code"""
    return secrets.token_urlsafe(24)


def user_factory(**kwargs: Any) -> User:
    """Create a test User."""
    now = _utcnow()
    return User(
        uid=kwargs.get("uid", uuid.uuid4().hex[:28]),
        email=kwargs.get("email"),
        email_verified=kwargs.get("email_verified", False),
        is_anonymous=kwargs.get("is_anonymous", False),
        display_name=kwargs.get("display_name"),
        provider_ids=kwargs.get("provider_ids", []),
        created_at=kwargs.get("created_at", now),
        last_sign_in_at=kwargs.get("last_sign_in_at", now),
    )


def build_action_link(url: str | None, operation: ActionCodeOperation, code: str) -> str:
    """Build an action link carrying the mode and oobCode query parameters."""
    base = url or DEFAULT_ACTION_URL
    separator = "&" if "?" in base else "?"
    query = urlencode({"mode": LINK_MODES.get(operation, "action"), "oobCode": code})
    return f"{base}{separator}{query}"


def _link_params(link: str) -> dict[str, str]:
    params = parse_qs(urlparse(link).query)
    return {key: values[0] for key, values in params.items() if values}


def is_sign_in_with_email_link(link: str) -> bool:
    """Check whether a link is an email sign-in link."""
    params = _link_params(link)
    return params.get("mode") == LINK_MODES[ActionCodeOperation.EMAIL_SIGN_IN] and "oobCode" in params


@dataclass
class SentEmail:
    """An email the client would have delivered."""

    operation: ActionCodeOperation
    email: str
    code: str
    link: str
    settings: ActionCodeSettings | None = None
    sent_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ListenerHandle:
    """Opaque token for a registered listener."""

    kind: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class _Account:
    user: User
    password_hash: str | None = None
    sign_in_methods: list[str] = field(default_factory=list)
    disabled: bool = False


@dataclass
class _ActionCode:
    operation: ActionCodeOperation
    email: str
    expires_at: datetime
    used: bool = False


class MemoryAuthClient(CallbackAuthClient):
    """In-memory callback-based identity client.

    Callbacks run inline with ``dispatch="sync"`` or, in order, on a single
    worker thread with ``dispatch="thread"``.

    Example:
        client = MemoryAuthClient()

        client.create_user("test@example.com", "secret123", lambda result, error: ...)

        # Codes and links that would have been emailed
        email = client.latest_email("test@example.com")
    """

    def __init__(
        self,
        dispatch: str = "sync",
        action_code_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        """Initialize the client."""
        if dispatch not in ("sync", "thread"):
            raise ValueError("dispatch must be 'sync' or 'thread'")

        self._executor: ThreadPoolExecutor | None = None
        if dispatch == "thread":
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="memory-auth")

        self._action_code_ttl = action_code_ttl
        self._lock = threading.RLock()
        self._accounts: dict[str, _Account] = {}
        self._action_codes: dict[str, _ActionCode] = {}
        self._state_listeners: dict[ListenerHandle, StateListener] = {}
        self._token_listeners: dict[ListenerHandle, StateListener] = {}
        self._current_user: User | None = None
        self._disabled_providers: set[str] = set()
        self.outbox: list[SentEmail] = []

        # Control flags for testing error scenarios
        self._should_fail = False
        self._fail_error: Any = None

    # Control methods for testing

    def set_should_fail(self, should_fail: bool, error: Any = None) -> None:
        """Configure the client to fail the next operation with ``error``."""
        self._should_fail = should_fail
        self._fail_error = error if error is not None else IdentityError(AuthErrorCode.INTERNAL_ERROR)

    def set_provider_enabled(self, provider: str, enabled: bool) -> None:
        """Enable or disable a sign-in provider."""
        with self._lock:
            if enabled:
                self._disabled_providers.discard(provider)
            else:
                self._disabled_providers.add(provider)

    def disable_user(self, email: str) -> None:
        """Disable the account for an email address."""
        with self._lock:
            self._get_account(email).disabled = True

    def latest_email(
        self,
        email: str | None = None,
        operation: ActionCodeOperation | None = None,
    ) -> SentEmail | None:
        """Return the most recent outbox entry matching the filters."""
        for sent in reversed(self.outbox):
            if email is not None and sent.email != email.strip().lower():
                continue
            if operation is not None and sent.operation != operation:
                continue
            return sent
        return None

    @property
    def state_listener_count(self) -> int:
        return len(self._state_listeners)

    @property
    def id_token_listener_count(self) -> int:
        return len(self._token_listeners)

    def clear(self) -> None:
        """Clear all stored data."""
        with self._lock:
            self._accounts.clear()
            self._action_codes.clear()
            self._current_user = None
            self.outbox.clear()

    def close(self) -> None:
        """Stop the callback worker thread, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    # Dispatch helpers

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        if self._executor is None:
            fn(*args)
        else:
            self._executor.submit(self._run_callback, fn, *args)

    @staticmethod
    def _run_callback(fn: Callable[..., None], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Auth callback raised")

    def _take_failure(self) -> Any:
        if self._should_fail:
            self._should_fail = False  # Reset after one failure
            return self._fail_error
        return None

    def _complete(self, callback: ResultCallback[Any], operation: Callable[..., Any], *args: Any) -> None:
        """Run an operation and report through a (result, error) callback."""
        error = self._take_failure()
        if error is not None:
            self._dispatch(callback, None, error)
            return

        try:
            result = operation(*args)
        except IdentityError as e:
            logger.debug("Identity operation failed", code=e.code.value)
            self._dispatch(callback, None, e)
            return

        self._dispatch(callback, result, None)

    def _complete_void(self, callback: CompletionCallback, operation: Callable[..., None], *args: Any) -> None:
        """Run an operation and report through an (error) callback."""
        error = self._take_failure()
        if error is not None:
            self._dispatch(callback, error)
            return

        try:
            operation(*args)
        except IdentityError as e:
            logger.debug("Identity operation failed", code=e.code.value)
            self._dispatch(callback, e)
            return

        self._dispatch(callback, None)

    # Validation helpers

    def _validate_email(self, email: str) -> str:
        if not email or not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
            raise IdentityError(AuthErrorCode.INVALID_EMAIL, "The email address is badly formatted")
        return email.strip().lower()

    def _validate_password(self, password: str) -> None:
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise IdentityError(
                AuthErrorCode.WEAK_PASSWORD,
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
            )

    def _validate_settings(self, settings: ActionCodeSettings, require_in_app: bool = False) -> None:
        if not settings.url:
            raise IdentityError(AuthErrorCode.MISSING_CONTINUE_URI, "A continue URL must be provided")
        if settings.android_install_app and not settings.android_package_name:
            raise IdentityError(
                AuthErrorCode.MISSING_ANDROID_PACKAGE_NAME,
                "An Android package name must be provided to install the app",
            )
        if require_in_app and not settings.handle_code_in_app:
            raise IdentityError(
                AuthErrorCode.ARGUMENT_ERROR,
                "handle_code_in_app must be true for email link sign-in",
            )

    def _ensure_provider_enabled(self, provider: str) -> None:
        if provider in self._disabled_providers:
            raise IdentityError(
                AuthErrorCode.OPERATION_NOT_ALLOWED,
                f"The {provider} sign-in provider is disabled",
            )

    def _get_account(self, email: str) -> _Account:
        account = self._accounts.get(email.strip().lower())
        if account is None:
            raise IdentityError(AuthErrorCode.USER_NOT_FOUND, "There is no user record for this email")
        if account.disabled:
            raise IdentityError(AuthErrorCode.USER_DISABLED, "The user account has been disabled")
        return account

    # Action codes

    def _issue_code(
        self,
        operation: ActionCodeOperation,
        email: str,
        settings: ActionCodeSettings | None = None,
    ) -> SentEmail:
        code = generate_action_code()
        with self._lock:
            self._action_codes[code] = _ActionCode(
                operation=operation,
                email=email,
                expires_at=_utcnow() + self._action_code_ttl,
            )
            sent = SentEmail(
                operation=operation,
                email=email,
                code=code,
                link=build_action_link(settings.url if settings else None, operation, code),
                settings=settings,
            )
            self.outbox.append(sent)

        logger.info("Action code sent", operation=operation.value, email=email)
        return sent

    def _lookup_code(self, code: str, operation: ActionCodeOperation | None = None) -> _ActionCode:
        record = self._action_codes.get(code)
        if record is None or record.used:
            raise IdentityError(AuthErrorCode.INVALID_ACTION_CODE, "The action code is invalid")
        if record.expires_at <= _utcnow():
            raise IdentityError(AuthErrorCode.EXPIRED_ACTION_CODE, "The action code has expired")
        if operation is not None and record.operation != operation:
            raise IdentityError(
                AuthErrorCode.INVALID_ACTION_CODE,
                f"The action code is not valid for {operation.value}",
            )
        return record

    # State and listeners

    @property
    def current_user(self) -> User | None:
        return self._current_user

    def _set_current_user(self, user: User | None) -> None:
        with self._lock:
            previous = self._current_user
            self._current_user = user
            state_listeners = list(self._state_listeners.values())
            token_listeners = list(self._token_listeners.values())

        previous_uid = previous.uid if previous else None
        uid_changed = previous_uid != (user.uid if user else None)

        if uid_changed:
            for listener in state_listeners:
                self._dispatch(listener, self, user)

        if uid_changed or user is not None:
            for listener in token_listeners:
                self._dispatch(listener, self, user)

    def _sign_in(self, account: _Account, **updates: Any) -> User:
        account.user = account.user.model_copy(update={"last_sign_in_at": _utcnow(), **updates})
        self._set_current_user(account.user)
        return account.user

    def add_state_did_change_listener(self, listener: StateListener) -> ListenerHandle:
        handle = ListenerHandle(kind="auth_state")
        with self._lock:
            self._state_listeners[handle] = listener
            user = self._current_user
        self._dispatch(listener, self, user)
        return handle

    def remove_state_did_change_listener(self, handle: ListenerHandle) -> None:
        with self._lock:
            self._state_listeners.pop(handle, None)

    def add_id_token_did_change_listener(self, listener: StateListener) -> ListenerHandle:
        handle = ListenerHandle(kind="id_token")
        with self._lock:
            self._token_listeners[handle] = listener
            user = self._current_user
        self._dispatch(listener, self, user)
        return handle

    def remove_id_token_did_change_listener(self, handle: ListenerHandle) -> None:
        with self._lock:
            self._token_listeners.pop(handle, None)

    def refresh_token(self) -> None:
        """Simulate an ID token refresh for the current user."""
        with self._lock:
            user = self._current_user
            token_listeners = list(self._token_listeners.values())

        if user is None:
            return

        for listener in token_listeners:
            self._dispatch(listener, self, user)

    def sign_out(self) -> None:
        """Sign out the current user."""
        self._set_current_user(None)
        logger.info("User signed out")

    # Anonymous authentication

    def sign_in_anonymously(self, callback: ResultCallback[AuthDataResult]) -> None:
        self._complete(callback, self._sign_in_anonymously)

    def _sign_in_anonymously(self) -> AuthDataResult:
        self._ensure_provider_enabled(ANONYMOUS_PROVIDER)

        with self._lock:
            current = self._current_user
            if current is not None and current.is_anonymous:
                return AuthDataResult(
                    user=current,
                    additional_user_info=AdditionalUserInfo(provider_id=ANONYMOUS_PROVIDER),
                )

            user = user_factory(is_anonymous=True)
            self._set_current_user(user)

        logger.info("Anonymous user signed in", uid=user.uid)
        return AuthDataResult(
            user=user,
            additional_user_info=AdditionalUserInfo(provider_id=ANONYMOUS_PROVIDER, is_new_user=True),
        )

    # Email/password authentication

    def create_user(self, email: str, password: str, callback: ResultCallback[AuthDataResult]) -> None:
        self._complete(callback, self._create_user, email, password)

    def _create_user(self, email: str, password: str) -> AuthDataResult:
        self._ensure_provider_enabled(PASSWORD_PROVIDER)
        email = self._validate_email(email)
        self._validate_password(password)

        with self._lock:
            if email in self._accounts:
                raise IdentityError(
                    AuthErrorCode.EMAIL_ALREADY_IN_USE,
                    "The email address is already in use by another account",
                    details={"email": email},
                )

            user = user_factory(email=email, provider_ids=[PASSWORD_PROVIDER])
            self._accounts[email] = _Account(
                user=user,
                password_hash=hash_password(password),
                sign_in_methods=[PASSWORD_SIGN_IN_METHOD],
            )
            self._set_current_user(user)

        logger.info("User created", email=email, uid=user.uid)
        return AuthDataResult(
            user=user,
            additional_user_info=AdditionalUserInfo(provider_id=PASSWORD_PROVIDER, is_new_user=True),
        )

    def sign_in_with_email_password(
        self,
        email: str,
        password: str,
        callback: ResultCallback[AuthDataResult],
    ) -> None:
        self._complete(callback, self._sign_in_with_email_password, email, password)

    def _sign_in_with_email_password(self, email: str, password: str) -> AuthDataResult:
        self._ensure_provider_enabled(PASSWORD_PROVIDER)
        email = self._validate_email(email)

        with self._lock:
            account = self._get_account(email)
            if account.password_hash is None or not verify_password(password or "", account.password_hash):
                raise IdentityError(AuthErrorCode.WRONG_PASSWORD, "The password is invalid")
            user = self._sign_in(account)

        logger.info("User signed in", email=email, uid=user.uid)
        return AuthDataResult(
            user=user,
            additional_user_info=AdditionalUserInfo(provider_id=PASSWORD_PROVIDER),
        )

    # Email link authentication

    def send_sign_in_link(
        self,
        email: str,
        action_code_settings: ActionCodeSettings,
        callback: CompletionCallback,
    ) -> None:
        self._complete_void(callback, self._send_sign_in_link, email, action_code_settings)

    def _send_sign_in_link(self, email: str, settings: ActionCodeSettings) -> None:
        self._ensure_provider_enabled(PASSWORD_PROVIDER)
        email = self._validate_email(email)
        self._validate_settings(settings, require_in_app=True)
        self._issue_code(ActionCodeOperation.EMAIL_SIGN_IN, email, settings)

    def sign_in_with_email_link(
        self,
        email: str,
        link: str,
        callback: ResultCallback[AuthDataResult],
    ) -> None:
        self._complete(callback, self._sign_in_with_email_link, email, link)

    def _sign_in_with_email_link(self, email: str, link: str) -> AuthDataResult:
        self._ensure_provider_enabled(PASSWORD_PROVIDER)
        email = self._validate_email(email)

        if not is_sign_in_with_email_link(link):
            raise IdentityError(AuthErrorCode.ARGUMENT_ERROR, "The link is not an email sign-in link")
        code = _link_params(link)["oobCode"]

        with self._lock:
            account = self._accounts.get(email)
            if account is not None and account.disabled:
                raise IdentityError(AuthErrorCode.USER_DISABLED, "The user account has been disabled")

            record = self._lookup_code(code, ActionCodeOperation.EMAIL_SIGN_IN)
            if record.email != email:
                raise IdentityError(
                    AuthErrorCode.INVALID_EMAIL,
                    "The email does not match the sign-in link",
                )
            record.used = True

            is_new_user = account is None
            if account is None:
                account = _Account(user=user_factory(email=email, provider_ids=[PASSWORD_PROVIDER]))
                self._accounts[email] = account
            if EMAIL_LINK_SIGN_IN_METHOD not in account.sign_in_methods:
                account.sign_in_methods.append(EMAIL_LINK_SIGN_IN_METHOD)

            user = self._sign_in(account, email_verified=True)

        logger.info("User signed in with email link", email=email, uid=user.uid, new_user=is_new_user)
        return AuthDataResult(
            user=user,
            additional_user_info=AdditionalUserInfo(provider_id=PASSWORD_PROVIDER, is_new_user=is_new_user),
        )

    def fetch_sign_in_methods(self, email: str, callback: ResultCallback[list[str]]) -> None:
        self._complete(callback, self._fetch_sign_in_methods, email)

    def _fetch_sign_in_methods(self, email: str) -> list[str]:
        email = self._validate_email(email)
        account = self._accounts.get(email)
        return list(account.sign_in_methods) if account else []

    # Password reset and action codes

    def send_password_reset(
        self,
        email: str,
        callback: CompletionCallback,
        action_code_settings: ActionCodeSettings | None = None,
    ) -> None:
        self._complete_void(callback, self._send_password_reset, email, action_code_settings)

    def _send_password_reset(self, email: str, settings: ActionCodeSettings | None) -> None:
        email = self._validate_email(email)
        if settings is not None:
            self._validate_settings(settings)
        self._get_account(email)
        self._issue_code(ActionCodeOperation.PASSWORD_RESET, email, settings)

    def send_email_verification(self, callback: CompletionCallback) -> None:
        """Send an email verification code to the current user."""
        self._complete_void(callback, self._send_email_verification)

    def _send_email_verification(self) -> None:
        user = self._current_user
        if user is None or user.email is None:
            raise IdentityError(AuthErrorCode.ARGUMENT_ERROR, "No signed-in user with an email address")
        self._issue_code(ActionCodeOperation.VERIFY_EMAIL, user.email)

    def verify_password_reset_code(self, code: str, callback: ResultCallback[str]) -> None:
        self._complete(callback, self._verify_password_reset_code, code)

    def _verify_password_reset_code(self, code: str) -> str:
        return self._lookup_code(code, ActionCodeOperation.PASSWORD_RESET).email

    def confirm_password_reset(self, code: str, new_password: str, callback: CompletionCallback) -> None:
        self._complete_void(callback, self._confirm_password_reset, code, new_password)

    def _confirm_password_reset(self, code: str, new_password: str) -> None:
        self._validate_password(new_password)

        with self._lock:
            record = self._lookup_code(code, ActionCodeOperation.PASSWORD_RESET)
            account = self._get_account(record.email)
            record.used = True
            account.password_hash = hash_password(new_password)
            if PASSWORD_SIGN_IN_METHOD not in account.sign_in_methods:
                account.sign_in_methods.append(PASSWORD_SIGN_IN_METHOD)

        logger.info("Password reset", email=record.email)

    def check_action_code(self, code: str, callback: ResultCallback[ActionCodeInfo]) -> None:
        self._complete(callback, self._check_action_code, code)

    def _check_action_code(self, code: str) -> ActionCodeInfo:
        record = self._lookup_code(code)
        return ActionCodeInfo(operation=record.operation, email=record.email)

    def apply_action_code(self, code: str, callback: CompletionCallback) -> None:
        self._complete_void(callback, self._apply_action_code, code)

    def _apply_action_code(self, code: str) -> None:
        with self._lock:
            record = self._lookup_code(code)
            if record.operation != ActionCodeOperation.VERIFY_EMAIL:
                raise IdentityError(
                    AuthErrorCode.INVALID_ACTION_CODE,
                    f"{record.operation.value} codes cannot be applied directly",
                )

            account = self._get_account(record.email)
            record.used = True
            account.user = account.user.model_copy(update={"email_verified": True})
            if self._current_user is not None and self._current_user.uid == account.user.uid:
                self._current_user = account.user

        logger.info("Email verified", email=record.email)
