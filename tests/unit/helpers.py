from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from reactive_auth import CallbackAuthClient
from reactive_auth.models import AuthDataResult, User


@dataclass
class RecordedCall:
    name: str
    args: tuple
    callback: Callable[..., None]


class ManualAuthClient(CallbackAuthClient):
    """Callback client that records calls and only answers when told to."""

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self.responses: dict[str, list[tuple]] = {}
        self.listeners: dict[object, tuple[str, Callable[[Any, Any], None]]] = {}
        self.added: list[tuple[str, object]] = []
        self.removed: list[tuple[str, object]] = []

    def respond(self, name: str, *args: Any, times: int = 1) -> None:
        """Answer every future ``name`` call by invoking its callback with ``args``."""
        self.responses[name] = [args] * times

    def _record(self, name: str, args: tuple, callback: Callable[..., None]) -> None:
        self.calls.append(RecordedCall(name, args, callback))
        for response in self.responses.get(name, []):
            callback(*response)

    def emit(self, kind: str, user: Any) -> None:
        for registered_kind, listener in list(self.listeners.values()):
            if registered_kind == kind:
                listener(self, user)

    @property
    def current_user(self) -> Any:
        return None

    def sign_in_anonymously(self, callback):
        self._record("sign_in_anonymously", (), callback)

    def create_user(self, email, password, callback):
        self._record("create_user", (email, password), callback)

    def sign_in_with_email_password(self, email, password, callback):
        self._record("sign_in_with_email_password", (email, password), callback)

    def sign_in_with_email_link(self, email, link, callback):
        self._record("sign_in_with_email_link", (email, link), callback)

    def send_sign_in_link(self, email, action_code_settings, callback):
        self._record("send_sign_in_link", (email, action_code_settings), callback)

    def fetch_sign_in_methods(self, email, callback):
        self._record("fetch_sign_in_methods", (email,), callback)

    def confirm_password_reset(self, code, new_password, callback):
        self._record("confirm_password_reset", (code, new_password), callback)

    def verify_password_reset_code(self, code, callback):
        self._record("verify_password_reset_code", (code,), callback)

    def check_action_code(self, code, callback):
        self._record("check_action_code", (code,), callback)

    def apply_action_code(self, code, callback):
        self._record("apply_action_code", (code,), callback)

    def send_password_reset(self, email, callback, action_code_settings=None):
        self._record("send_password_reset", (email, action_code_settings), callback)

    def sign_out(self) -> None:
        self.emit("auth_state", None)

    def _add(self, kind: str, listener: Callable[[Any, Any], None]) -> object:
        handle = object()
        self.listeners[handle] = (kind, listener)
        self.added.append((kind, handle))
        return handle

    def _remove(self, kind: str, handle: object) -> None:
        self.listeners.pop(handle, None)
        self.removed.append((kind, handle))

    def add_state_did_change_listener(self, listener):
        return self._add("auth_state", listener)

    def remove_state_did_change_listener(self, handle):
        self._remove("auth_state", handle)

    def add_id_token_did_change_listener(self, listener):
        return self._add("id_token", listener)

    def remove_id_token_did_change_listener(self, handle):
        self._remove("id_token", handle)


def create_auth_result(email: str = "user@example.com", uid: str = "uid-123") -> AuthDataResult:
    return AuthDataResult(user=User(uid=uid, email=email))
