"""Tests for MemoryAuthClient."""

import threading
from datetime import timedelta

import pytest

from reactive_auth import ActionCodeOperation, ActionCodeSettings, AuthErrorCode, IdentityError
from reactive_auth.memory import (
    MemoryAuthClient,
    build_action_link,
    hash_password,
    is_sign_in_with_email_link,
    user_factory,
    verify_password,
)


class Capture:
    """Callback that records every invocation."""

    def __init__(self):
        self.calls = []
        self.event = threading.Event()

    def __call__(self, *args):
        self.calls.append(args)
        self.event.set()

    @property
    def result(self):
        return self.calls[-1][0]

    @property
    def error(self):
        return self.calls[-1][-1]


class TestFactories:
    """Tests for helper functions and factories."""

    def test_user_factory_defaults(self):
        user = user_factory()
        assert len(user.uid) == 28
        assert user.email is None
        assert user.is_anonymous is False
        assert user.created_at is not None

    def test_user_factory_custom(self):
        user = user_factory(uid="uid-1", email="custom@test.com", is_anonymous=True)
        assert user.uid == "uid-1"
        assert user.email == "custom@test.com"
        assert user.is_anonymous is True

    def test_hash_password_uses_bcrypt(self):
        hashed = hash_password("secret123")
        assert hashed != "secret123"
        assert hashed.startswith("$2b$")

    def test_hash_password_is_salted(self):
        assert hash_password("secret123") != hash_password("secret123")

    def test_verify_password(self):
        hashed = hash_password("secret123")
        assert verify_password("secret123", hashed) is True
        assert verify_password("Secret123", hashed) is False

    def test_sign_in_link_detection(self):
        link = build_action_link("https://example.com/finish", ActionCodeOperation.EMAIL_SIGN_IN, "abc")
        assert link == "https://example.com/finish?mode=signIn&oobCode=abc"
        assert is_sign_in_with_email_link(link) is True

        reset = build_action_link("https://example.com/finish?lang=en", ActionCodeOperation.PASSWORD_RESET, "abc")
        assert "?lang=en&mode=resetPassword" in reset
        assert is_sign_in_with_email_link(reset) is False
        assert is_sign_in_with_email_link("https://example.com/") is False


class TestMemoryAuthClient:
    """Tests for MemoryAuthClient callbacks and state."""

    def test_invalid_dispatch_raises(self):
        with pytest.raises(ValueError, match="dispatch must be"):
            MemoryAuthClient(dispatch="eventually")

    def test_create_user(self, memory_client: MemoryAuthClient):
        callback = Capture()
        memory_client.create_user("Test@Example.com", "secret123", callback)

        result, error = callback.calls[0]
        assert error is None
        assert result.user.email == "test@example.com"
        assert result.additional_user_info.is_new_user is True
        assert memory_client.current_user == result.user

    @pytest.mark.parametrize(
        "email, password, code",
        [
            ("not-an-email", "secret123", AuthErrorCode.INVALID_EMAIL),
            ("user@example.com", "123", AuthErrorCode.WEAK_PASSWORD),
        ],
    )
    def test_create_user_validation(self, memory_client, email, password, code):
        callback = Capture()
        memory_client.create_user(email, password, callback)

        assert callback.result is None
        assert isinstance(callback.error, IdentityError)
        assert callback.error.code == code

    def test_create_user_duplicate(self, memory_client):
        memory_client.create_user("dup@example.com", "secret123", Capture())
        callback = Capture()
        memory_client.create_user("dup@example.com", "other-secret", callback)

        assert callback.error.code == AuthErrorCode.EMAIL_ALREADY_IN_USE
        assert callback.error.to_dict()["code"] == "email-already-in-use"

    def test_sign_in_errors(self, memory_client):
        memory_client.create_user("user@example.com", "secret123", Capture())

        wrong = Capture()
        memory_client.sign_in_with_email_password("user@example.com", "nope-nope", wrong)
        assert wrong.error.code == AuthErrorCode.WRONG_PASSWORD

        missing = Capture()
        memory_client.sign_in_with_email_password("ghost@example.com", "secret123", missing)
        assert missing.error.code == AuthErrorCode.USER_NOT_FOUND

        memory_client.disable_user("user@example.com")
        disabled = Capture()
        memory_client.sign_in_with_email_password("user@example.com", "secret123", disabled)
        assert disabled.error.code == AuthErrorCode.USER_DISABLED

    def test_disabled_provider(self, memory_client):
        memory_client.set_provider_enabled("anonymous", False)
        callback = Capture()
        memory_client.sign_in_anonymously(callback)
        assert callback.error.code == AuthErrorCode.OPERATION_NOT_ALLOWED

        memory_client.set_provider_enabled("anonymous", True)
        memory_client.sign_in_anonymously(callback)
        assert callback.error is None

    def test_anonymous_sign_in_reuses_anonymous_user(self, memory_client):
        first, second = Capture(), Capture()
        memory_client.sign_in_anonymously(first)
        memory_client.sign_in_anonymously(second)

        assert first.result.user.is_anonymous is True
        assert second.result.user.uid == first.result.user.uid
        assert second.result.additional_user_info.is_new_user is False

    def test_should_fail_once(self, memory_client):
        memory_client.set_should_fail(True, error="opaque-failure")
        failed, succeeded = Capture(), Capture()

        memory_client.fetch_sign_in_methods("user@example.com", failed)
        memory_client.fetch_sign_in_methods("user@example.com", succeeded)

        assert failed.calls == [(None, "opaque-failure")]
        assert succeeded.calls == [([], None)]

    def test_should_fail_defaults_to_internal_error(self, memory_client):
        memory_client.set_should_fail(True)
        callback = Capture()

        memory_client.sign_in_anonymously(callback)

        assert isinstance(callback.error, IdentityError)
        assert callback.error.code == AuthErrorCode.INTERNAL_ERROR

    def test_password_is_checked_against_stored_hash(self, memory_client):
        memory_client.create_user("user@example.com", "secret123", Capture())
        wrong, right = Capture(), Capture()

        memory_client.sign_in_with_email_password("user@example.com", "secret124", wrong)
        memory_client.sign_in_with_email_password("user@example.com", "secret123", right)

        assert wrong.error.code == AuthErrorCode.WRONG_PASSWORD
        assert right.error is None
        assert right.result.user.email == "user@example.com"

    def test_sign_in_link_code_cannot_be_applied(self, memory_client):
        memory_client.send_sign_in_link(
            "user@example.com",
            ActionCodeSettings(url="https://example.com/finish", handle_code_in_app=True),
            Capture(),
        )
        code = memory_client.latest_email("user@example.com", ActionCodeOperation.EMAIL_SIGN_IN).code

        applied = Capture()
        memory_client.apply_action_code(code, applied)
        assert applied.error.code == AuthErrorCode.INVALID_ACTION_CODE

        checked = Capture()
        memory_client.check_action_code(code, checked)
        assert checked.result.operation == ActionCodeOperation.EMAIL_SIGN_IN

    def test_send_sign_in_link_requires_in_app_handling(self, memory_client):
        callback = Capture()
        memory_client.send_sign_in_link(
            "user@example.com",
            ActionCodeSettings(url="https://example.com/finish"),
            callback,
        )
        assert callback.error.code == AuthErrorCode.ARGUMENT_ERROR
        assert memory_client.outbox == []

    def test_send_password_reset_settings_validation(self, memory_client):
        memory_client.create_user("user@example.com", "secret123", Capture())

        missing_url = Capture()
        memory_client.send_password_reset("user@example.com", missing_url, action_code_settings=ActionCodeSettings())
        assert missing_url.error.code == AuthErrorCode.MISSING_CONTINUE_URI

        missing_package = Capture()
        memory_client.send_password_reset(
            "user@example.com",
            missing_package,
            action_code_settings=ActionCodeSettings(url="https://example.com", android_install_app=True),
        )
        assert missing_package.error.code == AuthErrorCode.MISSING_ANDROID_PACKAGE_NAME

    def test_expired_code(self):
        client = MemoryAuthClient(action_code_ttl=timedelta(0))
        client.create_user("user@example.com", "secret123", Capture())
        client.send_password_reset("user@example.com", Capture())
        code = client.latest_email("user@example.com").code

        callback = Capture()
        client.verify_password_reset_code(code, callback)
        assert callback.error.code == AuthErrorCode.EXPIRED_ACTION_CODE

    def test_listeners_fire_on_registration_and_uid_change(self, memory_client):
        states, tokens = Capture(), Capture()
        state_handle = memory_client.add_state_did_change_listener(states)
        memory_client.add_id_token_did_change_listener(tokens)

        assert states.calls == [(memory_client, None)]
        assert tokens.calls == [(memory_client, None)]

        memory_client.create_user("user@example.com", "secret123", Capture())
        memory_client.sign_in_with_email_password("user@example.com", "secret123", Capture())
        memory_client.refresh_token()

        # Same uid signing in again is not an auth state change
        assert len(states.calls) == 2
        assert len(tokens.calls) == 4

        memory_client.remove_state_did_change_listener(state_handle)
        memory_client.sign_out()
        assert len(states.calls) == 2
        assert tokens.calls[-1] == (memory_client, None)
        assert memory_client.state_listener_count == 0
        assert memory_client.id_token_listener_count == 1

    def test_refresh_without_user_does_nothing(self, memory_client):
        tokens = Capture()
        memory_client.add_id_token_did_change_listener(tokens)
        memory_client.refresh_token()
        assert len(tokens.calls) == 1

    def test_thread_dispatch(self, threaded_client):
        callback = Capture()
        threaded_client.create_user("user@example.com", "secret123", callback)

        assert callback.event.wait(timeout=2)
        assert callback.error is None
        assert callback.result.user.email == "user@example.com"

    def test_clear(self, memory_client):
        memory_client.create_user("user@example.com", "secret123", Capture())
        memory_client.clear()

        callback = Capture()
        memory_client.fetch_sign_in_methods("user@example.com", callback)
        assert callback.result == []
        assert memory_client.current_user is None
