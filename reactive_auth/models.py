"""Data models passed through the adapter.

The adapter never inspects these. They are the shapes produced by the
in-memory client and expected by callers of the default client surface.
"""

from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field


class User(BaseModel):
    """A signed-in principal."""

    uid: str = Field(..., description="Unique user ID")
    email: str | None = Field(None, description="User email, None for anonymous users")
    email_verified: bool = Field(default=False, description="Whether the email was verified")
    is_anonymous: bool = Field(default=False, description="Whether the user signed in anonymously")
    display_name: str | None = Field(None, description="Display name")
    provider_ids: list[str] = Field(default_factory=list, description="Linked sign-in providers")
    created_at: datetime | None = Field(None, description="Creation timestamp")
    last_sign_in_at: datetime | None = Field(None, description="Last sign-in timestamp")


class AdditionalUserInfo(BaseModel):
    """Extra information returned alongside a sign-in."""

    provider_id: str = Field(..., description="Provider used for this sign-in")
    is_new_user: bool = Field(default=False, description="Whether the account was just created")
    profile: dict[str, Any] = Field(default_factory=dict, description="Provider profile data")


class AuthDataResult(BaseModel):
    """Result of a sign-in or account creation."""

    user: User = Field(..., description="The signed-in user")
    additional_user_info: AdditionalUserInfo | None = Field(
        None, description="Provider specific information"
    )


class ActionCodeOperation(str, Enum):
    """Kinds of out-of-band action codes."""

    UNKNOWN = "unknown"
    PASSWORD_RESET = "password_reset"
    VERIFY_EMAIL = "verify_email"
    RECOVER_EMAIL = "recover_email"
    EMAIL_SIGN_IN = "email_sign_in"
    VERIFY_AND_CHANGE_EMAIL = "verify_and_change_email"


class ActionCodeSettings(BaseModel):
    """Settings controlling how action code links are built and handled."""

    url: str | None = Field(None, description="Continue URL embedded in the link")
    handle_code_in_app: bool = Field(default=False, description="Open the link in the app")
    ios_bundle_id: str | None = Field(None, description="iOS bundle ID")
    android_package_name: str | None = Field(None, description="Android package name")
    android_install_app: bool = Field(default=False, description="Install the Android app if missing")
    android_minimum_version: str | None = Field(None, description="Minimum Android app version")
    dynamic_link_domain: str | None = Field(None, description="Custom dynamic link domain")


class ActionCodeInfo(BaseModel):
    """Metadata about an out-of-band action code."""

    operation: ActionCodeOperation = Field(..., description="What the code is for")
    email: str | None = Field(None, description="Email the code was issued for")
    previous_email: str | None = Field(None, description="Previous email for email change codes")


class AuthStateChange(NamedTuple):
    """One listener notification: the auth context and its current user."""

    auth: Any
    user: Any
