"""Authentication models.

Pydantic models for users, sessions, requests and operation results.
These define the data shapes used across the auth core.  No business
logic lives here -- only structure and basic field coercion.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------

class User(BaseModel):
    """Full user record as stored.  Never returned outside the store/service."""

    id: int | None = None
    username: str
    email: str
    password_hash: str
    created_at: datetime = Field(default_factory=_utcnow)


class UserPublic(BaseModel):
    """User record without the password hash, for callers and responses."""

    id: int
    username: str
    email: str
    created_at: datetime


class Session(BaseModel):
    """A login session.  Valid while ``expires_at`` lies in the future."""

    session_token: str
    user_id: int
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


# ---------------------------------------------------------------------------
# HTTP request bodies
# ---------------------------------------------------------------------------

class _Credentials(BaseModel):

    @field_validator("*", mode="before")
    @classmethod
    def missing_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class RegisterRequest(_Credentials):
    """JSON body for registration.  Absent fields read as empty."""

    username: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(_Credentials):
    """JSON body for login.  Absent fields read as empty."""

    email: str = ""
    password: str = ""


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class RegisterResult(_Result):
    success: bool
    message: str
    user_id: int | None = None


class AuthResult(_Result):
    success: bool
    message: str
    session_token: str | None = None
    user_id: int | None = None


class SessionCheck(_Result):
    valid: bool
    user_id: int | None = None


class LogoutResult(_Result):
    success: bool = True


class Caller(BaseModel):
    """Who, if anyone, is making a request."""

    user_id: int | None = None
    user_info: UserPublic | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None
