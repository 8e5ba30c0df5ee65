import uuid
from datetime import datetime, timezone

from pydantic import StringConstraints
from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel
from typing_extensions import Annotated


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


AVATAR_URL_MAX_LENGTH = 255


# Tasks


class TaskBase(SQLModel):
    """Base model with shared fields"""

    description: str = Field(min_length=1, max_length=500)


class Task(TaskBase, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    completed: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class TaskCreate(TaskBase):
    """Schema for creating a task"""

    model_config = {"str_strip_whitespace": True}


class TaskUpdate(SQLModel):
    """Schema for updating a task - all fields optional"""

    model_config = {"str_strip_whitespace": True}

    description: str | None = Field(default=None, min_length=1, max_length=500)
    completed: bool | None = None


class TaskResponse(TaskBase):
    """Schema for task responses"""

    id: int
    completed: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


# Users


class User(SQLModel, table=True):
    """Database model. `password` holds the bcrypt digest, never plaintext."""

    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    password: str
    avatar_url: str | None = Field(default=None, max_length=AVATAR_URL_MAX_LENGTH)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


# Names and emails are trimmed; passwords are kept exactly as typed
TrimmedStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class RegisterRequest(SQLModel):
    name: TrimmedStr
    email: TrimmedStr
    password: str = Field(min_length=1)


class RegisterResponse(SQLModel):
    message: str
    id: uuid.UUID


class LoginRequest(SQLModel):
    email: TrimmedStr
    password: str = Field(min_length=1)


class TokenResponse(SQLModel):
    token: str


class ProfileResponse(SQLModel):
    """Public view of a user; the avatar URL is exposed as `photo`."""

    id: uuid.UUID
    name: str
    email: str
    photo: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        return cls(id=user.id, name=user.name, email=user.email, photo=user.avatar_url)


class ProfileUpdate(SQLModel):
    """
    Partial profile update. `photo` may be an http(s) URL, a base64 data URI,
    or an empty string to clear the avatar.
    """

    model_config = {"str_strip_whitespace": True}

    name: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, min_length=1)
    photo: str | None = None


class AvatarResponse(SQLModel):
    message: str
    user: ProfileResponse
