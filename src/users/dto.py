import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, field_validator, model_validator

from ..core.identity import parse_user_id
from ..core.validators import check_length, require_any_field


def validate_username(value: str | None) -> str:
    if value is None:
        raise ValueError("Username cannot be null")
    return check_length(value, "Username", max_length=50, min_length=3)


def validate_full_name(value: str | None) -> str:
    if value is None:
        raise ValueError("Full name cannot be null")
    return check_length(value, "Full name", max_length=100)


class CreateUserPayload(BaseModel):
    username: str
    email: EmailStr
    password_hash: str
    full_name: str

    # Sent by the mobile client right after sign-in so the row shares the auth provider's id
    user_id: uuid.UUID | None = None

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str | None) -> str:
        return validate_username(value)

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, value: str | None) -> str:
        return validate_full_name(value)

    @field_validator("password_hash")
    @classmethod
    def validate_password_hash(cls, value: str) -> str:
        return check_length(value, "Password hash", max_length=255)

    @field_validator("user_id", mode="before")
    @classmethod
    def normalize_user_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_user_id(value)
        return value


class PartialUpdateUserPayload(BaseModel):
    username: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str | None) -> str:
        return validate_username(value)

    @field_validator("full_name")
    @classmethod
    def check_full_name(cls, value: str | None) -> str:
        return validate_full_name(value)

    @model_validator(mode="before")
    @classmethod
    def validate_at_least_one_field_present(cls, data: Any) -> Any:
        return require_any_field(data, ["username", "full_name", "avatar_url"])

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, value: str | None) -> str | None:
        if value is not None and len(value) > 500:
            raise ValueError("Avatar URL must not exceed 500 characters")
        return value


class UserResponse(BaseModel):
    user_id: uuid.UUID
    username: str
    email: EmailStr
    full_name: str
    avatar_url: str | None
    created_at: datetime
    last_login: datetime | None
    is_active: bool


class UserResponseFlat(BaseModel):
    user_id: uuid.UUID
    username: str
    email: EmailStr


class DeleteUserResponse(BaseModel):
    message: str
    deleted_user: UserResponseFlat
