"""Pydantic schemas for user API payloads."""

from __future__ import annotations

from datetime import datetime
import re

from pydantic import AliasGenerator
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# bcrypt only accepts secrets up to this many bytes.
PASSWORD_MAX_BYTES = 72


class UserCreate(BaseModel):
    """Payload to create a user."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=to_camel),
        populate_by_name=True,
    )

    email: str = Field(max_length=320)
    password: str = Field(min_length=8, max_length=PASSWORD_MAX_BYTES)
    first_name: str = Field(min_length=2, max_length=255)
    last_name: str = Field(min_length=2, max_length=255)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("password")
    @classmethod
    def _validate_password_bytes(cls, value: str) -> str:
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
        return value


class User(BaseModel):
    """User response payload."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=AliasGenerator(serialization_alias=to_camel),
    )

    id: int
    email: str
    first_name: str
    last_name: str
    created_at: datetime


class UserNotFound(BaseModel):
    """Body returned when a user lookup by id misses."""

    message: str
