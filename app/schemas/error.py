"""Error envelope schemas shared across API handlers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel
from pydantic import Field


class FieldError(BaseModel):
    """Single field-level validation issue."""

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Top-level API error response envelope."""

    status: Literal["error"] = "error"
    status_code: int = Field(serialization_alias="statusCode")
    message: str
    errors: list[FieldError] | None = None
    stack: str | None = None
