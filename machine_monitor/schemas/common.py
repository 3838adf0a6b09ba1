"""
Shared schema primitives.

Every response body is built from ORM rows via from_attributes; errors always
use ErrorResponse so clients can branch on `error` (see machine_monitor.errors).
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class IDSchema(BaseSchema):
    id: uuid.UUID


class CreatedSchema(IDSchema):
    created_at: datetime


class TimestampedSchema(CreatedSchema):
    updated_at: datetime


class MessageResponse(BaseSchema):
    message: str


class ErrorDetail(BaseSchema):
    field: str | None = None
    message: str


class ErrorResponse(BaseSchema):
    error: str  # authorization_denied | not_found | constraint_violation | ...
    details: list[ErrorDetail] = []


def non_blank(value: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace; a value that is empty afterwards is invalid."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value
