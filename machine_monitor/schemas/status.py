"""StatusType catalog and StatusHistory schemas."""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, field_validator

from machine_monitor.schemas.common import BaseSchema, CreatedSchema, non_blank

ColorTag = Literal["green", "blue", "yellow", "red", "purple", "orange", "pink", "gray"]


class StatusTypeCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=64)
    color: ColorTag = "gray"

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class StatusTypeUpdate(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    color: Optional[ColorTag] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class StatusTypeResponse(CreatedSchema):
    name: str
    color: str
    is_default: bool
    is_active: bool
    display_order: int


class StatusHistoryResponse(BaseSchema):
    id: uuid.UUID
    machine_id: uuid.UUID
    previous_status: str
    status: str
    comment: str
    changed_by: uuid.UUID
    changed_at: datetime
