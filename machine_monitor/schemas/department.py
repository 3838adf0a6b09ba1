"""Department and leader-assignment schemas."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from machine_monitor.schemas.common import BaseSchema, CreatedSchema, non_blank


class DepartmentCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=256)
    description: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class DepartmentUpdate(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class DepartmentResponse(CreatedSchema):
    name: str
    description: str
    created_by: Optional[uuid.UUID] = None


class LeaderAssignRequest(BaseSchema):
    user_id: uuid.UUID


class LeaderResponse(BaseSchema):
    id: uuid.UUID
    department_id: uuid.UUID
    user_id: uuid.UUID
    assigned_at: datetime
    assigned_by: Optional[uuid.UUID] = None
