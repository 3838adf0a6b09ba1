"""
Machine, operator-assignment and status-change schemas.

current_status is deliberately absent from MachineCreate/MachineUpdate:
it only changes through POST /machines/{id}/status.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from machine_monitor.schemas.common import BaseSchema, CreatedSchema, non_blank


class MachineCreate(BaseSchema):
    machine_code: str = Field(..., min_length=1, max_length=64)
    machine_name: str = Field(..., min_length=1, max_length=256)
    description: str = ""
    department_id: Optional[uuid.UUID] = None

    @field_validator("machine_code", "machine_name")
    @classmethod
    def names_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class MachineUpdate(BaseSchema):
    """Only fields present in the request body are applied (PATCH semantics)."""

    machine_code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    machine_name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None
    department_id: Optional[uuid.UUID] = None

    @field_validator("machine_code", "machine_name")
    @classmethod
    def names_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class MachineResponse(CreatedSchema):
    machine_code: str
    machine_name: str
    description: str
    current_status: str
    department_id: Optional[uuid.UUID] = None
    last_updated_at: Optional[datetime] = None
    last_updated_by: Optional[uuid.UUID] = None


class StatusCount(BaseSchema):
    status: str
    count: int


class MachineSummary(BaseSchema):
    """Overview counts over the caller's visible machines."""

    total: int
    by_status: list[StatusCount]


class OperatorAssignRequest(BaseSchema):
    user_id: uuid.UUID


class OperatorResponse(BaseSchema):
    id: uuid.UUID
    machine_id: uuid.UUID
    user_id: uuid.UUID
    assigned_at: datetime
    assigned_by: Optional[uuid.UUID] = None


class StatusChangeRequest(BaseSchema):
    status: str = Field(..., min_length=1, max_length=64)
    comment: str = ""

    @field_validator("status")
    @classmethod
    def status_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)
