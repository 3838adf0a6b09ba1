"""User-management schemas (profiles)."""

from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from machine_monitor.schemas.common import BaseSchema, TimestampedSchema, non_blank

RoleName = Literal["admin", "team_leader", "operator"]


class UserCreate(BaseSchema):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=8)
    role: RoleName = "operator"

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class RoleUpdate(BaseSchema):
    role: RoleName


class ProfileUpdate(BaseSchema):
    """Self-service fields. role is not accepted here."""

    full_name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    password: Optional[str] = Field(default=None, min_length=8)

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class ProfileResponse(TimestampedSchema):
    email: str
    full_name: str
    role: str
    is_active: bool
