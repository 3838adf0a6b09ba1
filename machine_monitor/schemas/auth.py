"""Auth schemas — login, sign-up, token response, current identity."""

import uuid
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from machine_monitor.schemas.common import BaseSchema, non_blank


class SignupRequest(BaseSchema):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=8)

    @field_validator("full_name")
    @classmethod
    def full_name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        return non_blank(v)


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    role: str
    profile_id: uuid.UUID


class TokenPayload(BaseSchema):
    """Decoded JWT payload."""

    sub: str  # profile email
    role: str
    profile_id: str


class ScopeResponse(BaseSchema):
    """The caller's resolved scope, as the dashboard needs it."""

    kind: str  # universal | department | machine | none
    read_only: bool = False
    department_ids: list[uuid.UUID] = []
    machine_ids: list[uuid.UUID] = []


class MeResponse(BaseSchema):
    """Current identity — returned by GET /auth/me. Anonymous callers get profile=None."""

    id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[str] = None
    scope: ScopeResponse
