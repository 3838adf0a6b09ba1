"""
Profile — one row per authenticated identity, holding its role.
"""

from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, String, true
from sqlalchemy.orm import Mapped, mapped_column

from machine_monitor.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


# ── Enums (stored as strings for readability + migration safety) ────────────


class UserRole:
    ADMIN = "admin"
    TEAM_LEADER = "team_leader"
    OPERATOR = "operator"

    ALL = [ADMIN, TEAM_LEADER, OPERATOR]


# ── Models ──────────────────────────────────────────────────────────────────


class Profile(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    The id doubles as the identity id issued at sign-up; profiles are
    created once and never deleted.
    """

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'team_leader', 'operator')", name="ck_profiles_role"
        ),
    )

    email: Mapped[str] = mapped_column(
        String(256), nullable=False, unique=True, index=True
    )
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=UserRole.OPERATOR,
        server_default=UserRole.OPERATOR,
        index=True,
    )
    hashed_password: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )

    def __repr__(self) -> str:
        return f"<Profile email={self.email!r} role={self.role!r}>"
