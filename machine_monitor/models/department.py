"""
Department and the leader → department assignment that grants team_leader scope.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machine_monitor.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from machine_monitor.models.machine import Machine


class Department(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Machines survive their department: the ORM nulls department_id on
    # delete (and the FK does the same for rows not loaded in the session).
    machines: Mapped[list["Machine"]] = relationship(
        "Machine", back_populates="department"
    )
    leaders: Mapped[list["DepartmentLeader"]] = relationship(
        "DepartmentLeader",
        back_populates="department",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Department name={self.name!r}>"


class DepartmentLeader(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "department_leaders"
    __table_args__ = (
        UniqueConstraint("department_id", "user_id", name="uq_department_leaders_pair"),
    )

    department_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    department: Mapped["Department"] = relationship(
        "Department", back_populates="leaders"
    )

    def __repr__(self) -> str:
        return f"<DepartmentLeader department={self.department_id} user={self.user_id}>"
