"""
Machine and the operator → machine assignment that grants operator scope.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machine_monitor.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from machine_monitor.models.department import Department
    from machine_monitor.models.status import StatusHistory


class Machine(Base, UUIDPrimaryKeyMixin):
    """
    current_status is a free-form string mirroring the newest StatusHistory
    row. It is only ever written together with that row (see
    services.status.recorder); `version` is the optimistic lock that makes
    two concurrent writers collide instead of interleave.
    """

    __tablename__ = "machines"

    machine_code: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    machine_name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    current_status: Mapped[str] = mapped_column(
        String(64), nullable=False, default="Idle", server_default="Idle", index=True
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )
    last_updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    department: Mapped[Optional["Department"]] = relationship(
        "Department", back_populates="machines"
    )
    operators: Mapped[list["MachineOperator"]] = relationship(
        "MachineOperator",
        back_populates="machine",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    history: Mapped[list["StatusHistory"]] = relationship(
        "StatusHistory",
        back_populates="machine",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StatusHistory.changed_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<Machine code={self.machine_code!r} status={self.current_status!r}>"


class MachineOperator(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "machine_operators"
    __table_args__ = (
        UniqueConstraint("machine_id", "user_id", name="uq_machine_operators_pair"),
    )

    machine_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("machines.id", ondelete="CASCADE"),
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

    machine: Mapped["Machine"] = relationship("Machine", back_populates="operators")

    def __repr__(self) -> str:
        return f"<MachineOperator machine={self.machine_id} user={self.user_id}>"
