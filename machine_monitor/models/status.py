"""
StatusType catalog and the StatusHistory audit trail.

CRITICAL DESIGN RULE:
  status_history is append-only. No UPDATE or DELETE is ever issued against
  it except the FK cascade when its machine is deleted. The row policy layer
  (services.access.policy) rejects anything else, for every role.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid, false, func, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from machine_monitor.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from machine_monitor.models.machine import Machine


class StatusColor:
    GREEN = "green"
    BLUE = "blue"
    YELLOW = "yellow"
    RED = "red"
    PURPLE = "purple"
    ORANGE = "orange"
    PINK = "pink"
    GRAY = "gray"

    ALL = [GREEN, BLUE, YELLOW, RED, PURPLE, ORANGE, PINK, GRAY]


class StatusType(Base, UUIDPrimaryKeyMixin):
    """
    Admin-managed catalog of status names. Default entries can be
    deactivated but never deleted, so history rows written with them keep
    resolving to a colour.
    """

    __tablename__ = "status_types"

    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    color: Mapped[str] = mapped_column(
        String(16), nullable=False, default=StatusColor.GRAY, server_default=StatusColor.GRAY
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true(), index=True
    )
    display_order: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<StatusType name={self.name!r} active={self.is_active}>"


class StatusHistory(Base, UUIDPrimaryKeyMixin):
    """
    One accepted status change.

    previous_status is the machine's current_status read in the same
    transaction that wrote this row; status keeps whatever string it was
    written with even if the StatusType is later renamed or deactivated.
    """

    __tablename__ = "status_history"

    machine_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    previous_status: Mapped[str] = mapped_column(
        String(64), nullable=False, default="", server_default=""
    )
    status: Mapped[str] = mapped_column(String(64), nullable=False)
    comment: Mapped[str] = mapped_column(
        Text, nullable=False, default="", server_default=""
    )
    changed_by: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id"), nullable=False
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    machine: Mapped["Machine"] = relationship("Machine", back_populates="history")

    def __repr__(self) -> str:
        return (
            f"<StatusHistory machine={self.machine_id} "
            f"{self.previous_status!r} -> {self.status!r}>"
        )
