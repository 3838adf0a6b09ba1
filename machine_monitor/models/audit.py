"""
AuditEvent — the immutable log of administrative changes.

CRITICAL DESIGN RULE:
  This table is append-only. No UPDATE or DELETE statements should ever
  be issued against it. Status changes are not logged here: status_history
  is their audit trail.

  The DB-level server_default on created_at (not application code) ensures
  the timestamp is authoritative and cannot be spoofed.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from machine_monitor.models.base import Base, UUIDPrimaryKeyMixin


class AuditEvent(Base, UUIDPrimaryKeyMixin):
    """
    entity_type + entity_id: the thing that changed
    event_type: what happened (past-tense verb, e.g. "department.created")
    actor_*: who caused it
    payload: JSON snapshot of the relevant state at the time of the event.
    """

    __tablename__ = "audit_events"

    # ── What changed ─────────────────────────────────────────────────────────
    entity_type: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment="department | machine | status_type | profile | ...",
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
        comment=(
            "Past-tense dot-namespaced: department.created, machine.deleted, "
            "department_leader.assigned, profile.role_changed, ..."
        ),
    )

    # ── Who caused it ────────────────────────────────────────────────────────
    actor_role: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, comment="Role at the time; NULL for system events"
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="Profile.id if human-triggered; NULL for system events",
    )

    # ── State snapshot ────────────────────────────────────────────────────────
    payload: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=dict,
    )

    # ── Timestamp (server-authoritative — never set by application code) ──────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<AuditEvent event={self.event_type!r} "
            f"entity={self.entity_type}:{self.entity_id}>"
        )
