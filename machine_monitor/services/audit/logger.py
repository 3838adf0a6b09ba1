"""
Audit logger for administrative changes: departments, leader and operator
assignments, machines, the status catalog and profile roles.

Rows are written in the caller's transaction as the acting profile, so the
audit_events policy (actor_id must be the caller) applies to them as well.
created_at is server-set. Payloads are reduced to JSON-safe dicts.

log_event never raises: a failed audit write is logged and the mutation
carries on. Status changes are not logged here; status_history is their
audit trail.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from machine_monitor.models.audit import AuditEvent
from machine_monitor.services.access.scope import Actor

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    event_type: str,
    payload: dict[str, Any],
    actor: Optional[Actor] = None,
    flush: bool = True,
) -> None:
    """
    Write an immutable audit event to the database.

    Args:
        db:          SQLAlchemy session (caller manages transaction)
        entity_type: The type of entity that changed (e.g. "department", "machine")
        entity_id:   UUID of the entity
        event_type:  Past-tense event name (e.g. "department.created")
        payload:     Dict snapshot of relevant state — JSON-serializable
        actor:       The acting identity; None for system events
        flush:       If True, flush to DB immediately (within the caller's transaction)

    Does not raise — exceptions are caught and logged as warnings.
    """
    try:
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            event_type=event_type,
            actor_role=actor.role if actor else None,
            actor_id=actor.profile_id if actor else None,
            payload=_safe_payload(payload),
        )
        db.add(event)
        if flush:
            db.flush()  # Assigns ID without committing the outer transaction
    except Exception as exc:
        logger.warning(
            "Failed to write audit event %r for %s:%s — %s",
            event_type,
            entity_type,
            entity_id,
            exc,
        )


def _safe_payload(payload: dict) -> dict:
    """
    Ensure payload is JSON-serializable.
    Converts UUIDs and datetimes to strings.
    """

    def default(obj: Any) -> Any:
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    # Round-trip through JSON to strip any non-serializable types
    return json.loads(json.dumps(payload, default=default))


# ── Convenience wrappers for common events ────────────────────────────────────


def log_department_created(db: Session, department, actor: Actor) -> None:
    log_event(
        db,
        "department",
        department.id,
        "department.created",
        payload={"name": department.name, "description": department.description},
        actor=actor,
    )


def log_department_deleted(
    db: Session, department, detached_machine_ids: list[uuid.UUID], actor: Actor
) -> None:
    log_event(
        db,
        "department",
        department.id,
        "department.deleted",
        payload={
            "name": department.name,
            "detached_machine_ids": detached_machine_ids,
        },
        actor=actor,
    )


def log_leader_changed(
    db: Session, department_id: uuid.UUID, user_id: uuid.UUID, assigned: bool, actor: Actor
) -> None:
    log_event(
        db,
        "department",
        department_id,
        "department_leader.assigned" if assigned else "department_leader.unassigned",
        payload={"user_id": user_id},
        actor=actor,
    )


def log_operator_changed(
    db: Session, machine_id: uuid.UUID, user_id: uuid.UUID, assigned: bool, actor: Actor
) -> None:
    log_event(
        db,
        "machine",
        machine_id,
        "machine_operator.assigned" if assigned else "machine_operator.unassigned",
        payload={"user_id": user_id},
        actor=actor,
    )


def log_machine_created(db: Session, machine, actor: Actor) -> None:
    log_event(
        db,
        "machine",
        machine.id,
        "machine.created",
        payload={
            "machine_code": machine.machine_code,
            "department_id": machine.department_id,
            "current_status": machine.current_status,
        },
        actor=actor,
    )


def log_machine_deleted(db: Session, machine, actor: Actor) -> None:
    log_event(
        db,
        "machine",
        machine.id,
        "machine.deleted",
        payload={"machine_code": machine.machine_code, "department_id": machine.department_id},
        actor=actor,
    )


def log_status_type_changed(db: Session, status_type, event_type: str, actor: Actor) -> None:
    log_event(
        db,
        "status_type",
        status_type.id,
        event_type,
        payload={
            "name": status_type.name,
            "color": status_type.color,
            "is_active": status_type.is_active,
            "display_order": status_type.display_order,
        },
        actor=actor,
    )


def log_role_changed(
    db: Session, profile, from_role: str, to_role: str, actor: Actor
) -> None:
    log_event(
        db,
        "profile",
        profile.id,
        "profile.role_changed",
        payload={"email": profile.email, "from_role": from_role, "to_role": to_role},
        actor=actor,
    )
