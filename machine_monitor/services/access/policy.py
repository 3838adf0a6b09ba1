"""
Row-level policies enforced at flush time.

This is the authoritative layer: whatever a router or script does, a session
with a bound actor (see database.bind_actor) cannot flush a row the actor is
not allowed to write. Sessions without an actor are system sessions (migrations,
seeding, bootstrap) and are not checked.

Each policy is a predicate over (actor, session, row). For UPDATE it sees the
row as loaded (USING) through attribute history and the row as it will be
written (WITH CHECK) through the current attribute values, the same split
the PostgreSQL policies in alembic/versions/0002 use.

The guard module answers the same questions earlier, with friendlier
messages; tests assert both layers reject the same operations.
"""

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from machine_monitor.errors import AuthorizationDenied
from machine_monitor.models.audit import AuditEvent
from machine_monitor.models.department import Department, DepartmentLeader
from machine_monitor.models.machine import Machine, MachineOperator
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.access.visibility import department_in_scope, machine_in_scope

logger = logging.getLogger(__name__)

ACTOR_KEY = "actor"

INSERT = "insert"
UPDATE = "update"
DELETE = "delete"

Policy = Callable[[Actor, Session, object], bool]


def bind_actor(session: Session, actor: Actor) -> Session:
    """Attach the acting identity; every later flush is checked against it."""
    session.info[ACTOR_KEY] = actor
    return session


def bound_actor(session: Session) -> Optional[Actor]:
    return session.info.get(ACTOR_KEY)


# ── Row helpers ───────────────────────────────────────────────────────────────


def _loaded_value(obj, attr: str):
    """Value of `attr` as it was loaded from the database (pre-change)."""
    hist = get_history(obj, attr)
    if hist.deleted:
        return hist.deleted[0]
    return getattr(obj, attr)


def _changed(obj, attr: str) -> bool:
    return get_history(obj, attr).has_changes()


def _machine_for(session: Session, machine_id: uuid.UUID) -> Optional[Machine]:
    for pending in session.new:
        if isinstance(pending, Machine) and pending.id == machine_id:
            return pending
    return session.get(Machine, machine_id)


def _never(actor: Actor, session: Session, row) -> bool:
    return False


def _admin(actor: Actor, session: Session, row) -> bool:
    return actor.is_admin


# ── Profiles ──────────────────────────────────────────────────────────────────


def _profile_insert(actor: Actor, session: Session, row: Profile) -> bool:
    if actor.is_admin:
        return True
    if row.role != UserRole.OPERATOR:
        return False
    # Sign-up creates the caller's own profile; leaders onboard operators.
    return row.id == actor.profile_id or actor.role == UserRole.TEAM_LEADER


def _profile_update(actor: Actor, session: Session, row: Profile) -> bool:
    if actor.is_admin:
        return True
    return row.id == actor.profile_id and not _changed(row, "role")


# ── Machines ──────────────────────────────────────────────────────────────────


def _machine_insert(actor: Actor, session: Session, row: Machine) -> bool:
    if actor.is_admin:
        return True
    return actor.role == UserRole.TEAM_LEADER and department_in_scope(
        actor.scope, row.department_id
    )


def _machine_update(actor: Actor, session: Session, row: Machine) -> bool:
    using = machine_in_scope(actor.scope, row.id, _loaded_value(row, "department_id"))
    check = machine_in_scope(actor.scope, row.id, row.department_id)
    if not (using and check):
        return False
    if _changed(row, "current_status"):
        # current_status only moves together with its history row.
        return any(
            isinstance(pending, StatusHistory)
            and pending.machine_id == row.id
            and pending.status == row.current_status
            for pending in session.new
        )
    return True


def _operator_assignment(actor: Actor, session: Session, row: MachineOperator) -> bool:
    if actor.is_admin:
        return True
    machine = _machine_for(session, row.machine_id)
    return machine is not None and department_in_scope(actor.scope, machine.department_id)


# ── Status ────────────────────────────────────────────────────────────────────


def _status_type_delete(actor: Actor, session: Session, row: StatusType) -> bool:
    return actor.is_admin and not _loaded_value(row, "is_default")


def _history_insert(actor: Actor, session: Session, row: StatusHistory) -> bool:
    if row.changed_by != actor.profile_id:
        return False
    machine = _machine_for(session, row.machine_id)
    return machine is not None and machine_in_scope(
        actor.scope, machine.id, machine.department_id
    )


def _history_delete(actor: Actor, session: Session, row: StatusHistory) -> bool:
    # Only as part of deleting the machine itself.
    return actor.is_admin and any(
        isinstance(gone, Machine) and gone.id == row.machine_id for gone in session.deleted
    )


def _audit_insert(actor: Actor, session: Session, row: AuditEvent) -> bool:
    return row.actor_id == actor.profile_id


POLICIES: dict[tuple[type, str], Policy] = {
    (Profile, INSERT): _profile_insert,
    (Profile, UPDATE): _profile_update,
    (Profile, DELETE): _never,
    (Department, INSERT): _admin,
    (Department, UPDATE): _admin,
    (Department, DELETE): _admin,
    (DepartmentLeader, INSERT): _admin,
    (DepartmentLeader, UPDATE): _admin,
    (DepartmentLeader, DELETE): _admin,
    (Machine, INSERT): _machine_insert,
    (Machine, UPDATE): _machine_update,
    (Machine, DELETE): _admin,
    (MachineOperator, INSERT): _operator_assignment,
    (MachineOperator, UPDATE): _operator_assignment,
    (MachineOperator, DELETE): _operator_assignment,
    (StatusType, INSERT): _admin,
    (StatusType, UPDATE): _admin,
    (StatusType, DELETE): _status_type_delete,
    (StatusHistory, INSERT): _history_insert,
    (StatusHistory, UPDATE): _never,
    (StatusHistory, DELETE): _history_delete,
    (AuditEvent, INSERT): _audit_insert,
    (AuditEvent, UPDATE): _never,
    (AuditEvent, DELETE): _never,
}


def check_row(actor: Actor, session: Session, row, operation: str) -> None:
    """Raise AuthorizationDenied unless `actor` may apply `operation` to `row`."""
    policy = POLICIES.get((type(row), operation), _never)
    allowed = not actor.is_anonymous and policy(actor, session, row)
    if not allowed:
        table = getattr(row, "__tablename__", type(row).__name__)
        logger.info(
            "Row policy rejected %s on %s for %s", operation, table, actor.describe()
        )
        raise AuthorizationDenied(f"Row policy on '{table}' rejected {operation}")


@event.listens_for(Session, "before_flush")
def enforce_row_policies(session: Session, flush_context, instances) -> None:
    actor = bound_actor(session)
    if actor is None:
        return
    with session.no_autoflush:
        for row in list(session.new):
            check_row(actor, session, row, INSERT)
        for row in list(session.dirty):
            if session.is_modified(row, include_collections=False):
                check_row(actor, session, row, UPDATE)
        for row in list(session.deleted):
            check_row(actor, session, row, DELETE)
