"""
Visibility filter — scope-aware SELECT builders.

Every list endpoint builds its statement here. Each builder starts from the
unfiltered query and narrows it by the caller's Scope variant; an empty id
set becomes a `false()` predicate, so it can never widen into "match all".

Default orderings:
  machines        → machine_code
  status history  → changed_at DESC
  departments     → name
  status types    → display_order
  profiles        → full_name
"""

import uuid
from typing import Optional

from sqlalchemy import ColumnElement, Select, false, func, or_, select, true

from machine_monitor.models.department import Department
from machine_monitor.models.machine import Machine
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.services.access.scope import (
    Actor,
    DepartmentScoped,
    MachineScoped,
    Scope,
    Universal,
)


# ── Predicates ────────────────────────────────────────────────────────────────


def machine_scope_clause(scope: Scope, machine_id_col, department_id_col) -> ColumnElement[bool]:
    """
    SQL predicate selecting the machines visible under `scope`.

    Takes the columns explicitly so the same rule filters machines directly
    and history rows joined to their machine.
    """
    if isinstance(scope, Universal):
        return true()
    if isinstance(scope, DepartmentScoped) and scope.department_ids:
        return department_id_col.in_(scope.department_ids)
    if isinstance(scope, MachineScoped) and scope.machine_ids:
        return machine_id_col.in_(scope.machine_ids)
    return false()


def machine_in_scope(
    scope: Scope, machine_id: Optional[uuid.UUID], department_id: Optional[uuid.UUID]
) -> bool:
    """In-memory twin of machine_scope_clause, for rows already loaded."""
    if isinstance(scope, Universal):
        return True
    if isinstance(scope, DepartmentScoped):
        return department_id is not None and department_id in scope.department_ids
    if isinstance(scope, MachineScoped):
        return machine_id is not None and machine_id in scope.machine_ids
    return False


def department_in_scope(scope: Scope, department_id: Optional[uuid.UUID]) -> bool:
    """True when `scope` covers the whole department (admin or its leader)."""
    if isinstance(scope, Universal):
        return True
    if isinstance(scope, DepartmentScoped):
        return department_id is not None and department_id in scope.department_ids
    return False


# ── Machines ──────────────────────────────────────────────────────────────────


def machines_query(
    scope: Scope,
    status: Optional[str] = None,
    department_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
) -> Select:
    stmt = select(Machine).where(
        machine_scope_clause(scope, Machine.id, Machine.department_id)
    )
    if status:
        stmt = stmt.where(Machine.current_status == status)
    if department_id is not None:
        stmt = stmt.where(Machine.department_id == department_id)
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Machine.machine_code).like(pattern),
                func.lower(Machine.machine_name).like(pattern),
            )
        )
    return stmt.order_by(Machine.machine_code)


def machine_status_counts_query(scope: Scope) -> Select:
    """(current_status, count) pairs over the machines visible under `scope`."""
    return (
        select(Machine.current_status, func.count(Machine.id))
        .where(machine_scope_clause(scope, Machine.id, Machine.department_id))
        .group_by(Machine.current_status)
    )


# ── Status history ────────────────────────────────────────────────────────────


def history_query(
    scope: Scope,
    machine_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = None,
) -> Select:
    """
    Operator scope keeps records of assigned machines; team_leader scope keeps
    records whose machine currently sits in a led department. Admin and
    anonymous scopes are unfiltered.
    """
    stmt = select(StatusHistory)
    if not isinstance(scope, Universal) or department_id is not None:
        stmt = stmt.join(Machine, Machine.id == StatusHistory.machine_id)
    if not isinstance(scope, Universal):
        stmt = stmt.where(
            machine_scope_clause(scope, StatusHistory.machine_id, Machine.department_id)
        )
    if machine_id is not None:
        stmt = stmt.where(StatusHistory.machine_id == machine_id)
    if department_id is not None:
        stmt = stmt.where(Machine.department_id == department_id)
    stmt = stmt.order_by(StatusHistory.changed_at.desc())
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


# ── Departments ───────────────────────────────────────────────────────────────


def departments_query() -> Select:
    """Department names are public to every caller."""
    return select(Department).order_by(Department.name)


def assignable_departments_query(actor: Actor) -> Select:
    """Departments `actor` may place a new machine in."""
    stmt = select(Department)
    if actor.is_admin:
        return stmt.order_by(Department.name)
    if isinstance(actor.scope, DepartmentScoped) and actor.scope.department_ids:
        return stmt.where(Department.id.in_(actor.scope.department_ids)).order_by(
            Department.name
        )
    return stmt.where(false())


# ── Status types ──────────────────────────────────────────────────────────────


def status_types_query(actor: Actor, include_inactive: bool = False) -> Select:
    stmt = select(StatusType)
    if not (include_inactive and actor.is_admin):
        stmt = stmt.where(StatusType.is_active.is_(True))
    return stmt.order_by(StatusType.display_order, StatusType.name)


# ── Profiles (user management view) ───────────────────────────────────────────


def profiles_query(actor: Actor) -> Select:
    """
    admin        → every profile
    team_leader  → operator-role profiles only
    operator     → their own profile
    anonymous    → nothing
    """
    stmt = select(Profile)
    if actor.is_anonymous:
        stmt = stmt.where(false())
    elif actor.role == UserRole.ADMIN:
        pass
    elif actor.role == UserRole.TEAM_LEADER:
        stmt = stmt.where(Profile.role == UserRole.OPERATOR)
    else:
        stmt = stmt.where(Profile.id == actor.profile_id)
    return stmt.order_by(Profile.full_name)

