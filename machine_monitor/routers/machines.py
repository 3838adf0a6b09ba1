"""
Machine API routes.

  GET    /machines                               → scoped list (status / department / search filters)
  GET    /machines/summary                       → per-status counts over the scoped list
  GET    /machines/{id}                          → detail (404 outside the caller's scope)
  POST   /machines                               → create (admin; team_leader in a led department)
  PATCH  /machines/{id}                          → edit code / name / description / department
  DELETE /machines/{id}                          → delete with operators and history (admin)
  GET    /machines/{id}/operators                → operator assignments
  POST   /machines/{id}/operators                → assign an operator
  DELETE /machines/{id}/operators/{user_id}      → unassign
  POST   /machines/{id}/status                   → change status (appends history)
  GET    /machines/{id}/history                  → status history, newest first

current_status is never writable through PATCH; see services.status.recorder.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_monitor.database import commit_or_raise, flush_or_raise, get_db
from machine_monitor.errors import NotFound
from machine_monitor.models.department import Department
from machine_monitor.models.machine import Machine, MachineOperator
from machine_monitor.models.profile import Profile
from machine_monitor.routers.auth import get_actor
from machine_monitor.schemas.machine import (
    MachineCreate,
    MachineResponse,
    MachineSummary,
    MachineUpdate,
    OperatorAssignRequest,
    OperatorResponse,
    StatusChangeRequest,
    StatusCount,
)
from machine_monitor.schemas.status import StatusHistoryResponse
from machine_monitor.services.access import guard, visibility
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.audit import logger as audit
from machine_monitor.services.status.recorder import record_status_change
from machine_monitor.settings import settings

router = APIRouter(prefix="/machines", tags=["machines"])


def _get_machine(machine_id: uuid.UUID, db: Session) -> Machine:
    machine = db.get(Machine, machine_id)
    if machine is None:
        raise NotFound("Machine", machine_id)
    return machine


def _get_visible_machine(machine_id: uuid.UUID, actor: Actor, db: Session) -> Machine:
    """Machines outside the caller's scope are reported as missing."""
    machine = db.scalar(visibility.machines_query(actor.scope).where(Machine.id == machine_id))
    if machine is None:
        raise NotFound("Machine", machine_id)
    return machine


def _get_profile(user_id: uuid.UUID, db: Session) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise NotFound("Profile", user_id)
    return profile


# ── Overview ──────────────────────────────────────────────────────────────────


@router.get("", response_model=list[MachineResponse])
def list_machines(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    department_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[Machine]:
    stmt = visibility.machines_query(
        actor.scope, status=status_filter, department_id=department_id, search=search
    )
    return list(db.scalars(stmt).all())


@router.get("/summary", response_model=MachineSummary)
def machine_summary(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> MachineSummary:
    rows = db.execute(visibility.machine_status_counts_query(actor.scope)).all()
    by_status = [StatusCount(status=s, count=c) for s, c in sorted(rows)]
    return MachineSummary(total=sum(c.count for c in by_status), by_status=by_status)


@router.get("/{machine_id}", response_model=MachineResponse)
def get_machine(
    machine_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Machine:
    return _get_visible_machine(machine_id, actor, db)


# ── Create / edit / delete ────────────────────────────────────────────────────


@router.post("", response_model=MachineResponse, status_code=status.HTTP_201_CREATED)
def create_machine(
    payload: MachineCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Machine:
    guard.check_machine_create(actor, payload.department_id)
    if payload.department_id is not None and db.get(Department, payload.department_id) is None:
        raise NotFound("Department", payload.department_id)

    machine = Machine(
        machine_code=payload.machine_code,
        machine_name=payload.machine_name,
        description=payload.description,
        department_id=payload.department_id,
        current_status=settings.default_machine_status,
        last_updated_by=actor.profile_id,
    )
    db.add(machine)
    conflict = f"Machine code '{machine.machine_code}' already exists"
    flush_or_raise(db, conflict)
    audit.log_machine_created(db, machine, actor)
    commit_or_raise(db, conflict)
    return machine


@router.patch("/{machine_id}", response_model=MachineResponse)
def update_machine(
    machine_id: uuid.UUID,
    payload: MachineUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Machine:
    machine = _get_machine(machine_id, db)
    changes = payload.model_dump(exclude_unset=True)
    department_changed = (
        "department_id" in changes and changes["department_id"] != machine.department_id
    )
    guard.check_machine_update(
        actor,
        machine,
        new_department_id=changes.get("department_id"),
        department_changed=department_changed,
    )
    if department_changed and changes["department_id"] is not None:
        if db.get(Department, changes["department_id"]) is None:
            raise NotFound("Department", changes["department_id"])

    for field, value in changes.items():
        if value is None and field != "department_id":
            continue
        setattr(machine, field, value.strip() if isinstance(value, str) else value)
    conflict = f"Machine code '{machine.machine_code}' already exists"
    flush_or_raise(db, conflict)
    audit.log_event(db, "machine", machine.id, "machine.updated", payload=changes, actor=actor)
    commit_or_raise(db, conflict)
    return machine


@router.delete("/{machine_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_machine(
    machine_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    """Operator assignments and status history go with the machine."""
    guard.check_machine_delete(actor)
    machine = _get_machine(machine_id, db)
    audit.log_machine_deleted(db, machine, actor)
    db.delete(machine)
    commit_or_raise(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Operator assignments ──────────────────────────────────────────────────────


@router.get("/{machine_id}/operators", response_model=list[OperatorResponse])
def list_operators(
    machine_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[MachineOperator]:
    _get_visible_machine(machine_id, actor, db)
    stmt = (
        select(MachineOperator)
        .where(MachineOperator.machine_id == machine_id)
        .order_by(MachineOperator.assigned_at)
    )
    return list(db.scalars(stmt).all())


@router.post(
    "/{machine_id}/operators",
    response_model=OperatorResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_operator(
    machine_id: uuid.UUID,
    payload: OperatorAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> MachineOperator:
    machine = _get_machine(machine_id, db)
    guard.check_operator_assignment(actor, machine)
    target = _get_profile(payload.user_id, db)
    guard.check_operator_assignment(actor, machine, target)

    assignment = MachineOperator(
        machine_id=machine.id,
        user_id=target.id,
        assigned_by=actor.profile_id,
    )
    db.add(assignment)
    conflict = f"{target.email} is already assigned to {machine.machine_code}"
    flush_or_raise(db, conflict)
    audit.log_operator_changed(db, machine.id, target.id, assigned=True, actor=actor)
    commit_or_raise(db, conflict)
    return assignment


@router.delete("/{machine_id}/operators/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def unassign_operator(
    machine_id: uuid.UUID,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    machine = _get_machine(machine_id, db)
    guard.check_operator_assignment(actor, machine)
    assignment = db.scalar(
        select(MachineOperator).where(
            MachineOperator.machine_id == machine_id,
            MachineOperator.user_id == user_id,
        )
    )
    if assignment is None:
        raise NotFound("Operator assignment")
    audit.log_operator_changed(db, machine.id, user_id, assigned=False, actor=actor)
    db.delete(assignment)
    commit_or_raise(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Status ────────────────────────────────────────────────────────────────────


@router.post(
    "/{machine_id}/status",
    response_model=StatusHistoryResponse,
    status_code=status.HTTP_201_CREATED,
)
def change_status(
    machine_id: uuid.UUID,
    payload: StatusChangeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Returns the history record written for this change."""
    return record_status_change(db, actor, machine_id, payload.status, payload.comment)


@router.get("/{machine_id}/history", response_model=list[StatusHistoryResponse])
def machine_history(
    machine_id: uuid.UUID,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    stmt = visibility.history_query(actor.scope, machine_id=machine_id, limit=limit)
    return list(db.scalars(stmt).all())
