"""
Department API routes.

  GET    /departments                              → all departments (public)
  GET    /departments/assignable                   → departments the caller may add machines to
  POST   /departments                              → create (admin)
  PATCH  /departments/{id}                         → rename / describe (admin)
  DELETE /departments/{id}                         → delete; machines become unassigned (admin)
  GET    /departments/{id}/leaders                 → leader assignments
  POST   /departments/{id}/leaders                 → assign a team_leader (admin)
  DELETE /departments/{id}/leaders/{user_id}       → unassign (admin)
"""

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_monitor.database import commit_or_raise, flush_or_raise, get_db
from machine_monitor.errors import NotFound
from machine_monitor.models.department import Department, DepartmentLeader
from machine_monitor.models.profile import Profile
from machine_monitor.routers.auth import get_actor
from machine_monitor.schemas.department import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    LeaderAssignRequest,
    LeaderResponse,
)
from machine_monitor.services.access import guard, visibility
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.audit import logger as audit

router = APIRouter(prefix="/departments", tags=["departments"])


def _get_department(department_id: uuid.UUID, db: Session) -> Department:
    department = db.get(Department, department_id)
    if department is None:
        raise NotFound("Department", department_id)
    return department


# ── Departments ───────────────────────────────────────────────────────────────


@router.get("", response_model=list[DepartmentResponse])
def list_departments(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[Department]:
    return list(db.scalars(visibility.departments_query()).all())


@router.get("/assignable", response_model=list[DepartmentResponse])
def list_assignable_departments(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[Department]:
    """Populates the department picker on the machine form."""
    return list(db.scalars(visibility.assignable_departments_query(actor)).all())


@router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
def create_department(
    payload: DepartmentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Department:
    guard.check_department_write(actor)
    department = Department(
        name=payload.name,
        description=payload.description,
        created_by=actor.profile_id,
    )
    db.add(department)
    conflict = f"Department '{department.name}' already exists"
    flush_or_raise(db, conflict)
    audit.log_department_created(db, department, actor)
    commit_or_raise(db, conflict)
    return department


@router.patch("/{department_id}", response_model=DepartmentResponse)
def update_department(
    department_id: uuid.UUID,
    payload: DepartmentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Department:
    guard.check_department_write(actor)
    department = _get_department(department_id, db)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(department, field, value)
    conflict = f"Department '{department.name}' already exists"
    flush_or_raise(db, conflict)
    audit.log_event(
        db, "department", department.id, "department.updated", payload=changes, actor=actor
    )
    commit_or_raise(db, conflict)
    return department


@router.delete("/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_department(
    department_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    """
    Machines in the department survive with department_id = NULL; leader
    assignments are removed with it.
    """
    guard.check_department_write(actor)
    department = _get_department(department_id, db)
    detached = [m.id for m in department.machines]
    audit.log_department_deleted(db, department, detached, actor)
    db.delete(department)
    commit_or_raise(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Leader assignments ────────────────────────────────────────────────────────


@router.get("/{department_id}/leaders", response_model=list[LeaderResponse])
def list_leaders(
    department_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[DepartmentLeader]:
    _get_department(department_id, db)
    stmt = (
        select(DepartmentLeader)
        .where(DepartmentLeader.department_id == department_id)
        .order_by(DepartmentLeader.assigned_at)
    )
    return list(db.scalars(stmt).all())


@router.post(
    "/{department_id}/leaders",
    response_model=LeaderResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_leader(
    department_id: uuid.UUID,
    payload: LeaderAssignRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> DepartmentLeader:
    guard.check_leader_assignment(actor)
    department = _get_department(department_id, db)
    target = db.get(Profile, payload.user_id)
    if target is None:
        raise NotFound("Profile", payload.user_id)
    guard.check_leader_assignment(actor, target)

    assignment = DepartmentLeader(
        department_id=department.id,
        user_id=target.id,
        assigned_by=actor.profile_id,
    )
    db.add(assignment)
    conflict = f"{target.email} already leads {department.name}"
    flush_or_raise(db, conflict)
    audit.log_leader_changed(db, department.id, target.id, assigned=True, actor=actor)
    commit_or_raise(db, conflict)
    return assignment


@router.delete(
    "/{department_id}/leaders/{user_id}", status_code=status.HTTP_204_NO_CONTENT
)
def unassign_leader(
    department_id: uuid.UUID,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    guard.check_leader_assignment(actor)
    assignment = db.scalar(
        select(DepartmentLeader).where(
            DepartmentLeader.department_id == department_id,
            DepartmentLeader.user_id == user_id,
        )
    )
    if assignment is None:
        raise NotFound("Leader assignment")
    audit.log_leader_changed(db, department_id, user_id, assigned=False, actor=actor)
    db.delete(assignment)
    commit_or_raise(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
