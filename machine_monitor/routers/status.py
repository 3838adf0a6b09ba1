"""
Status catalog and history feed.

  GET    /status-types                 → active types (admin may ask for inactive too)
  POST   /status-types                 → create, appended to the end of the display order (admin)
  PATCH  /status-types/{id}            → rename / recolour / (de)activate / reorder (admin)
  DELETE /status-types/{id}            → delete a non-default type (admin)
  GET    /history                      → scoped history across machines, newest first
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from machine_monitor.database import commit_or_raise, flush_or_raise, get_db
from machine_monitor.errors import NotFound
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.routers.auth import get_actor
from machine_monitor.schemas.status import (
    StatusHistoryResponse,
    StatusTypeCreate,
    StatusTypeResponse,
    StatusTypeUpdate,
)
from machine_monitor.services.access import guard, visibility
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.audit import logger as audit

router = APIRouter(tags=["status"])


def _get_status_type(status_type_id: uuid.UUID, db: Session) -> StatusType:
    status_type = db.get(StatusType, status_type_id)
    if status_type is None:
        raise NotFound("Status type", status_type_id)
    return status_type


# ── Catalog ───────────────────────────────────────────────────────────────────


@router.get("/status-types", response_model=list[StatusTypeResponse])
def list_status_types(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[StatusType]:
    stmt = visibility.status_types_query(actor, include_inactive=include_inactive)
    return list(db.scalars(stmt).all())


@router.post(
    "/status-types", response_model=StatusTypeResponse, status_code=status.HTTP_201_CREATED
)
def create_status_type(
    payload: StatusTypeCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> StatusType:
    guard.check_status_type_write(actor)
    last_position = db.scalar(select(func.max(StatusType.display_order))) or 0
    status_type = StatusType(
        name=payload.name,
        color=payload.color,
        is_default=False,
        is_active=True,
        display_order=last_position + 1,
        created_by=actor.profile_id,
    )
    db.add(status_type)
    conflict = f"Status type '{status_type.name}' already exists"
    flush_or_raise(db, conflict)
    audit.log_status_type_changed(db, status_type, "status_type.created", actor)
    commit_or_raise(db, conflict)
    return status_type


@router.patch("/status-types/{status_type_id}", response_model=StatusTypeResponse)
def update_status_type(
    status_type_id: uuid.UUID,
    payload: StatusTypeUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> StatusType:
    """
    Renaming does not touch existing history or machines: they keep the
    string they were written with.
    """
    guard.check_status_type_write(actor)
    status_type = _get_status_type(status_type_id, db)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(status_type, field, value)
    conflict = f"Status type '{status_type.name}' already exists"
    flush_or_raise(db, conflict)
    audit.log_status_type_changed(db, status_type, "status_type.updated", actor)
    commit_or_raise(db, conflict)
    return status_type


@router.delete("/status-types/{status_type_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_status_type(
    status_type_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Response:
    status_type = _get_status_type(status_type_id, db)
    guard.check_status_type_delete(actor, status_type)
    audit.log_status_type_changed(db, status_type, "status_type.deleted", actor)
    db.delete(status_type)
    commit_or_raise(db)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── History feed ──────────────────────────────────────────────────────────────


@router.get("/history", response_model=list[StatusHistoryResponse])
def list_history(
    machine_id: Optional[uuid.UUID] = None,
    department_id: Optional[uuid.UUID] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[StatusHistory]:
    stmt = visibility.history_query(
        actor.scope, machine_id=machine_id, department_id=department_id, limit=limit
    )
    return list(db.scalars(stmt).all())
