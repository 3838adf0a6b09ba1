"""
User management routes.

  GET    /users                → scoped list (admin: all, team_leader: operators, operator: self)
  POST   /users                → create a profile (admin: any role, team_leader: operators)
  PATCH  /users/me             → update own name / password
  PATCH  /users/{id}/role      → change role (admin)

Profiles are never deleted; deactivate by role change or is_active in the DB.
"""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_monitor.database import commit_or_raise, flush_or_raise, get_db
from machine_monitor.errors import ConstraintViolation, NotFound
from machine_monitor.models.profile import Profile
from machine_monitor.routers.auth import get_actor, hash_password
from machine_monitor.schemas.user import ProfileResponse, ProfileUpdate, RoleUpdate, UserCreate
from machine_monitor.services.access import guard, visibility
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.audit import logger as audit

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[ProfileResponse])
def list_users(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> list[Profile]:
    return list(db.scalars(visibility.profiles_query(actor)).all())


@router.post("", response_model=ProfileResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Profile:
    guard.check_user_create(actor, payload.role)
    email = payload.email.lower()
    conflict = f"A profile for {email} already exists"
    if db.scalar(select(Profile.id).where(Profile.email == email)) is not None:
        raise ConstraintViolation(conflict)

    profile = Profile(
        email=email,
        full_name=payload.full_name,
        role=payload.role,
        hashed_password=hash_password(payload.password),
    )
    db.add(profile)
    flush_or_raise(db, conflict)
    audit.log_event(
        db,
        "profile",
        profile.id,
        "profile.created",
        payload={"email": profile.email, "role": profile.role},
        actor=actor,
    )
    commit_or_raise(db, conflict)
    return profile


@router.patch("/me", response_model=ProfileResponse)
def update_me(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Profile:
    guard.require_authenticated(actor, "update profiles")
    profile = db.get(Profile, actor.profile_id)
    if profile is None:
        raise NotFound("Profile", actor.profile_id)
    guard.check_profile_update(actor, profile)

    if payload.full_name is not None:
        profile.full_name = payload.full_name
    if payload.password is not None:
        profile.hashed_password = hash_password(payload.password)
    commit_or_raise(db)
    return profile


@router.patch("/{user_id}/role", response_model=ProfileResponse)
def change_role(
    user_id: uuid.UUID,
    payload: RoleUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> Profile:
    """
    Existing department/machine assignments are kept; they only grant scope
    while the profile holds the matching role.
    """
    guard.check_role_change(actor)
    profile = db.get(Profile, user_id)
    if profile is None:
        raise NotFound("Profile", user_id)

    from_role = profile.role
    if from_role != payload.role:
        profile.role = payload.role
        flush_or_raise(db)
        audit.log_role_changed(db, profile, from_role, payload.role, actor)
        commit_or_raise(db)
    return profile
