"""
Auth router — login, sign-up and the per-request Actor.

Minimal JWT bearer implementation. A missing token is not an error: the
caller becomes the anonymous actor (universal, read-only scope). A token
that is present but invalid or expired is a 401.

Every router takes `actor: Actor = Depends(get_actor)`. get_actor resolves
the scope once and binds the actor to the request's session, so every flush
from then on is checked by services.access.policy.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_monitor.database import bind_actor, commit_or_raise, get_db
from machine_monitor.errors import ConstraintViolation
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.schemas.auth import MeResponse, ScopeResponse, SignupRequest, TokenResponse
from machine_monitor.services.access.scope import (
    Actor,
    DepartmentScoped,
    MachineScoped,
    NoScope,
    Universal,
    anonymous_actor,
    resolve_actor,
)
from machine_monitor.settings import settings

router = APIRouter(prefix="/auth", tags=["auth"])

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


# ── Helpers ───────────────────────────────────────────────────────────────────


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def create_access_token(data: dict) -> str:
    payload = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.access_token_expire_minutes
    )
    payload["exp"] = expire
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def token_for(profile: Profile) -> TokenResponse:
    token_data = {
        "sub": profile.email,
        "profile_id": str(profile.id),
        "role": profile.role,
    }
    return TokenResponse(
        access_token=create_access_token(token_data),
        token_type="bearer",
        role=profile.role,
        profile_id=profile.id,
    )


def get_current_profile(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> Optional[Profile]:
    """None for anonymous callers; 401 for a bad token."""
    if token is None:
        return None

    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
        profile_id = uuid.UUID(payload.get("profile_id") or "")
    except (JWTError, ValueError):
        raise credentials_exc

    profile = db.get(Profile, profile_id)
    if profile is None or not profile.is_active:
        raise credentials_exc
    return profile


def get_actor(
    profile: Optional[Profile] = Depends(get_current_profile),
    db: Session = Depends(get_db),
) -> Actor:
    actor = resolve_actor(db, profile) if profile is not None else anonymous_actor()
    bind_actor(db, actor)
    return actor


def scope_response(actor: Actor) -> ScopeResponse:
    scope = actor.scope
    if isinstance(scope, Universal):
        return ScopeResponse(kind="universal", read_only=scope.read_only)
    if isinstance(scope, DepartmentScoped):
        return ScopeResponse(
            kind="department",
            department_ids=sorted(scope.department_ids, key=str),
            machine_ids=sorted(actor.assigned_machine_ids, key=str),
        )
    if isinstance(scope, MachineScoped):
        return ScopeResponse(kind="machine", machine_ids=sorted(scope.machine_ids, key=str))
    return ScopeResponse(kind="none")


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.post("/token", response_model=TokenResponse)
def login(
    form: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Exchange email + password for a JWT access token."""
    profile = db.scalar(select(Profile).where(Profile.email == form.username.lower()))
    if (
        profile is None
        or not profile.hashed_password
        or not verify_password(form.password, profile.hashed_password)
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive"
        )
    return token_for(profile)


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """
    Create the caller's profile. Self-service sign-up always yields an
    operator with no assignments; an admin promotes or assigns later.
    """
    email = payload.email.lower()
    if db.scalar(select(Profile.id).where(Profile.email == email)) is not None:
        raise ConstraintViolation(f"A profile for {email} already exists")

    profile = Profile(
        id=uuid.uuid4(),
        email=email,
        full_name=payload.full_name,
        role=UserRole.OPERATOR,
        hashed_password=hash_password(payload.password),
    )
    # The new identity inserts its own row.
    bind_actor(db, Actor(profile_id=profile.id, role=UserRole.OPERATOR, scope=NoScope()))
    db.add(profile)
    commit_or_raise(db, f"A profile for {email} already exists")
    return token_for(profile)


@router.get("/me", response_model=MeResponse)
def me(
    profile: Optional[Profile] = Depends(get_current_profile),
    actor: Actor = Depends(get_actor),
) -> MeResponse:
    """Current identity with its resolved scope."""
    if profile is None:
        return MeResponse(scope=scope_response(actor))
    return MeResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        role=profile.role,
        scope=scope_response(actor),
    )
