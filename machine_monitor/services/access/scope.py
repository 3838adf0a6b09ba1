"""
Role & scope resolution.

The resolver turns a Profile into an Actor exactly once per request. The
Actor carries a Scope variant; visibility filters, mutation guards and row
policies are pure functions over that variant, so no call site re-derives
"if role == admin ... elif role == team_leader ..." on its own.

  admin        → Universal(read_only=False)
  team_leader  → DepartmentScoped(led departments)
  operator     → MachineScoped(directly assigned machines)
  anonymous    → Universal(read_only=True)

An empty assignment set resolves to NoScope, never to Universal.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from machine_monitor.models.department import DepartmentLeader
from machine_monitor.models.machine import Machine, MachineOperator
from machine_monitor.models.profile import Profile, UserRole

logger = logging.getLogger(__name__)


# ── Scope variants ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Universal:
    """Every department and machine. read_only is set for anonymous viewers."""

    read_only: bool = False


@dataclass(frozen=True)
class DepartmentScoped:
    department_ids: frozenset[uuid.UUID]


@dataclass(frozen=True)
class MachineScoped:
    machine_ids: frozenset[uuid.UUID]


@dataclass(frozen=True)
class NoScope:
    pass


Scope = Union[Universal, DepartmentScoped, MachineScoped, NoScope]


# ── Actor ─────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    profile_id: Optional[uuid.UUID]
    role: Optional[str]
    scope: Scope
    led_department_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    # Direct operator assignments plus every machine inside a led department.
    assigned_machine_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @property
    def is_anonymous(self) -> bool:
        return self.profile_id is None

    @property
    def is_admin(self) -> bool:
        return isinstance(self.scope, Universal) and not self.scope.read_only

    def describe(self) -> str:
        return f"{self.role or 'anonymous'}:{self.profile_id or '-'}"


def anonymous_actor() -> Actor:
    return Actor(profile_id=None, role=None, scope=Universal(read_only=True))


def scope_for(
    role: str,
    led_department_ids: frozenset[uuid.UUID],
    direct_machine_ids: frozenset[uuid.UUID],
) -> Scope:
    """Pure mapping from role + assignment sets to a Scope variant."""
    if role == UserRole.ADMIN:
        return Universal()
    if role == UserRole.TEAM_LEADER:
        return DepartmentScoped(led_department_ids) if led_department_ids else NoScope()
    if role == UserRole.OPERATOR:
        return MachineScoped(direct_machine_ids) if direct_machine_ids else NoScope()
    return NoScope()


def resolve_actor(db: Session, profile: Profile) -> Actor:
    """Read both assignment relations for `profile` and build its Actor."""
    led = frozenset(
        db.scalars(
            select(DepartmentLeader.department_id).where(
                DepartmentLeader.user_id == profile.id
            )
        ).all()
    )
    direct = frozenset(
        db.scalars(
            select(MachineOperator.machine_id).where(MachineOperator.user_id == profile.id)
        ).all()
    )
    in_led_departments: frozenset[uuid.UUID] = frozenset()
    if led:
        in_led_departments = frozenset(
            db.scalars(select(Machine.id).where(Machine.department_id.in_(led))).all()
        )

    scope = scope_for(profile.role, led, direct)
    actor = Actor(
        profile_id=profile.id,
        role=profile.role,
        scope=scope,
        led_department_ids=led,
        assigned_machine_ids=direct | in_led_departments,
    )
    logger.debug("Resolved %s → %s", actor.describe(), type(scope).__name__)
    return actor
