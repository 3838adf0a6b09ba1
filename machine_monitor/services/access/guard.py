"""
Mutation guard — fast-fail checks run before any write.

Every check takes the acting Actor explicitly and raises AuthorizationDenied
(or ConstraintViolation for catalog rules) without touching the session, so
a rejected request never leaves partial effects behind. The row policy layer
(services.access.policy) repeats the same rules at flush time and stays the
authority; these checks exist to fail early with a precise message.

Policy table:

  Entity                      Create                      Update                     Delete
  Department                  admin                       admin                      admin
  DepartmentLeader            admin                       —                          admin
  Machine                     admin; leader (own dept)    admin; leader/operator     admin
                                                          when in scope
  MachineOperator             admin; leader (machine's    —                          as create
                              dept is led)
  StatusType                  admin                       admin                      admin, non-default only
  StatusHistory               admin/leader/operator       never                      never
                              (machine in scope)
  Profile.role                —                           admin                      —
  Profile (other fields)      self                        self                       never
"""

import logging
import uuid
from typing import Optional

from machine_monitor.errors import AuthorizationDenied, ConstraintViolation
from machine_monitor.models.machine import Machine
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.models.status import StatusType
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.access.visibility import department_in_scope, machine_in_scope

logger = logging.getLogger(__name__)


def _deny(actor: Actor, action: str) -> AuthorizationDenied:
    logger.info("Denied %s for %s", action, actor.describe())
    return AuthorizationDenied(f"Not allowed to {action}")


def require_authenticated(actor: Actor, action: str = "modify data") -> None:
    if actor.is_anonymous:
        raise _deny(actor, action)


def require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise _deny(actor, action)


# ── Departments & leader assignments ──────────────────────────────────────────


def check_department_write(actor: Actor) -> None:
    """Create, update and delete of departments are admin-only."""
    require_admin(actor, "manage departments")


def check_leader_assignment(actor: Actor, target: Optional[Profile] = None) -> None:
    require_admin(actor, "manage department leaders")
    if target is not None and target.role != UserRole.TEAM_LEADER:
        raise ConstraintViolation(
            f"Only team_leader profiles can lead a department (got '{target.role}')"
        )


# ── Machines ──────────────────────────────────────────────────────────────────


def check_machine_create(actor: Actor, department_id: Optional[uuid.UUID]) -> None:
    """Admin may create anywhere (or unassigned); a leader only inside a led department."""
    require_authenticated(actor, "create machines")
    if actor.is_admin:
        return
    if actor.role == UserRole.TEAM_LEADER and department_in_scope(actor.scope, department_id):
        return
    raise _deny(actor, "create a machine in this department")


def check_machine_update(
    actor: Actor,
    machine: Machine,
    new_department_id: Optional[uuid.UUID] = None,
    department_changed: bool = False,
) -> None:
    """
    The machine must be in scope before the update, and still be in scope
    after it (a leader cannot move a machine out of their departments).
    """
    require_authenticated(actor, "update machines")
    if not machine_in_scope(actor.scope, machine.id, machine.department_id):
        raise _deny(actor, f"update machine {machine.machine_code}")
    if department_changed and not machine_in_scope(actor.scope, machine.id, new_department_id):
        raise _deny(actor, f"move machine {machine.machine_code} to that department")


def check_machine_delete(actor: Actor) -> None:
    require_admin(actor, "delete machines")


def check_operator_assignment(
    actor: Actor, machine: Machine, target: Optional[Profile] = None
) -> None:
    """Admin, or the leader of the machine's department."""
    require_authenticated(actor, "manage machine operators")
    if not (actor.is_admin or department_in_scope(actor.scope, machine.department_id)):
        raise _deny(actor, f"manage operators of machine {machine.machine_code}")
    if target is not None and target.role != UserRole.OPERATOR:
        raise ConstraintViolation(
            f"Only operator profiles can be assigned to machines (got '{target.role}')"
        )


# ── Status catalog ────────────────────────────────────────────────────────────


def check_status_type_write(actor: Actor) -> None:
    require_admin(actor, "manage status types")


def check_status_type_delete(actor: Actor, status_type: StatusType) -> None:
    """Default entries are never deletable, not even by an admin; deactivate instead."""
    require_admin(actor, "delete status types")
    if status_type.is_default:
        raise ConstraintViolation(
            f"Status type '{status_type.name}' is a default entry and cannot be deleted"
        )


# ── Status changes & history ──────────────────────────────────────────────────


def check_status_change(actor: Actor, machine: Machine) -> None:
    require_authenticated(actor, "change machine status")
    if not machine_in_scope(actor.scope, machine.id, machine.department_id):
        raise _deny(actor, f"change the status of machine {machine.machine_code}")


def check_history_mutation(actor: Actor) -> None:
    """History is append-only for every role."""
    raise _deny(actor, "edit or remove status history")


# ── Profiles ──────────────────────────────────────────────────────────────────


def check_role_change(actor: Actor) -> None:
    require_admin(actor, "change user roles")


def check_profile_update(actor: Actor, profile: Profile) -> None:
    """Non-role fields: the owner only."""
    require_authenticated(actor, "update profiles")
    if actor.profile_id != profile.id:
        raise _deny(actor, "update another user's profile")


def check_user_create(actor: Actor, role: str) -> None:
    """Admin may create any role; a team leader may create operators only."""
    require_authenticated(actor, "create users")
    if actor.is_admin:
        return
    if actor.role == UserRole.TEAM_LEADER and role == UserRole.OPERATOR:
        return
    raise _deny(actor, f"create {role} users")
