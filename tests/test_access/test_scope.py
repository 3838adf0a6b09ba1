"""
Role & scope resolver tests.
The pure mapping needs no DB; resolve_actor tests use the plant fixture.
"""

import uuid

import pytest

from machine_monitor.models.department import DepartmentLeader
from machine_monitor.models.machine import MachineOperator
from machine_monitor.models.profile import UserRole
from machine_monitor.services.access.scope import (
    DepartmentScoped,
    MachineScoped,
    NoScope,
    Universal,
    anonymous_actor,
    resolve_actor,
    scope_for,
)

D1, D2 = uuid.uuid4(), uuid.uuid4()
M1 = uuid.uuid4()


class TestScopeFor:
    def test_admin_is_universal_and_writable(self):
        assert scope_for(UserRole.ADMIN, frozenset(), frozenset()) == Universal(read_only=False)

    def test_team_leader_scoped_to_led_departments(self):
        scope = scope_for(UserRole.TEAM_LEADER, frozenset({D1, D2}), frozenset())
        assert scope == DepartmentScoped(frozenset({D1, D2}))

    def test_operator_scoped_to_direct_machines(self):
        scope = scope_for(UserRole.OPERATOR, frozenset(), frozenset({M1}))
        assert scope == MachineScoped(frozenset({M1}))

    def test_operator_does_not_inherit_departments(self):
        """An operator row in department_leaders grants nothing."""
        assert scope_for(UserRole.OPERATOR, frozenset({D1}), frozenset()) == NoScope()

    @pytest.mark.parametrize("role", [UserRole.TEAM_LEADER, UserRole.OPERATOR])
    def test_empty_assignments_resolve_to_no_scope(self, role):
        assert scope_for(role, frozenset(), frozenset()) == NoScope()

    def test_unknown_role_resolves_to_no_scope(self):
        assert scope_for("supervisor", frozenset({D1}), frozenset({M1})) == NoScope()


class TestAnonymousActor:
    def test_anonymous_is_universal_read_only(self):
        actor = anonymous_actor()
        assert actor.is_anonymous
        assert actor.scope == Universal(read_only=True)
        assert not actor.is_admin


class TestResolveActor:
    def test_admin(self, db, plant):
        actor = resolve_actor(db, plant.admin)
        assert actor.is_admin
        assert actor.profile_id == plant.admin.id

    def test_team_leader_led_departments_and_machines(self, db, plant):
        actor = resolve_actor(db, plant.leader)
        assert actor.scope == DepartmentScoped(frozenset({plant.qc.id}))
        assert actor.led_department_ids == frozenset({plant.qc.id})
        # Machines inside led departments count as assigned.
        assert actor.assigned_machine_ids == frozenset({plant.m100.id})

    def test_operator_direct_assignments_only(self, db, plant):
        actor = resolve_actor(db, plant.operator)
        assert actor.scope == MachineScoped(frozenset({plant.m100.id}))
        assert actor.assigned_machine_ids == frozenset({plant.m100.id})

    def test_operator_without_assignments(self, db, plant):
        actor = resolve_actor(db, plant.idle_operator)
        assert actor.scope == NoScope()
        assert not actor.is_anonymous

    def test_role_not_matching_assignment_grants_nothing(self, db, plant):
        """A leader assignment held by an operator-role profile is ignored."""
        db.add(DepartmentLeader(department_id=plant.prod.id, user_id=plant.idle_operator.id))
        db.commit()
        assert resolve_actor(db, plant.idle_operator).scope == NoScope()

    def test_team_leader_with_machine_assignment_keeps_department_scope(self, db, plant):
        db.add(MachineOperator(machine_id=plant.m200.id, user_id=plant.leader.id))
        db.commit()
        actor = resolve_actor(db, plant.leader)
        assert actor.scope == DepartmentScoped(frozenset({plant.qc.id}))
        assert plant.m200.id in actor.assigned_machine_ids
