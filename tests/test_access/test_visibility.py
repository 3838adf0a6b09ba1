"""
Visibility filter tests — every builder is run against the plant fixture
for each kind of caller.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import false, true

from machine_monitor.models.machine import Machine
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.services.access import visibility
from machine_monitor.services.access.scope import (
    DepartmentScoped,
    MachineScoped,
    NoScope,
    Universal,
    anonymous_actor,
    resolve_actor,
)


def _codes(db, scope, **filters) -> list[str]:
    return [m.machine_code for m in db.scalars(visibility.machines_query(scope, **filters))]


def _history(db, machine, status, changed_by, previous="Idle"):
    db.add(
        StatusHistory(
            machine_id=machine.id,
            previous_status=previous,
            status=status,
            changed_by=changed_by.id,
            changed_at=datetime.now(timezone.utc),
        )
    )
    db.commit()


# ── Predicates ────────────────────────────────────────────────────────────────


class TestPredicates:
    def test_empty_department_scope_is_false_not_true(self):
        clause = visibility.machine_scope_clause(
            DepartmentScoped(frozenset()), Machine.id, Machine.department_id
        )
        assert clause.compare(false())

    def test_no_scope_is_false(self):
        clause = visibility.machine_scope_clause(NoScope(), Machine.id, Machine.department_id)
        assert clause.compare(false())

    def test_universal_is_true(self):
        clause = visibility.machine_scope_clause(
            Universal(read_only=True), Machine.id, Machine.department_id
        )
        assert clause.compare(true())

    def test_machine_in_scope(self):
        d, m = uuid.uuid4(), uuid.uuid4()
        assert visibility.machine_in_scope(DepartmentScoped(frozenset({d})), m, d)
        assert not visibility.machine_in_scope(DepartmentScoped(frozenset({d})), m, None)
        assert visibility.machine_in_scope(MachineScoped(frozenset({m})), m, None)
        assert not visibility.machine_in_scope(MachineScoped(frozenset({m})), uuid.uuid4(), d)
        assert not visibility.machine_in_scope(NoScope(), m, d)

    def test_department_in_scope_excludes_operators(self):
        d = uuid.uuid4()
        assert visibility.department_in_scope(Universal(), d)
        assert visibility.department_in_scope(DepartmentScoped(frozenset({d})), d)
        assert not visibility.department_in_scope(MachineScoped(frozenset({uuid.uuid4()})), d)


# ── Machines ──────────────────────────────────────────────────────────────────


class TestMachineVisibility:
    def test_admin_sees_all_ordered_by_code(self, db, plant):
        scope = resolve_actor(db, plant.admin).scope
        assert _codes(db, scope) == ["M100", "M200", "M900"]

    def test_anonymous_sees_all(self, db, plant):
        assert _codes(db, anonymous_actor().scope) == ["M100", "M200", "M900"]

    def test_team_leader_sees_led_departments_only(self, db, plant):
        scope = resolve_actor(db, plant.leader).scope
        assert _codes(db, scope) == ["M100"]

    def test_operator_sees_exactly_assigned(self, db, plant):
        scope = resolve_actor(db, plant.operator).scope
        assert _codes(db, scope) == ["M100"]

    def test_operator_with_no_assignments_sees_nothing(self, db, plant):
        scope = resolve_actor(db, plant.idle_operator).scope
        assert _codes(db, scope) == []

    def test_filters(self, db, plant, make_machine):
        make_machine("X-500", plant.prod, status="Fault")
        scope = Universal()
        assert _codes(db, scope, status="Fault") == ["X-500"]
        assert _codes(db, scope, department_id=plant.prod.id) == ["M200", "X-500"]
        assert _codes(db, scope, search="x-5") == ["X-500"]

    def test_status_counts_respect_scope(self, db, plant):
        scope = resolve_actor(db, plant.operator).scope
        rows = db.execute(visibility.machine_status_counts_query(scope)).all()
        assert [tuple(r) for r in rows] == [("Idle", 1)]


# ── History ───────────────────────────────────────────────────────────────────


class TestHistoryVisibility:
    def test_operator_sees_only_assigned_machine_history(self, db, plant):
        _history(db, plant.m100, "Running", plant.admin)
        _history(db, plant.m200, "Fault", plant.admin)
        scope = resolve_actor(db, plant.operator).scope
        rows = db.scalars(visibility.history_query(scope)).all()
        assert {r.machine_id for r in rows} == {plant.m100.id}

    def test_team_leader_follows_current_department(self, db, plant):
        _history(db, plant.m200, "Fault", plant.admin)
        scope = resolve_actor(db, plant.leader).scope
        assert db.scalars(visibility.history_query(scope)).all() == []

        # Moving M200 into QC brings its past records into view.
        plant.m200.department_id = plant.qc.id
        db.commit()
        rows = db.scalars(visibility.history_query(scope)).all()
        assert [r.machine_id for r in rows] == [plant.m200.id]

    def test_empty_scope_sees_no_history(self, db, plant):
        _history(db, plant.m100, "Running", plant.admin)
        scope = resolve_actor(db, plant.idle_operator).scope
        assert db.scalars(visibility.history_query(scope)).all() == []

    def test_newest_first_with_limit(self, db, plant):
        _history(db, plant.m100, "Running", plant.admin)
        _history(db, plant.m100, "Fault", plant.admin, previous="Running")
        rows = db.scalars(visibility.history_query(Universal(), limit=1)).all()
        assert [r.status for r in rows] == ["Fault"]

    def test_department_filter(self, db, plant):
        _history(db, plant.m100, "Running", plant.admin)
        _history(db, plant.m200, "Fault", plant.admin)
        rows = db.scalars(
            visibility.history_query(Universal(read_only=True), department_id=plant.prod.id)
        ).all()
        assert [r.machine_id for r in rows] == [plant.m200.id]


# ── Departments, status types, profiles ───────────────────────────────────────


class TestCatalogVisibility:
    def test_departments_public_and_sorted(self, db, plant):
        names = [d.name for d in db.scalars(visibility.departments_query())]
        assert names == ["Prod", "QC"]

    def test_assignable_departments(self, db, plant):
        def names(profile):
            actor = resolve_actor(db, profile)
            return [d.name for d in db.scalars(visibility.assignable_departments_query(actor))]

        assert names(plant.admin) == ["Prod", "QC"]
        assert names(plant.leader) == ["QC"]
        assert names(plant.operator) == []
        assert [
            d.name for d in db.scalars(visibility.assignable_departments_query(anonymous_actor()))
        ] == []

    def test_inactive_status_types_hidden_unless_admin_asks(self, db, plant):
        fault = db.query(StatusType).filter(StatusType.name == "Fault").one()
        fault.is_active = False
        db.commit()

        admin = resolve_actor(db, plant.admin)
        leader = resolve_actor(db, plant.leader)
        active = [s.name for s in db.scalars(visibility.status_types_query(admin))]
        assert active == ["Running", "Idle", "Under Maintenance"]
        everything = [
            s.name for s in db.scalars(visibility.status_types_query(admin, include_inactive=True))
        ]
        assert "Fault" in everything
        hidden = [
            s.name for s in db.scalars(visibility.status_types_query(leader, include_inactive=True))
        ]
        assert "Fault" not in hidden

    def test_profiles_by_role(self, db, plant):
        def emails(actor):
            return {p.email for p in db.scalars(visibility.profiles_query(actor))}

        assert len(emails(resolve_actor(db, plant.admin))) == 4
        assert emails(resolve_actor(db, plant.leader)) == {
            "operator@example.com",
            "empty@example.com",
        }
        assert emails(resolve_actor(db, plant.operator)) == {"operator@example.com"}
        assert emails(anonymous_actor()) == set()
