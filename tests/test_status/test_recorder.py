"""
Status recorder tests — the compound history + machine write.

Concurrency is simulated by committing a competing change from a second
session at the moment the first one starts to flush; the first attempt then
hits the machine's version check and has to retry from a fresh read.
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from machine_monitor.database import SessionLocal
from machine_monitor.errors import (
    AuthorizationDenied,
    ConcurrencyConflict,
    ConstraintViolation,
    NotFound,
    TransientBackendError,
)
from machine_monitor.models.machine import Machine
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.services.access.policy import bound_actor
from machine_monitor.services.status import recorder
from machine_monitor.settings import settings


def _history(db, machine_id) -> list[StatusHistory]:
    db.expire_all()
    return (
        db.query(StatusHistory)
        .filter(StatusHistory.machine_id == machine_id)
        .order_by(StatusHistory.changed_at)
        .all()
    )


def _competing_change(machine_id, changed_by, status="Fault"):
    """Commit a status change from an independent (system) session."""
    with SessionLocal() as other:
        machine = other.get(Machine, machine_id)
        other.add(
            StatusHistory(
                machine_id=machine.id,
                previous_status=machine.current_status,
                status=status,
                changed_by=changed_by,
                changed_at=datetime.now(timezone.utc),
            )
        )
        machine.current_status = status
        other.commit()


class TestRecordStatusChange:
    def test_writes_history_and_machine_together(self, db, session_as, plant):
        session = session_as(plant.operator)
        record = recorder.record_status_change(
            session, bound_actor(session), plant.m100.id, "Running", "shift start"
        )

        assert record.previous_status == "Idle"
        assert record.status == "Running"
        assert record.comment == "shift start"
        assert record.changed_by == plant.operator.id

        db.expire_all()
        machine = db.get(Machine, plant.m100.id)
        assert machine.current_status == "Running"
        assert machine.last_updated_by == plant.operator.id
        assert [h.status for h in _history(db, plant.m100.id)] == ["Running"]

    def test_previous_status_chains(self, db, session_as, plant):
        session = session_as(plant.leader)
        actor = bound_actor(session)
        recorder.record_status_change(session, actor, plant.m100.id, "Running")
        recorder.record_status_change(session, actor, plant.m100.id, "Fault")

        rows = _history(db, plant.m100.id)
        assert [(h.previous_status, h.status) for h in rows] == [
            ("Idle", "Running"),
            ("Running", "Fault"),
        ]

    def test_missing_machine(self, session_as, plant):
        session = session_as(plant.admin)
        with pytest.raises(NotFound):
            recorder.record_status_change(session, bound_actor(session), uuid.uuid4(), "Running")

    def test_out_of_scope_machine(self, db, session_as, plant):
        session = session_as(plant.operator)
        with pytest.raises(AuthorizationDenied):
            recorder.record_status_change(session, bound_actor(session), plant.m200.id, "Running")
        assert _history(db, plant.m200.id) == []

    def test_unknown_status_rejected(self, db, session_as, plant):
        session = session_as(plant.admin)
        with pytest.raises(ConstraintViolation):
            recorder.record_status_change(session, bound_actor(session), plant.m100.id, "Exploded")
        db.expire_all()
        assert db.get(Machine, plant.m100.id).current_status == "Idle"

    def test_inactive_status_rejected(self, db, session_as, plant):
        db.query(StatusType).filter(StatusType.name == "Fault").one().is_active = False
        db.commit()
        session = session_as(plant.admin)
        with pytest.raises(ConstraintViolation):
            recorder.record_status_change(session, bound_actor(session), plant.m100.id, "Fault")

    def test_free_form_status_when_catalog_not_enforced(self, db, session_as, plant, monkeypatch):
        monkeypatch.setattr(settings, "enforce_status_catalog", False)
        session = session_as(plant.admin)
        record = recorder.record_status_change(
            session, bound_actor(session), plant.m100.id, "Waiting for parts"
        )
        assert record.status == "Waiting for parts"

    def test_history_keeps_renamed_status(self, db, session_as, plant):
        session = session_as(plant.admin)
        recorder.record_status_change(session, bound_actor(session), plant.m100.id, "Running")
        db.query(StatusType).filter(StatusType.name == "Running").one().name = "Producing"
        db.commit()
        assert [h.status for h in _history(db, plant.m100.id)] == ["Running"]


class TestConcurrency:
    def test_concurrent_change_is_retried_from_fresh_read(self, db, session_as, plant):
        session = session_as(plant.leader)
        machine_id = plant.m100.id
        admin_id = plant.admin.id

        def compete(sess, flush_context, instances):
            _competing_change(machine_id, admin_id, "Fault")

        event.listen(session, "before_flush", compete, once=True)
        record = recorder.record_status_change(
            session, bound_actor(session), machine_id, "Running"
        )

        assert record.previous_status == "Fault"
        rows = _history(db, machine_id)
        assert [(h.previous_status, h.status) for h in rows] == [
            ("Idle", "Fault"),
            ("Fault", "Running"),
        ]
        assert db.get(Machine, machine_id).current_status == "Running"

    def test_gives_up_after_max_retries(self, db, session_as, plant, monkeypatch):
        monkeypatch.setattr(settings, "status_write_max_retries", 2)
        session = session_as(plant.leader)
        machine_id = plant.m100.id
        admin_id = plant.admin.id
        statuses = iter(["Fault", "Under Maintenance", "Fault", "Under Maintenance"])

        def compete(sess, flush_context, instances):
            _competing_change(machine_id, admin_id, next(statuses))

        event.listen(session, "before_flush", compete)
        try:
            with pytest.raises(ConcurrencyConflict):
                recorder.record_status_change(
                    session, bound_actor(session), machine_id, "Running"
                )
        finally:
            event.remove(session, "before_flush", compete)

        # Neither half of the losing write survived.
        rows = _history(db, machine_id)
        assert "Running" not in [h.status for h in rows]
        assert db.get(Machine, machine_id).current_status != "Running"

    def test_backend_failure_is_transient(self, session_as, plant, monkeypatch):
        session = session_as(plant.admin)

        def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("server closed the connection"))

        monkeypatch.setattr(session, "commit", broken_commit)
        with pytest.raises(TransientBackendError):
            recorder.record_status_change(session, bound_actor(session), plant.m100.id, "Running")
