"""
Test fixtures and shared setup.

Uses a throwaway SQLite file (foreign keys switched on by database.py, so
cascades behave as on PostgreSQL). Services commit for real (the recorder's
retry loop depends on it), so the schema is created and dropped around each
test instead of wrapping tests in a rolled-back transaction.

Builder fixtures write through the `db` session, which has no bound actor
(a system session) and therefore bypasses the row policies.
"""

import os
import tempfile
from types import SimpleNamespace

import pytest

# ── Override settings BEFORE importing app modules ────────────────────────────
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), 'machine_monitor_test.db')}",
)
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REALTIME_ENABLED", "false")

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from machine_monitor.main import app
from machine_monitor.catalog.seed import seed_status_types
from machine_monitor.database import SessionLocal, bind_actor, engine
from machine_monitor.models.base import Base
from machine_monitor.models import *  # noqa — ensures all models registered
from machine_monitor.models.department import Department, DepartmentLeader
from machine_monitor.models.machine import Machine, MachineOperator
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.services.access.scope import resolve_actor
from machine_monitor.services.realtime import notifier


@pytest.fixture
def schema():
    """Fresh tables plus the default status catalog for every test."""
    Base.metadata.create_all(bind=engine)
    seed_status_types()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(schema) -> Session:
    """System session (no actor) for building and inspecting data."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def null_publisher():
    """Tests never talk to Redis; individual tests swap in a recording publisher."""
    notifier.set_publisher(notifier.NullPublisher())
    yield
    notifier.set_publisher(None)


# ── Helpers ───────────────────────────────────────────────────────────────────


@pytest.fixture
def session_as(schema):
    """
    Factory: a new session bound to the given profile's resolved Actor,
    so every flush runs through the row policies.
    """
    opened: list[Session] = []

    def _open(profile: Profile) -> Session:
        session = SessionLocal()
        bind_actor(session, resolve_actor(session, profile))
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.rollback()
        session.close()


# ── Data builder fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def make_profile(db: Session):
    def _make(email: str, role: str = UserRole.OPERATOR, full_name: str | None = None) -> Profile:
        profile = Profile(email=email, full_name=full_name or email.split("@")[0], role=role)
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def make_department(db: Session):
    def _make(name: str) -> Department:
        department = Department(name=name)
        db.add(department)
        db.commit()
        return department

    return _make


@pytest.fixture
def make_machine(db: Session):
    def _make(code: str, department: Department | None = None, status: str = "Idle") -> Machine:
        machine = Machine(
            machine_code=code,
            machine_name=f"Machine {code}",
            department_id=department.id if department else None,
            current_status=status,
        )
        db.add(machine)
        db.commit()
        return machine

    return _make


@pytest.fixture
def plant(db: Session, make_profile, make_department, make_machine) -> SimpleNamespace:
    """
    The reference layout:
      QC   → M100   (leader T, operator O assigned to M100)
      Prod → M200
      none → M900
    plus an admin A and an operator E with no assignments.
    """
    admin = make_profile("admin@example.com", UserRole.ADMIN, "Alice Admin")
    leader = make_profile("leader@example.com", UserRole.TEAM_LEADER, "Tom Leader")
    operator = make_profile("operator@example.com", UserRole.OPERATOR, "Olga Operator")
    idle_operator = make_profile("empty@example.com", UserRole.OPERATOR, "Eve Empty")

    qc = make_department("QC")
    prod = make_department("Prod")
    m100 = make_machine("M100", qc)
    m200 = make_machine("M200", prod)
    m900 = make_machine("M900", None)

    db.add(DepartmentLeader(department_id=qc.id, user_id=leader.id))
    db.add(MachineOperator(machine_id=m100.id, user_id=operator.id))
    db.commit()

    return SimpleNamespace(
        admin=admin,
        leader=leader,
        operator=operator,
        idle_operator=idle_operator,
        qc=qc,
        prod=prod,
        m100=m100,
        m200=m200,
        m900=m900,
    )
