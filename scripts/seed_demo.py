"""
Demo seed script — two departments, a handful of machines, one team leader
and one operator, for trying the dashboard end to end.

Layout:
  QC     → M100, M101     leader: leader@demo.local
  Prod   → M200, M201
  (none) → M900
  operator@demo.local is assigned to M100 only.

Usage:
    python scripts/bootstrap.py     (first — creates the admin and status catalog)
    python scripts/seed_demo.py

Idempotent — safe to re-run; skips records that already exist.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from getpass import getpass

from sqlalchemy import select

from machine_monitor.database import SessionLocal
from machine_monitor.models.department import Department, DepartmentLeader
from machine_monitor.models.machine import Machine, MachineOperator
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.routers.auth import hash_password

# ── Demo data constants ────────────────────────────────────────────────────────

DEPARTMENTS = [
    ("QC", "Quality control line"),
    ("Prod", "Main production floor"),
]

# (machine_code, machine_name, department name or None)
MACHINES = [
    ("M100", "CMM Inspection Cell", "QC"),
    ("M101", "Vision Checker", "QC"),
    ("M200", "CNC Lathe 1", "Prod"),
    ("M201", "CNC Lathe 2", "Prod"),
    ("M900", "Spare Compressor", None),
]

LEADER_EMAIL = "leader@demo.local"
OPERATOR_EMAIL = "operator@demo.local"


def _profile(db, email: str, full_name: str, role: str, password: str) -> Profile:
    profile = db.scalar(select(Profile).where(Profile.email == email))
    if profile:
        print(f"✓ Profile '{email}' already exists — skipping.")
        return profile
    profile = Profile(
        email=email,
        full_name=full_name,
        role=role,
        hashed_password=hash_password(password),
    )
    db.add(profile)
    db.flush()
    print(f"✓ Profile '{email}' created (role={role})")
    return profile


def main() -> None:
    print("\n=== Machine Monitor — Demo Seed ===\n")

    password = getpass("Password for the demo leader and operator (min 8 chars): ")
    if len(password) < 8:
        print("ERROR: password must be at least 8 characters.")
        sys.exit(1)

    db = SessionLocal()
    try:
        # ── Departments ────────────────────────────────────────────────────────
        departments: dict[str, Department] = {}
        for name, description in DEPARTMENTS:
            department = db.scalar(select(Department).where(Department.name == name))
            if department:
                print(f"✓ Department '{name}' already exists — skipping.")
            else:
                department = Department(name=name, description=description)
                db.add(department)
                db.flush()
                print(f"✓ Department '{name}' created")
            departments[name] = department

        # ── Machines ───────────────────────────────────────────────────────────
        machines: dict[str, Machine] = {}
        for code, machine_name, department_name in MACHINES:
            machine = db.scalar(select(Machine).where(Machine.machine_code == code))
            if machine:
                print(f"✓ Machine '{code}' already exists — skipping.")
            else:
                department = departments.get(department_name) if department_name else None
                machine = Machine(
                    machine_code=code,
                    machine_name=machine_name,
                    department_id=department.id if department else None,
                )
                db.add(machine)
                db.flush()
                print(f"✓ Machine '{code}' created in {department_name or 'no department'}")
            machines[code] = machine

        # ── People and assignments ─────────────────────────────────────────────
        leader = _profile(db, LEADER_EMAIL, "Demo Team Leader", UserRole.TEAM_LEADER, password)
        operator = _profile(db, OPERATOR_EMAIL, "Demo Operator", UserRole.OPERATOR, password)

        qc = departments["QC"]
        if not db.scalar(
            select(DepartmentLeader).where(
                DepartmentLeader.department_id == qc.id, DepartmentLeader.user_id == leader.id
            )
        ):
            db.add(DepartmentLeader(department_id=qc.id, user_id=leader.id))
            print(f"✓ {LEADER_EMAIL} now leads QC")

        m100 = machines["M100"]
        if not db.scalar(
            select(MachineOperator).where(
                MachineOperator.machine_id == m100.id, MachineOperator.user_id == operator.id
            )
        ):
            db.add(MachineOperator(machine_id=m100.id, user_id=operator.id))
            print(f"✓ {OPERATOR_EMAIL} now operates M100")

        db.commit()
        print("\n✅ Demo seed complete.\n")

    except Exception as e:
        db.rollback()
        print(f"\nERROR: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
