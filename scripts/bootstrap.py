"""
Bootstrap script — create the first admin profile and the default status catalog.

Usage:
    alembic upgrade head
    python scripts/bootstrap.py

Prompts for the admin's email, name and password.
Idempotent — safe to re-run; skips records that already exist.
Runs on a system session (no bound actor), which is the only way to create
an admin when none exists yet.
"""

import sys
import os

# Ensure the project root is on the path when run directly
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from getpass import getpass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from machine_monitor.catalog.seed import seed_status_types
from machine_monitor.database import SessionLocal
from machine_monitor.models.profile import Profile, UserRole
from machine_monitor.routers.auth import hash_password


def prompt(label: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    value = input(f"{label}{suffix}: ").strip()
    return value or default


def main() -> None:
    print("\n=== Machine Monitor — Bootstrap ===\n")

    # ── Admin profile ─────────────────────────────────────────────────────────
    print("── Admin profile ────────────────────────")
    admin_email = prompt("Admin email").lower()
    if not admin_email:
        print("ERROR: email is required.")
        sys.exit(1)
    admin_name = prompt("Full name", "Administrator")

    admin_password = getpass("Admin password (min 8 chars): ")
    if len(admin_password) < 8:
        print("ERROR: password must be at least 8 characters.")
        sys.exit(1)

    confirm = getpass("Confirm password: ")
    if admin_password != confirm:
        print("ERROR: passwords do not match.")
        sys.exit(1)

    # ── Write to DB ───────────────────────────────────────────────────────────
    db = SessionLocal()
    try:
        count = seed_status_types(db)
        print(f"\n✓ Status catalog ensured ({count} default types)")

        existing = db.scalar(select(Profile).where(Profile.email == admin_email))
        if existing and existing.role == UserRole.ADMIN:
            print(f"✓ Profile '{admin_email}' is already an admin — skipping.")
        elif existing:
            previous_role = existing.role
            existing.role = UserRole.ADMIN
            print(f"✓ Profile '{admin_email}' promoted from {previous_role} to admin")
        else:
            db.add(
                Profile(
                    email=admin_email,
                    full_name=admin_name,
                    hashed_password=hash_password(admin_password),
                    role=UserRole.ADMIN,
                    is_active=True,
                )
            )
            print(f"✓ Admin profile '{admin_email}' created")

        db.commit()
        print("\n✅ Bootstrap complete. You can now log in at /auth/token\n")

    except IntegrityError as e:
        db.rollback()
        print(f"\nERROR: Database integrity error — {e.orig}")
        sys.exit(1)
    except Exception as e:
        db.rollback()
        print(f"\nERROR: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
