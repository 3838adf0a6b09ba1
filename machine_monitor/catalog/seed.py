"""
Status catalog seeder — idempotent insert of the default StatusType rows.

Run via:
  python -m machine_monitor.catalog.seed
  alembic upgrade head && python -m machine_monitor.catalog.seed

Safe to run multiple times — uses INSERT ... ON CONFLICT DO NOTHING, so an
admin's later edits to a default entry (colour, order, is_active) survive.
"""

import logging
import sys
import uuid

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from machine_monitor.catalog.constants import DEFAULT_STATUS_TYPES
from machine_monitor.database import SessionLocal
from machine_monitor.models.status import StatusType

logger = logging.getLogger(__name__)


def seed_status_types(session: Session | None = None) -> int:
    """
    Insert the default status types that are missing.
    Returns the number of catalog entries processed.
    Uses a session if provided (for testability); opens its own otherwise.
    Must run on a system session (no bound actor).
    """
    _owns_session = session is None
    if _owns_session:
        session = SessionLocal()

    try:
        rows = [
            {**item, "id": uuid.uuid4(), "is_default": True, "is_active": True}
            for item in DEFAULT_STATUS_TYPES
        ]
        insert = sqlite_insert if session.get_bind().dialect.name == "sqlite" else pg_insert
        stmt = insert(StatusType).values(rows).on_conflict_do_nothing(index_elements=["name"])
        session.execute(stmt)
        session.commit()
        count = len(rows)
        logger.info("Status catalog seed complete: %d defaults ensured.", count)
        return count
    except Exception:
        session.rollback()
        raise
    finally:
        if _owns_session:
            session.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    try:
        count = seed_status_types()
        print(f"✓ Status catalog seeded: {count} default types")
        sys.exit(0)
    except Exception as e:
        print(f"✗ Status catalog seed failed: {e}", file=sys.stderr)
        sys.exit(1)
