"""
Status recorder — the only code path that changes Machine.current_status.

A status change is one transaction holding two writes:
  1. INSERT status_history (previous_status = the status read in this transaction)
  2. UPDATE machines SET current_status, last_updated_by, last_updated_at

The UPDATE is guarded by the machine's `version` column. If another writer
committed in between, SQLAlchemy raises StaleDataError, the whole attempt
(history row included) is rolled back, and the change is retried from a fresh
read. After `settings.status_write_max_retries` lost races the caller gets
ConcurrencyConflict. Either both writes land or neither does.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from machine_monitor.errors import (
    ConcurrencyConflict,
    ConstraintViolation,
    NotFound,
    TransientBackendError,
)
from machine_monitor.models.machine import Machine
from machine_monitor.models.status import StatusHistory, StatusType
from machine_monitor.services.access import guard
from machine_monitor.services.access.scope import Actor
from machine_monitor.settings import settings

logger = logging.getLogger(__name__)


def validate_status(db: Session, status: str) -> None:
    """
    Reject names that are not an active StatusType.
    Skipped when ENFORCE_STATUS_CATALOG=false (free-form statuses).
    """
    if not settings.enforce_status_catalog:
        return
    known = db.scalar(
        select(StatusType.id).where(
            StatusType.name == status, StatusType.is_active.is_(True)
        )
    )
    if known is None:
        raise ConstraintViolation(f"'{status}' is not an active status type")


def record_status_change(
    db: Session,
    actor: Actor,
    machine_id: uuid.UUID,
    new_status: str,
    comment: str = "",
) -> StatusHistory:
    """
    Change a machine's status and append the matching history record.

    Raises:
        NotFound               — machine does not exist
        AuthorizationDenied    — machine outside the actor's scope (or anonymous)
        ConstraintViolation    — status not in the active catalog
        ConcurrencyConflict    — kept losing to concurrent writers
        TransientBackendError  — datastore unavailable
    """
    new_status = new_status.strip()
    if not new_status:
        raise ConstraintViolation("Status must not be empty")

    attempts = max(1, settings.status_write_max_retries)
    for attempt in range(1, attempts + 1):
        try:
            machine = db.get(Machine, machine_id, populate_existing=True)
            if machine is None:
                raise NotFound("Machine", machine_id)
            guard.check_status_change(actor, machine)
            validate_status(db, new_status)

            previous = machine.current_status or ""
            now = datetime.now(timezone.utc)
            record = StatusHistory(
                machine_id=machine.id,
                previous_status=previous,
                status=new_status,
                comment=comment or "",
                changed_by=actor.profile_id,
                changed_at=now,
            )
            db.add(record)
            machine.current_status = new_status
            machine.last_updated_by = actor.profile_id
            machine.last_updated_at = now
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                "Concurrent status write on machine %s (attempt %d/%d)",
                machine_id,
                attempt,
                attempts,
            )
            continue
        except OperationalError as exc:
            db.rollback()
            logger.error("Status write on machine %s failed: %s", machine_id, exc)
            raise TransientBackendError("Datastore unavailable, retry later") from exc
        except DBAPIError as exc:
            db.rollback()
            if exc.connection_invalidated:
                raise TransientBackendError("Datastore connection lost, retry later") from exc
            raise
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Machine %s: %r -> %r by %s",
            machine.machine_code,
            previous,
            new_status,
            actor.describe(),
        )
        return record

    raise ConcurrencyConflict(
        f"Status of machine {machine_id} changed concurrently; gave up after {attempts} attempts"
    )
