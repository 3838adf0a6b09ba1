"""
SQLAlchemy engine and session setup.

Usage in FastAPI route handlers:
    from machine_monitor.database import get_db
    def my_route(db: Session = Depends(get_db)): ...

Usage in scripts (system session — no row policies):
    from machine_monitor.database import SessionLocal
    with SessionLocal() as db:
        ...

Request sessions get the caller bound to them by routers.auth.get_actor;
from then on every flush runs through services.access.policy.
"""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from machine_monitor.errors import AuthorizationDenied, ConstraintViolation, TransientBackendError
from machine_monitor.services.access import policy
from machine_monitor.services.access.policy import bound_actor
from machine_monitor.services.access.scope import Actor
from machine_monitor.services.realtime import notifier  # noqa: F401 — registers session listeners
from machine_monitor.settings import settings

logger = logging.getLogger(__name__)


def _engine_kwargs() -> dict:
    if settings.is_sqlite:
        # TestClient runs sync endpoints on worker threads.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        # Bounded timeout for every statement, scope lookups included.
        "connect_args": {"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"},
    }


# ── Engine ─────────────────────────────────────────────────────────────────
# pool_pre_ping=True: validates connections before use.
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.is_development,  # log SQL in dev only
    **_engine_kwargs(),
)

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    class_=Session,
)


@event.listens_for(engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """SQLite ignores ON DELETE clauses unless foreign keys are switched on."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _publish_actor(connection, actor) -> None:
    """
    Expose the actor to the PostgreSQL row-level security policies
    (alembic 0002) for the rest of the current transaction.
    """
    if connection.dialect.name != "postgresql":
        return
    connection.execute(
        text(
            "SELECT set_config('app.current_profile_id', :pid, true), "
            "set_config('app.current_role', :role, true)"
        ),
        {"pid": str(actor.profile_id or ""), "role": actor.role or "anon"},
    )


@event.listens_for(Session, "after_begin")
def _publish_actor_on_begin(session: Session, transaction, connection) -> None:
    actor = bound_actor(session)
    if actor is not None:
        _publish_actor(connection, actor)


def bind_actor(session: Session, actor: Actor) -> Session:
    """
    Attach the acting identity to `session`. Every later flush is checked by
    services.access.policy, and on PostgreSQL the database policies see it too,
    including for a transaction that is already open.
    """
    policy.bind_actor(session, actor)
    if session.in_transaction():
        _publish_actor(session.connection(), actor)
    return session


# ── FastAPI dependency ──────────────────────────────────────────────────────
def get_db() -> Generator[Session, None, None]:
    """Yield a database session, ensuring it is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def _translated_errors(db: Session, conflict_message: str) -> Iterator[None]:
    """
    Translate datastore failures into the error taxonomy.
    The session is rolled back before raising, so nothing half-written survives.
    """
    try:
        yield
    except AuthorizationDenied:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.info("Integrity error: %s", exc.orig)
        raise ConstraintViolation(conflict_message) from exc
    except OperationalError as exc:
        db.rollback()
        raise TransientBackendError("Datastore unavailable, retry later") from exc
    except DBAPIError as exc:
        db.rollback()
        if exc.connection_invalidated:
            raise TransientBackendError("Datastore connection lost, retry later") from exc
        raise


def flush_or_raise(db: Session, conflict_message: str = "Constraint violated") -> None:
    """Flush pending writes (row policies and constraints run now) without committing."""
    with _translated_errors(db, conflict_message):
        db.flush()


def commit_or_raise(db: Session, conflict_message: str = "Constraint violated") -> None:
    with _translated_errors(db, conflict_message):
        db.commit()


# ── Health check helper ─────────────────────────────────────────────────────
def check_db_connection() -> bool:
    """Return True if the database is reachable. Used by /health endpoint."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
