"""
Alembic environment for machine_monitor.

The database URL always comes from machine_monitor.settings (DATABASE_URL),
never from alembic.ini. Migrations use a plain connection with no bound actor:
the flush-time row policies do not apply, and the table owner running them is
not subject to the RLS policies that 0002 installs.

SQLite (local development) gets batch mode so ALTER TABLE steps still work.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

import machine_monitor.models  # noqa: F401 — registers every table on Base.metadata
from machine_monitor.models.base import Base
from machine_monitor.settings import settings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_offline() -> None:
    """Emit SQL to stdout (alembic upgrade --sql) instead of executing it."""
    _configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.is_sqlite,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(settings.database_url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(
            connection=connection,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
