"""
Machine Monitor API.

  create_app() wires CORS, the error handlers that turn MonitorError into
  ErrorResponse bodies, and one router per area. The module-level `app` is
  what uvicorn serves:

    uvicorn machine_monitor.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from machine_monitor.errors import register_exception_handlers
from machine_monitor.routers import auth, departments, health, machines, realtime, status, users
from machine_monitor.settings import settings

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

ROUTERS = (health, auth, departments, machines, status, users, realtime)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from machine_monitor.database import check_db_connection
    from machine_monitor.services.realtime.notifier import get_publisher

    logger.info("Machine Monitor starting [env=%s]", settings.environment)
    if settings.is_production and settings.secret_key == "CHANGE_ME_IN_PRODUCTION":
        logger.error("SECRET_KEY is still the default; issued tokens can be forged")

    # A dead database is reported, not fatal: /health shows "degraded".
    if check_db_connection():
        logger.info("Database reachable")
    else:
        logger.error("Database unreachable at startup, check DATABASE_URL")

    logger.info(
        "Realtime via %s; status catalog %s",
        type(get_publisher()).__name__,
        "enforced" if settings.enforce_status_catalog else "not enforced",
    )

    yield

    logger.info("Machine Monitor stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Machine Monitor",
        description=(
            "Live machine-status dashboard across departments. Admins manage "
            "the catalog and assignments, team leaders run their departments, "
            "operators report the status of the machines they are assigned to. "
            "Anonymous callers get a read-only view of everything."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
    )

    # The dashboard is served from another origin; development accepts any.
    origins = ["*"] if settings.is_development else settings.allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    register_exception_handlers(app)
    for module in ROUTERS:
        app.include_router(module.router)

    return app


app = create_app()
