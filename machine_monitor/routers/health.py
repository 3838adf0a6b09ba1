"""Liveness probe for the load balancer and uptime checks."""

import logging

import redis
from fastapi import APIRouter
from pydantic import BaseModel

from machine_monitor.database import check_db_connection
from machine_monitor.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str  # ok | degraded
    environment: str
    database: str  # connected | unreachable
    realtime: str  # disabled | connected | unreachable
    version: str = "1.0.0"


def _realtime_state() -> str:
    if not settings.realtime_enabled:
        return "disabled"
    try:
        redis.from_url(settings.redis_url, socket_connect_timeout=1).ping()
    except redis.RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        return "unreachable"
    return "connected"


@router.get("/health", response_model=HealthResponse, include_in_schema=False)
def health_check() -> HealthResponse:
    """
    Always 200. Only the database decides between "ok" and "degraded":
    without Redis the dashboard loses live updates but every write still works.
    """
    db_ok = check_db_connection()
    return HealthResponse(
        status="ok" if db_ok else "degraded",
        environment=settings.environment,
        database="connected" if db_ok else "unreachable",
        realtime=_realtime_state(),
    )
