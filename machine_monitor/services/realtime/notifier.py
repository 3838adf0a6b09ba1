"""
Realtime change feed.

Session listeners note which watched rows a transaction touched and, once
the transaction commits, publish one message per row to Redis pub/sub on
`<prefix>:<table>`. Rolled-back work is never announced.

Messages are re-fetch triggers only:
    {"table": "machines", "event": "UPDATE", "id": "<uuid>"}
Delivery order across messages is not guaranteed; subscribers must re-read
the collection instead of applying payloads.

Publishing never raises: a Redis outage degrades the live view, not writes.
"""

import abc
import json
import logging
from dataclasses import asdict, dataclass
from typing import Optional

import redis
from sqlalchemy import event
from sqlalchemy.orm import Session

from machine_monitor.settings import settings

logger = logging.getLogger(__name__)

WATCHED_TABLES = frozenset(
    {
        "machines",
        "status_history",
        "departments",
        "status_types",
        "machine_operators",
        "department_leaders",
    }
)

_PENDING_KEY = "pending_changes"


@dataclass(frozen=True)
class TableChange:
    table: str
    event: str  # INSERT | UPDATE | DELETE
    id: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))


def channel_name(table: str) -> str:
    return f"{settings.realtime_channel_prefix}:{table}"


# ── Publishers ────────────────────────────────────────────────────────────────


class Publisher(abc.ABC):
    @abc.abstractmethod
    def publish(self, change: TableChange) -> None:
        """Announce one committed change. Must not raise."""


class NullPublisher(Publisher):
    """Used when REALTIME_ENABLED=false."""

    def publish(self, change: TableChange) -> None:
        return None


class RedisPublisher(Publisher):
    def __init__(self, url: str, timeout: float = 0.5):
        self._conn = redis.from_url(
            url, socket_connect_timeout=timeout, socket_timeout=timeout
        )

    def publish(self, change: TableChange) -> None:
        try:
            self._conn.publish(channel_name(change.table), change.to_json())
        except redis.RedisError as exc:
            logger.warning(
                "Failed to publish %s %s:%s — %s", change.event, change.table, change.id, exc
            )


_publisher: Optional[Publisher] = None


def get_publisher() -> Publisher:
    global _publisher
    if _publisher is None:
        _publisher = (
            RedisPublisher(settings.redis_url, settings.realtime_publish_timeout_s)
            if settings.realtime_enabled
            else NullPublisher()
        )
    return _publisher


def set_publisher(publisher: Optional[Publisher]) -> None:
    """Swap the process-wide publisher (None resets to the configured one)."""
    global _publisher
    _publisher = publisher


# ── Session listeners ─────────────────────────────────────────────────────────


def _watched(row) -> Optional[str]:
    table = getattr(row, "__tablename__", None)
    return table if table in WATCHED_TABLES else None


@event.listens_for(Session, "after_flush")
def _collect_changes(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for rows, kind in (
        (session.new, "INSERT"),
        (session.dirty, "UPDATE"),
        (session.deleted, "DELETE"),
    ):
        for row in rows:
            table = _watched(row)
            if table is not None:
                pending.append(TableChange(table=table, event=kind, id=str(row.id)))


@event.listens_for(Session, "after_commit")
def _publish_changes(session: Session) -> None:
    changes = session.info.pop(_PENDING_KEY, [])
    if not changes:
        return
    publisher = get_publisher()
    for change in changes:
        publisher.publish(change)


@event.listens_for(Session, "after_soft_rollback")
def _discard_changes(session: Session, previous_transaction) -> None:
    session.info.pop(_PENDING_KEY, None)
