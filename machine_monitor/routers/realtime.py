"""
Realtime WebSocket — one connection per watched table.

  WS /realtime/{table}

On connect the client gets {"type": "connection_established", "table": ...};
afterwards every committed change on that table arrives as
{"table": ..., "event": "INSERT|UPDATE|DELETE", "id": ...}.

Messages carry no row data. Clients re-read the collection through the
regular (scope-filtered) endpoints, which is why subscriptions need no
authentication of their own.
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from machine_monitor.services.realtime.notifier import WATCHED_TABLES, channel_name
from machine_monitor.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _forward(websocket: WebSocket, pubsub) -> None:
    async for message in pubsub.listen():
        if message.get("type") != "message":
            continue
        await websocket.send_text(message["data"])


async def _until_disconnect(websocket: WebSocket) -> None:
    # Clients never send; reading is what surfaces a disconnect on a quiet channel.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def relay(websocket: WebSocket, pubsub) -> None:
    """Forward pub/sub messages until the client disconnects or the subscription fails."""
    forward = asyncio.create_task(_forward(websocket, pubsub))
    watch = asyncio.create_task(_until_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({forward, watch}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (forward, watch):
            task.cancel()
        await asyncio.gather(forward, watch, return_exceptions=True)
    for task in done:
        if not task.cancelled():
            task.result()


@router.websocket("/realtime/{table}")
async def table_changes(websocket: WebSocket, table: str) -> None:
    if table not in WATCHED_TABLES:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if not settings.realtime_enabled:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    await websocket.accept()
    await websocket.send_text(json.dumps({"type": "connection_established", "table": table}))

    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    pubsub = client.pubsub()
    await pubsub.subscribe(channel_name(table))
    logger.info("[WS] Subscribed to %s", table)
    try:
        await relay(websocket, pubsub)
        logger.info("[WS] Client left %s", table)
    except WebSocketDisconnect:
        logger.info("[WS] Client left %s", table)
    except aioredis.RedisError as exc:
        logger.warning("[WS] Redis subscription on %s failed — %s", table, exc)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        await pubsub.unsubscribe()
        await pubsub.aclose()
        await client.aclose()
