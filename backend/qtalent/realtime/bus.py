from __future__ import annotations

import json
import logging
from typing import Any

from qtalent.core.config import settings
from qtalent.services import redis_client

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "ws-topic:"


def bus_enabled(client: Any = None) -> bool:
    if client is None:
        client = redis_client.redis
    return bool(settings.REALTIME_BUS_ENABLED) and hasattr(client, "publish")


def user_topic(user_id: int) -> str:
    return f"notifications:{int(user_id)}"


def _encode(topic: str, envelope: dict[str, Any] | str) -> str:
    if isinstance(envelope, str):
        return envelope
    env = dict(envelope)
    env.setdefault("v", 1)
    env.setdefault("topic", topic)
    return json.dumps(env, separators=(",", ":"), default=str)


async def publish_topic(topic: str, envelope: dict[str, Any] | str) -> None:
    """Publish an envelope to ws-topic:<topic> (JSON string or dict).

    Safe to call even when the bus is disabled; becomes a no-op.
    """
    if not bus_enabled():
        return
    try:
        await redis_client.redis.publish(f"{TOPIC_PREFIX}{topic}", _encode(topic, envelope))
    except Exception as exc:
        # Best effort only; do not raise
        logger.warning("Realtime publish to %s failed: %s", topic, exc)


def publish_topic_sync(topic: str, envelope: dict[str, Any] | str) -> None:
    """Blocking variant of :func:`publish_topic` for threads without a loop."""
    client = redis_client.sync_redis
    if not bus_enabled(client):
        return
    try:
        client.publish(f"{TOPIC_PREFIX}{topic}", _encode(topic, envelope))
    except Exception as exc:
        logger.warning("Realtime publish to %s failed: %s", topic, exc)


__all__ = [
    "bus_enabled",
    "publish_topic",
    "publish_topic_sync",
    "user_topic",
]
