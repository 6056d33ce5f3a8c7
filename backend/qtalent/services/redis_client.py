from typing import Any

import redis as redis_sync
from redis import asyncio as aioredis

from qtalent.core.config import REDIS_URL

_CLIENT_OPTIONS = dict(
    decode_responses=True,
    socket_connect_timeout=2,
    socket_timeout=5,
    health_check_interval=30,
    retry_on_timeout=True,
)


class _AsyncNullRedis:
    """Stand-in when Redis is not configured; has no ``publish`` so the bus stays off."""

    async def get(self, *args: Any, **kwargs: Any) -> None:  # pragma: no cover - no-op
        return None


class _NullRedis:
    """Sync counterpart of :class:`_AsyncNullRedis`."""

    def get(self, *args: Any, **kwargs: Any) -> None:  # pragma: no cover - no-op
        return None


def _redis_url() -> str:
    url = (REDIS_URL or "").strip()
    if not url or not url.lower().startswith(("redis://", "rediss://")):
        return ""
    return url


def _build_client() -> Any:
    url = _redis_url()
    if not url:
        return _AsyncNullRedis()
    try:
        return aioredis.from_url(url, **_CLIENT_OPTIONS)
    except Exception:
        return _AsyncNullRedis()


def _build_sync_client() -> Any:
    # Used from worker threads, where there is no event loop to bind the
    # asyncio pool to.
    url = _redis_url()
    if not url:
        return _NullRedis()
    try:
        return redis_sync.from_url(url, **_CLIENT_OPTIONS)
    except Exception:
        return _NullRedis()


redis = _build_client()
sync_redis = _build_sync_client()

__all__ = ["redis", "sync_redis"]
