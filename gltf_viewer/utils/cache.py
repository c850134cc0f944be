"""Shared async Redis connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis

from gltf_viewer.core.config import get_settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_init_lock = asyncio.Lock()


async def init_redis() -> None:
    global _redis_client
    if _redis_client:
        return
    async with _init_lock:
        if _redis_client:
            return
        settings = get_settings()
        try:
            client = redis.from_url(settings.redis_dsn, decode_responses=True)
            await client.ping()
            _redis_client = client
            logger.info("redis_connected")
        except (redis.RedisError, OSError) as e:
            logger.warning("redis_init_failed", extra={"error": str(e)})
            _redis_client = None


def get_client() -> Optional[redis.Redis]:
    return _redis_client


async def redis_healthy() -> bool:
    if not _redis_client:
        return False
    try:
        await _redis_client.ping()
        return True
    except (redis.RedisError, OSError):
        return False


async def close_redis() -> None:
    global _redis_client
    if _redis_client is None:
        return
    try:
        await _redis_client.aclose()
    finally:
        _redis_client = None
