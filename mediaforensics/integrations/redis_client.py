"""
Upstash Redis connection shared by the report cache, alert dedupe and the
rate limiter.

`client` stays None until the lifespan calls `initialize()`, and stays None
when `UPSTASH_REDIS_HOST` / `UPSTASH_REDIS_PASSWORD` are unset. Callers read
`redis_client.client` on every use and take their in-memory path on None.
"""

import logging

from upstash_redis import Redis

from mediaforensics.config import settings

logger = logging.getLogger(__name__)

client = None  # Redis | None


def initialize() -> None:
    global client

    if not (settings.upstash_redis_host and settings.upstash_redis_password):
        logger.warning("[STARTUP] Redis not configured; report cache and alert dedupe stay in memory")
        return

    try:
        client = Redis(url=settings.upstash_redis_host, token=settings.upstash_redis_password)
        logger.info(f"[STARTUP] Redis ready at {settings.upstash_redis_host}")
    except Exception as e:
        client = None
        logger.error(f"[STARTUP] Redis unavailable, falling back to memory: {e}")
