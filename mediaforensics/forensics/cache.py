"""
Two-tier report cache: Redis (preferred) → Local Memory (fallback).

Only modality reports are cached. Novelty tracking always runs, since every
submission must be counted.

The Redis client is accessed at call-time via the integration module so that
it picks up the instance initialized during the FastAPI lifespan.
"""

import json
import time
import logging
from collections import OrderedDict
from typing import Optional

from mediaforensics.config import settings
from mediaforensics.integrations import redis_client as redis_module

logger = logging.getLogger(__name__)

local_cache: OrderedDict = OrderedDict()


def get_cached_result(key: str) -> Optional[dict]:
    """Retrieve a report from Redis (preferred) or Local Memory (fallback)."""
    rc = redis_module.client
    if rc:
        try:
            data = rc.get(f"forensic:{key}")
            if data:
                logger.info(f"[CACHE] Redis HIT for key: {key[:24]}")
                return json.loads(data)
            logger.info(f"[CACHE] Redis MISS for key: {key[:24]}")
            return None
        except Exception as e:
            logger.warning(f"[CACHE] Redis get failed: {e}")
            return None

    entry = local_cache.get(key)
    if entry:
        val, timestamp = entry
        if time.time() - timestamp < settings.local_cache_ttl_sec:
            logger.info(f"[CACHE] Local Memory HIT for key: {key[:24]}")
            local_cache.move_to_end(key)
            return val
        logger.info(f"[CACHE] Local Memory EXPIRED for key: {key[:24]}")
        del local_cache[key]
        return None

    return None


def set_cached_result(key: str, value: dict) -> None:
    """Store a report in Redis (TTL from settings) or Local Memory (fallback)."""
    rc = redis_module.client
    if rc:
        try:
            rc.set(f"forensic:{key}", json.dumps(value), ex=settings.report_cache_ttl_sec)
        except Exception as e:
            logger.warning(f"[CACHE] Redis set failed: {e}")
    else:
        if key in local_cache:
            local_cache.move_to_end(key)
        local_cache[key] = (value, time.time())
        if len(local_cache) > settings.local_cache_max_size:
            local_cache.popitem(last=False)
