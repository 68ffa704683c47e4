"""
Fire-and-forget delivery of rare-pattern alerts.

`AlertEmitter.emit` schedules delivery as a background task and returns
immediately. One alert per signature is sent per dedupe window, guarded by a
Redis `SET NX EX` lock (`alert:{signature}`) or an in-memory fallback.
Delivery goes to the configured webhook, or to the log when none is set.

The Redis client is accessed at call-time via the integration module so it
picks up the instance initialized during the FastAPI lifespan.
"""

import time
import asyncio
import logging
from typing import Dict, Optional

from mediaforensics.config import settings
from mediaforensics.integrations import http_client
from mediaforensics.integrations import redis_client as redis_module
from mediaforensics.schemas.patterns import AlertEvent, NoveltyResult

logger = logging.getLogger(__name__)


def should_alert(result: NoveltyResult) -> bool:
    """First sightings at or above the never-seen bar, or rare suspicious patterns."""
    if result.status != "tracked" or result.rarity_score is None:
        return False
    if result.is_never_seen_before and result.rarity_score >= settings.never_seen_alert_threshold:
        return True
    return result.is_suspicious and result.rarity_score > settings.suspicious_rarity_threshold


def build_alert(
    result: NoveltyResult,
    file_name: str,
    detection_context: str,
    pattern_data: Optional[dict] = None,
) -> AlertEvent:
    level = "critical" if result.is_never_seen_before else "warning"
    return AlertEvent(
        pattern_signature=result.signature,
        anomaly_type=result.anomaly_type,
        rarity_score=result.rarity_score,
        file_name=file_name,
        is_suspicious=result.is_suspicious,
        detection_context=detection_context,
        alert_level=level,
        pattern_data=pattern_data or {},
    )


class AlertEmitter:
    def __init__(self, webhook_url: Optional[str] = None, dedupe_ttl_sec: Optional[int] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.alert_webhook_url
        self.dedupe_ttl_sec = dedupe_ttl_sec or settings.alert_dedupe_ttl_sec
        self._local_locks: Dict[str, float] = {}
        self._tasks: set[asyncio.Task] = set()

    def emit(self, event: AlertEvent) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _acquire(self, signature: str) -> bool:
        rc = redis_module.client
        if rc:
            try:
                return bool(rc.set(f"alert:{signature}", "1", nx=True, ex=self.dedupe_ttl_sec))
            except Exception as e:
                logger.warning(f"[ALERT] Redis dedupe failed: {e}. Falling back to memory.")

        now = time.time()
        self._prune_locks(now)
        if signature in self._local_locks:
            return False
        self._local_locks[signature] = now + self.dedupe_ttl_sec
        return True

    def _prune_locks(self, now: float) -> None:
        expired = [sig for sig, expires in self._local_locks.items() if expires <= now]
        for sig in expired:
            del self._local_locks[sig]

    async def _deliver(self, event: AlertEvent) -> bool:
        if not self._acquire(event.pattern_signature):
            logger.info(f"[ALERT] Duplicate suppressed for {event.pattern_signature[:12]}")
            return False

        if not self.webhook_url:
            logger.warning(
                f"[ALERT] {event.alert_level.upper()} {event.anomaly_type} "
                f"rarity={event.rarity_score} suspicious={event.is_suspicious} "
                f"context={event.detection_context} signature={event.pattern_signature[:12]}"
            )
            return True

        try:
            async with http_client.request_session() as sess:
                async with sess.post(
                    self.webhook_url, json=event.model_dump(mode="json", by_alias=True)
                ) as response:
                    if response.status >= 400:
                        logger.error(f"[ALERT] Webhook returned {response.status}")
                        return False
            logger.info(f"[ALERT] Delivered {event.alert_level} alert for {event.pattern_signature[:12]}")
            return True
        except Exception as e:
            logger.error(f"[ALERT] Webhook delivery failed: {e}")
            return False
