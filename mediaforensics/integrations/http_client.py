"""
aiohttp session for alert webhook delivery.

The lifespan opens one session and closes it on shutdown. `request_session()`
hands out that session, or a short-lived one when the app has not started
(background tasks during tests, scripts calling the emitter directly).
Every session is bounded by `alert_webhook_timeout_sec`.
"""

import logging
from contextlib import asynccontextmanager

import aiohttp

from mediaforensics.config import settings

logger = logging.getLogger(__name__)

session: aiohttp.ClientSession | None = None


def _timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=settings.alert_webhook_timeout_sec)


async def initialize() -> None:
    global session
    session = aiohttp.ClientSession(timeout=_timeout())
    logger.info(f"[STARTUP] Webhook session open (timeout {settings.alert_webhook_timeout_sec}s)")


async def close() -> None:
    global session
    if session and not session.closed:
        await session.close()
        logger.info("[SHUTDOWN] Webhook session closed")
    session = None


@asynccontextmanager
async def request_session():
    if session and not session.closed:
        yield session
        return

    temporary = aiohttp.ClientSession(timeout=_timeout())
    try:
        yield temporary
    finally:
        await temporary.close()
