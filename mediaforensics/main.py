import os
import time
import asyncio
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Load environment variables at the very beginning
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from mediaforensics.api import analysis, patterns, system  # noqa: E402
from mediaforensics.core import rate_limiter  # noqa: E402
from mediaforensics.forensics.face_detector import FaceDetectorProvider  # noqa: E402
from mediaforensics.integrations import firebase, http_client, redis_client  # noqa: E402
from mediaforensics.novelty.alerts import AlertEmitter  # noqa: E402
from mediaforensics.novelty.firestore_store import FirestoreCatalogStore  # noqa: E402
from mediaforensics.novelty.store import InMemoryCatalogStore  # noqa: E402
from mediaforensics.novelty.tracker import MetadataNoveltyTracker  # noqa: E402

cleanup_task = None


async def periodic_cleanup():
    """Prune idle in-memory rate-limit entries and log memory every 5 minutes."""
    while True:
        try:
            await asyncio.sleep(300)
            rate_limiter._cleanup_all_limits(time.time())
            analysis.log_memory("Periodic")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"[CLEANUP] Error in periodic cleanup: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    global cleanup_task

    firebase.initialize()
    redis_client.initialize()
    await http_client.initialize()

    if firebase.db is not None:
        app.state.store = FirestoreCatalogStore()
        logger.info("[STARTUP] Pattern catalog: Firestore")
    else:
        app.state.store = InMemoryCatalogStore()
        logger.warning("[STARTUP] Pattern catalog: in-memory (not shared across workers)")

    app.state.emitter = AlertEmitter()
    app.state.tracker = MetadataNoveltyTracker(app.state.store, app.state.emitter)
    app.state.detector = FaceDetectorProvider()
    if not app.state.detector.is_configured:
        logger.warning("[STARTUP] No landmark model configured; face analysis needs client-supplied faces")

    if not os.getenv("TESTING"):
        cleanup_task = asyncio.create_task(periodic_cleanup())
        logger.info("[STARTUP] Background cleanup task started")

    yield

    if cleanup_task:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        cleanup_task = None
        logger.info("[SHUTDOWN] Background cleanup task stopped")

    await app.state.emitter.drain()
    await http_client.close()


app = FastAPI(title="Media Forensics & Pattern Novelty API", lifespan=lifespan)


# Error responses carry CORS headers so browser clients can read the JSON body.
@app.exception_handler(StarletteHTTPException)
async def custom_http_exception_handler(request: Request, exc: StarletteHTTPException):
    headers = dict(getattr(exc, "headers", None) or {})
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "*"
    headers["Access-Control-Allow-Headers"] = "*"

    # Drain the upload so the connection is not reset when rejecting early.
    try:
        async for _ in request.stream():
            pass
    except Exception as e:
        logger.debug(f"Request stream already consumed: {e}")

    logger.info(f"[ERROR HANDLER] Returning {exc.status_code} to client: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(system.router)
app.include_router(analysis.router)
app.include_router(patterns.router)
