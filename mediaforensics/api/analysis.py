"""
Analysis routes: /analyze/image and /analyze/audio

Both accept multipart/form-data with a 'file' field. The image route also
takes an optional 'faces' field: a JSON list of externally detected faces
({box, landmarks, expressions}); when absent the server-side detector is used
if one is configured.

An optional 'context' field is stored with any new catalog pattern.
"""

import os
import json
import asyncio
import logging
from typing import Optional

import psutil
from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile
from pydantic import TypeAdapter, ValidationError

from mediaforensics.core.dependencies import get_detector, get_tracker
from mediaforensics.core.errors import AnalysisCancelled, AnalysisUnavailable
from mediaforensics.core.file_validator import sanitize_log_message, validate_file
from mediaforensics.core.rate_limiter import rate_limit_dependency
from mediaforensics.forensics.buffers import MediaFile
from mediaforensics.forensics.face_detector import FaceDetectorProvider
from mediaforensics.forensics.pipeline import analyze_audio_case, analyze_image_case
from mediaforensics.novelty.tracker import MetadataNoveltyTracker
from mediaforensics.schemas.face import FaceDetection
from mediaforensics.schemas.report import CaseReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["Analysis"], dependencies=[Depends(rate_limit_dependency)])

_faces_adapter = TypeAdapter(list[FaceDetection])


def log_memory(stage: str):
    """Log current memory usage."""
    process = psutil.Process(os.getpid())
    mem_info = process.memory_info()
    sys_mem = psutil.virtual_memory()

    logger.info(
        f"[MEMORY] {stage} | "
        f"Process RSS: {mem_info.rss / 1024 / 1024:.2f} MB | "
        f"System Available: {sys_mem.available / 1024 / 1024:.2f} MB"
    )


async def _read_upload(request: Request, kind: str) -> tuple[MediaFile, dict]:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" not in content_type:
        raise HTTPException(
            status_code=415,
            detail="Unsupported Media Type. Use multipart/form-data"
        )

    form = await request.form()
    file_obj = form.get("file")
    if file_obj is None:
        raise HTTPException(status_code=400, detail="Must provide 'file' in form data")
    if not isinstance(file_obj, UploadFile) and not hasattr(file_obj, "read"):
        raise HTTPException(status_code=400, detail="Invalid file upload format")

    data = await file_obj.read()
    filename = file_obj.filename or f"uploaded_{kind}"
    validate_file(filename, len(data), data, kind=kind)

    fields = {k: v for k, v in form.items() if isinstance(v, str)}
    return MediaFile(data=data, filename=filename, content_type=file_obj.content_type or ""), fields


def _parse_faces(raw: Optional[str]) -> Optional[list[FaceDetection]]:
    if raw is None or raw == "":
        return None
    try:
        return _faces_adapter.validate_json(raw)
    except ValidationError as e:
        logger.warning(f"[ROUTE] Invalid 'faces' field: {e.error_count()} errors")
        raise HTTPException(status_code=400, detail="Invalid 'faces' JSON")


async def _run_case(request: Request, media: MediaFile, run) -> CaseReport:
    """Run a case, cancelling it when the client goes away."""
    cancel_event = asyncio.Event()

    async def watch_disconnect():
        try:
            while not cancel_event.is_set():
                if await request.is_disconnected():
                    logger.info(f"[ROUTE] Client disconnected, cancelling {media.filename}")
                    cancel_event.set()
                    return
                await asyncio.sleep(0.5)
        except RuntimeError as e:
            logger.debug(f"[ROUTE] Disconnect watcher stopped: {e}")

    watcher = asyncio.create_task(watch_disconnect())
    try:
        return await run(cancel_event)
    except AnalysisUnavailable as e:
        logger.error(f"[ROUTE] No modality produced a score for {media.filename}: {e.failures}")
        raise HTTPException(
            status_code=503,
            detail={"message": "Analysis unavailable", "failures": e.failures},
        )
    except AnalysisCancelled:
        raise HTTPException(status_code=499, detail="Request cancelled")
    except Exception as e:
        logger.error(f"[ROUTE] Analysis crashed: {sanitize_log_message(str(e))}")
        raise HTTPException(status_code=500, detail="Analysis failed")
    finally:
        watcher.cancel()


@router.post("/image", response_model=CaseReport)
async def analyze_image(
    request: Request,
    tracker: Optional[MetadataNoveltyTracker] = Depends(get_tracker),
    detector: Optional[FaceDetectorProvider] = Depends(get_detector),
):
    """Pixel forensics, face geometry and metadata novelty for one image."""
    media, fields = await _read_upload(request, "image")
    faces = _parse_faces(fields.get("faces"))
    context = fields.get("context") or "api"

    log_memory(f"Pre-Analyze: {media.filename}")
    report = await _run_case(
        request,
        media,
        lambda cancel_event: analyze_image_case(
            media,
            faces,
            tracker=tracker,
            detector=detector,
            cancel_event=cancel_event,
            detection_context=context,
        ),
    )
    log_memory(f"Post-Analyze: {media.filename}")
    return report


@router.post("/audio", response_model=CaseReport)
async def analyze_audio(
    request: Request,
    tracker: Optional[MetadataNoveltyTracker] = Depends(get_tracker),
):
    """Signal forensics and sample-rate novelty for one WAV file."""
    media, fields = await _read_upload(request, "audio")
    context = fields.get("context") or "api"

    return await _run_case(
        request,
        media,
        lambda cancel_event: analyze_audio_case(
            media,
            tracker=tracker,
            cancel_event=cancel_event,
            detection_context=context,
        ),
    )
