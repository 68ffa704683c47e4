"""
Case pipeline: the public entry point for the /analyze routes.

`analyze_image_case` and `analyze_audio_case` orchestrate:
  1. Decode once into a read-only buffer (shared by every extractor)
  2. Run each modality as its own task, bounded by `modality_timeout_sec`
  3. Track metadata patterns in the novelty catalog alongside extraction
  4. Aggregate into a CaseReport (partial when a modality is missing)

A caller-supplied asyncio.Event cancels the job; it is checked before each
modality starts and again before aggregation.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from mediaforensics.config import settings
from mediaforensics.core.errors import AnalysisCancelled, ExtractionTimeout, ForensicsError
from mediaforensics.forensics.aggregator import AnalysisJob, aggregate
from mediaforensics.forensics.audio_forensics import analyze_audio_forensics
from mediaforensics.forensics.buffers import ImageBuffer, MediaFile, decode_audio, decode_image
from mediaforensics.forensics.cache import get_cached_result, set_cached_result
from mediaforensics.forensics.face_detector import FaceDetectorProvider
from mediaforensics.forensics.face_geometry import analyze_faces
from mediaforensics.forensics.hashing import get_media_hash
from mediaforensics.forensics.image_forensics import read_exif_fields, run_forensic_analysis
from mediaforensics.novelty.patterns import extract_audio_patterns, extract_image_patterns
from mediaforensics.novelty.tracker import MetadataNoveltyTracker
from mediaforensics.schemas.audio import AudioForensicReport
from mediaforensics.schemas.face import FaceDetection, FaceDetectionResult
from mediaforensics.schemas.image import ImageForensicReport
from mediaforensics.schemas.patterns import NoveltySummary
from mediaforensics.schemas.report import CaseReport, JobStatus, ModalityOutcome

logger = logging.getLogger(__name__)


def _check_cancelled(job: AnalysisJob, cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        job.fail("cancelled")
        raise AnalysisCancelled(f"Job {job.job_id} was cancelled")


async def _run_modality(
    name: str,
    job: AnalysisJob,
    cancel_event: Optional[asyncio.Event],
    run: Callable[[], Awaitable],
    score_of: Callable,
):
    """Run one extractor under the modality timeout; never raises except on cancel."""
    _check_cancelled(job, cancel_event)
    timeout = settings.modality_timeout_sec
    try:
        try:
            result = await asyncio.wait_for(run(), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExtractionTimeout(f"Exceeded {timeout}s") from e
    except AnalysisCancelled:
        raise
    except ExtractionTimeout as e:
        logger.warning(f"[PIPELINE] {name} modality timed out: {e}")
        return ModalityOutcome(name=name, status="timeout", error=str(e)), None
    except ForensicsError as e:
        logger.warning(f"[PIPELINE] {name} modality failed: {e}")
        return ModalityOutcome(name=name, status="failed", error=str(e)), None
    except Exception as e:
        logger.error(f"[PIPELINE] {name} modality crashed: {e}")
        return ModalityOutcome(name=name, status="failed", error=type(e).__name__), None

    score = score_of(result)
    if score is None:
        return ModalityOutcome(name=name, status="skipped", error="Nothing to analyze"), result
    return ModalityOutcome(name=name, status="ok", score=score), result


async def _skipped(name: str, reason: str):
    return ModalityOutcome(name=name, status="skipped", error=reason), None


async def _cached_report(key: Optional[str], model, produce: Callable[[], Awaitable]):
    if key:
        cached = get_cached_result(key)
        if cached:
            return model.model_validate(cached)
    report = await produce()
    if key:
        set_cached_result(key, report.model_dump(mode="json"))
    return report


async def _track(
    tracker: Optional[MetadataNoveltyTracker],
    candidates_fn: Callable,
    file_name: str,
    detection_context: str,
) -> NoveltySummary:
    if tracker is None:
        return NoveltySummary(status="none")
    try:
        candidates = await asyncio.to_thread(candidates_fn)
        return await tracker.track_all(candidates, file_name, detection_context)
    except Exception as e:
        logger.error(f"[NOVELTY] Tracking failed: {e}")
        return NoveltySummary(status="unknown")


async def _decode(decoder: Callable, *args):
    try:
        return await asyncio.to_thread(decoder, *args), None
    except ForensicsError as e:
        logger.warning(f"[PIPELINE] Decode failed: {e}")
        return None, e


async def _faces_report(
    buffer: ImageBuffer,
    faces: Optional[list[FaceDetection]],
    detector: Optional[FaceDetectorProvider],
) -> FaceDetectionResult:
    if faces is None:
        await detector.ensure_ready()
        faces = await asyncio.to_thread(detector.detect, buffer)
    return await asyncio.to_thread(analyze_faces, buffer, faces)


async def analyze_image_case(
    media: MediaFile,
    faces: Optional[list[FaceDetection]] = None,
    *,
    tracker: Optional[MetadataNoveltyTracker] = None,
    detector: Optional[FaceDetectorProvider] = None,
    cancel_event: Optional[asyncio.Event] = None,
    detection_context: str = "unknown",
    use_cache: bool = True,
    job: Optional[AnalysisJob] = None,
) -> CaseReport:
    """
    Full image case: pixel forensics, face geometry and metadata novelty.

    `faces` is detector output supplied by the caller; when omitted the
    `detector` is used if it is configured, otherwise the face modality is
    skipped.
    """
    job = job or AnalysisJob()
    _check_cancelled(job, cancel_event)
    job.advance(JobStatus.EXTRACTING)
    logger.info(f"[PIPELINE] job {job.job_id[:8]}: image {media.filename} ({len(media.data)} bytes)")

    buffer, decode_error = await _decode(decode_image, media.data)

    async def image_modality():
        if buffer is None:
            raise decode_error
        key = get_media_hash(media, "image") if use_cache else None
        return await _cached_report(
            key, ImageForensicReport, lambda: run_forensic_analysis(buffer, media)
        )

    async def face_modality():
        if buffer is None:
            raise decode_error
        return await _faces_report(buffer, faces, detector)

    def image_candidates():
        exif = read_exif_fields(media.data)
        width = buffer.width if buffer is not None else None
        height = buffer.height if buffer is not None else None
        return extract_image_patterns(media, exif, width, height)

    face_enabled = faces is not None or (detector is not None and detector.is_configured)
    tasks = [
        _run_modality("image", job, cancel_event, image_modality, lambda r: r.overall_score),
        _run_modality(
            "faces", job, cancel_event, face_modality,
            lambda r: r.overall_score if r.faces_detected else None,
        ) if face_enabled else _skipped("faces", "No face detector configured"),
        _track(tracker, image_candidates, media.filename, detection_context),
    ]
    (image_outcome, image_report), (face_outcome, face_report), novelty = await asyncio.gather(*tasks)

    _check_cancelled(job, cancel_event)
    return aggregate(
        job,
        [image_outcome, face_outcome],
        image=image_report,
        faces=face_report,
        novelty=novelty,
    )


async def analyze_audio_case(
    media: MediaFile,
    *,
    tracker: Optional[MetadataNoveltyTracker] = None,
    cancel_event: Optional[asyncio.Event] = None,
    detection_context: str = "unknown",
    use_cache: bool = True,
    job: Optional[AnalysisJob] = None,
) -> CaseReport:
    """Audio case: signal forensics plus sample-rate profile novelty."""
    job = job or AnalysisJob()
    _check_cancelled(job, cancel_event)
    job.advance(JobStatus.EXTRACTING)
    logger.info(f"[PIPELINE] job {job.job_id[:8]}: audio {media.filename} ({len(media.data)} bytes)")

    buffer, decode_error = await _decode(decode_audio, media.data, media.content_type or "audio/wav")

    async def audio_modality():
        if buffer is None:
            raise decode_error
        key = get_media_hash(media, "audio") if use_cache else None
        return await _cached_report(
            key, AudioForensicReport, lambda: asyncio.to_thread(analyze_audio_forensics, buffer)
        )

    def audio_candidates():
        if buffer is None:
            return []
        return extract_audio_patterns(buffer.sample_rate, buffer.channels)

    (audio_outcome, audio_report), novelty = await asyncio.gather(
        _run_modality("audio", job, cancel_event, audio_modality, lambda r: r.suspicion_score),
        _track(tracker, audio_candidates, media.filename, detection_context),
    )

    _check_cancelled(job, cancel_event)
    return aggregate(job, [audio_outcome], audio=audio_report, novelty=novelty)
