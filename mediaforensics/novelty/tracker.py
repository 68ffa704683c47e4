"""
MetadataNoveltyTracker: classifies how rare a metadata/software fingerprint is.

Every candidate is submitted to the catalog through one atomic upsert. The
call runs off the event loop, is bounded by `catalog_timeout_sec`, and is
retried once with the same observation id. When the catalog stays
unreachable the pattern is reported with status "unknown" and no rarity,
and the surrounding analysis carries on.
"""

import uuid
import asyncio
import logging
from typing import Optional, Sequence

from mediaforensics.config import settings
from mediaforensics.core.errors import CatalogUnavailable
from mediaforensics.novelty.alerts import AlertEmitter, build_alert, should_alert
from mediaforensics.novelty.software_catalog import match_software
from mediaforensics.novelty.store import CatalogStore
from mediaforensics.schemas.patterns import (
    NoveltyResult,
    NoveltySummary,
    PatternCandidate,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)

RECOMMENDATIONS = (
    ("software_ai", "AI generation software detected - high likelihood of synthetic content"),
    ("software_deepfake", "Deepfake tool signature found - treat with extreme caution"),
    ("exif_missing", "Missing EXIF data suggests stripped metadata or screenshot"),
    ("filename_ai", "Filename patterns suggest AI-generated origin"),
    ("timestamp", "Timestamp anomalies indicate potential manipulation"),
)


class MetadataNoveltyTracker:
    def __init__(
        self,
        store: CatalogStore,
        emitter: Optional[AlertEmitter] = None,
        timeout_sec: Optional[float] = None,
        retries: Optional[int] = None,
    ):
        self.store = store
        self.emitter = emitter
        self.timeout_sec = timeout_sec if timeout_sec is not None else settings.catalog_timeout_sec
        self.retries = retries if retries is not None else settings.catalog_retries

    async def _upsert(self, candidate: PatternCandidate, **kwargs) -> Optional[UpsertOutcome]:
        observation_id = uuid.uuid4().hex
        for attempt in range(1 + self.retries):
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(self.store.upsert, candidate, observation_id, **kwargs),
                    timeout=self.timeout_sec,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"[NOVELTY] Catalog upsert timed out after {self.timeout_sec}s "
                    f"(attempt {attempt + 1}/{1 + self.retries})"
                )
            except CatalogUnavailable as e:
                logger.warning(f"[NOVELTY] Catalog unavailable: {e}")
                return None
            except Exception as e:
                logger.error(f"[NOVELTY] Catalog upsert failed: {e}")
                return None
        return None

    async def track(
        self,
        candidate: PatternCandidate,
        file_name: str = "",
        detection_context: str = "unknown",
    ) -> NoveltyResult:
        software = match_software(candidate.software)
        high_risk = bool(software and software.is_high_risk)

        outcome = await self._upsert(
            candidate,
            file_name=file_name,
            detection_context=detection_context,
            high_risk_software=high_risk,
        )

        if outcome is None:
            return NoveltyResult(
                signature=candidate.signature,
                anomaly_type=candidate.anomaly_type,
                status="unknown",
                is_suspicious=high_risk,
                software_match=software.software_name if software else None,
            )

        if software:
            try:
                await asyncio.to_thread(self.store.record_software_match, software.software_name)
            except Exception as e:
                logger.warning(f"[NOVELTY] Could not count software match {software.software_name}: {e}")

        record = outcome.record
        result = NoveltyResult(
            signature=record.signature,
            anomaly_type=record.anomaly_type,
            status="tracked",
            rarity_score=record.rarity_score,
            occurrence_count=record.occurrence_count,
            is_never_seen_before=outcome.created,
            is_suspicious=record.is_suspicious,
            software_match=software.software_name if software else None,
        )
        logger.info(
            f"[NOVELTY] {record.anomaly_type} {record.signature[:12]}: "
            f"count={record.occurrence_count} rarity={record.rarity_score} "
            f"new={outcome.created} suspicious={record.is_suspicious}"
        )

        if self.emitter and should_alert(result):
            self.emitter.emit(build_alert(result, file_name, detection_context, candidate.pattern_data))

        return result

    async def track_all(
        self,
        candidates: Sequence[PatternCandidate],
        file_name: str = "",
        detection_context: str = "unknown",
    ) -> NoveltySummary:
        if not candidates:
            return NoveltySummary(status="none")

        results = await asyncio.gather(
            *(self.track(c, file_name, detection_context) for c in candidates)
        )
        return summarize(list(results))


def overall_risk_score(results: Sequence[NoveltyResult]) -> int:
    """
    Average of (100 - rarity) over the suspicious patterns plus 10 points per
    suspicious pattern, capped at 100. Patterns with unknown rarity only add
    their 10 points.
    """
    suspicious = [r for r in results if r.is_suspicious]
    if not suspicious:
        return 0
    known = [r.rarity_score for r in suspicious if r.rarity_score is not None]
    avg_commonness = sum(100.0 - r for r in known) / len(known) if known else 0.0
    return round(min(100.0, avg_commonness + len(suspicious) * 10))


def recommendations_for(results: Sequence[NoveltyResult]) -> list[str]:
    types = [r.anomaly_type for r in results]
    recs = [text for prefix, text in RECOMMENDATIONS if any(t.startswith(prefix) for t in types)]
    if any(r.is_never_seen_before for r in results):
        recs.append("Never-seen-before metadata pattern - possibly a new generation tool")
    return recs


def summarize(results: list[NoveltyResult]) -> NoveltySummary:
    tracked = sum(1 for r in results if r.status == "tracked")
    if tracked == len(results):
        status = "tracked"
    elif tracked == 0:
        status = "unknown"
    else:
        status = "partial"

    return NoveltySummary(
        status=status,
        patterns=results,
        overall_risk_score=overall_risk_score(results),
        recommendations=recommendations_for(results),
        never_seen_before=[r.signature for r in results if r.is_never_seen_before],
        known_suspicious=[r.signature for r in results if r.is_suspicious],
    )
