"""
Case-level score fusion and the per-job state machine.

Modalities are fused with fixed weights renormalized over the ones that
succeeded. A failed or timed-out modality makes the report partial and is
named in `missing_modalities`; an image analyzer that raised is named in
the findings. Novelty-tracker suspicion is added as a finding only; it never
moves the numeric score.
"""

import uuid
import logging
from typing import Iterable, Optional

from mediaforensics.config import settings
from mediaforensics.core.errors import AnalysisUnavailable, InvalidTransition
from mediaforensics.schemas.audio import AudioForensicReport
from mediaforensics.schemas.face import FaceDetectionResult
from mediaforensics.schemas.image import ImageForensicReport
from mediaforensics.schemas.patterns import NoveltySummary
from mediaforensics.schemas.report import CaseReport, JobStatus, ModalityOutcome, Verdict

logger = logging.getLogger(__name__)

TRANSITIONS = {
    JobStatus.SUBMITTED: {JobStatus.EXTRACTING, JobStatus.FAILED},
    JobStatus.EXTRACTING: {JobStatus.AGGREGATING, JobStatus.FAILED},
    JobStatus.AGGREGATING: {JobStatus.SCORED, JobStatus.FAILED},
    JobStatus.SCORED: set(),
    JobStatus.FAILED: set(),
}


class AnalysisJob:
    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id or uuid.uuid4().hex
        self.status = JobStatus.SUBMITTED
        self.history = [JobStatus.SUBMITTED]
        self.error: Optional[str] = None

    def advance(self, new_status: JobStatus) -> None:
        if new_status not in TRANSITIONS[self.status]:
            raise InvalidTransition(f"{self.status.value} -> {new_status.value}")
        logger.debug(f"[PIPELINE] job {self.job_id[:8]}: {self.status.value} -> {new_status.value}")
        self.status = new_status
        self.history.append(new_status)

    def fail(self, reason: str) -> None:
        self.error = reason
        if self.status not in (JobStatus.SCORED, JobStatus.FAILED):
            self.advance(JobStatus.FAILED)


def verdict_for(score: float) -> Verdict:
    if score >= settings.verdict_fake_threshold:
        return Verdict.LIKELY_FAKE
    if score >= settings.verdict_suspicious_threshold:
        return Verdict.SUSPICIOUS
    return Verdict.AUTHENTIC


def dedupe_findings(groups: Iterable[Iterable[str]]) -> list[str]:
    seen = set()
    merged = []
    for group in groups:
        for finding in group:
            if finding not in seen:
                seen.add(finding)
                merged.append(finding)
    return merged


def novelty_findings(novelty: NoveltySummary) -> list[str]:
    findings = []
    for pattern in novelty.patterns:
        if pattern.is_suspicious:
            rarity = f"{pattern.rarity_score:.0f}" if pattern.rarity_score is not None else "unknown"
            label = f" ({pattern.software_match})" if pattern.software_match else ""
            findings.append(f"Suspicious metadata pattern: {pattern.anomaly_type}{label}, rarity {rarity}")
        elif pattern.is_never_seen_before:
            findings.append(f"Never-seen-before metadata pattern: {pattern.anomaly_type}")
    if novelty.status in ("unknown", "partial"):
        findings.append("Pattern catalog unavailable: rarity unknown for some metadata patterns")
    return findings


def aggregate(
    job: AnalysisJob,
    outcomes: list[ModalityOutcome],
    image: Optional[ImageForensicReport] = None,
    faces: Optional[FaceDetectionResult] = None,
    audio: Optional[AudioForensicReport] = None,
    novelty: Optional[NoveltySummary] = None,
) -> CaseReport:
    """
    Fuse per-modality suspicion scores into a CaseReport.

    Raises AnalysisUnavailable (and fails the job) when no modality succeeded.
    """
    job.advance(JobStatus.AGGREGATING)
    novelty = novelty or NoveltySummary(status="none")

    succeeded = [o for o in outcomes if o.status == "ok" and o.score is not None]
    if not succeeded:
        failures = {o.name: o.error or o.status for o in outcomes if o.status != "skipped"}
        job.fail("all modalities failed")
        raise AnalysisUnavailable(failures)

    weights = settings.modality_weights
    total_weight = sum(weights[o.name] for o in succeeded)
    overall = round(sum(weights[o.name] * o.score for o in succeeded) / total_weight)
    overall = min(100, max(0, overall))

    missing = [o.name for o in outcomes if o.status in ("failed", "timeout")]

    groups = []
    if image is not None:
        groups.append(image.findings)
        groups.append(f"{name} analysis unavailable" for name in image.failed_analyzers)
    if faces is not None and faces.faces_detected:
        groups.append(faces.anomalies)
    if audio is not None:
        groups.append(audio.findings)
    groups.append(novelty_findings(novelty))
    groups.append(f"{name} analysis unavailable" for name in missing)

    job.advance(JobStatus.SCORED)
    verdict = verdict_for(overall)
    logger.info(
        f"[PIPELINE] job {job.job_id[:8]} scored {overall} ({verdict.value})"
        + (f", missing={missing}" if missing else "")
    )

    return CaseReport(
        job_id=job.job_id,
        status=job.status,
        verdict=verdict,
        overall_score=overall,
        is_partial=bool(missing),
        missing_modalities=missing,
        modalities=outcomes,
        findings=dedupe_findings(groups),
        image=image,
        faces=faces,
        audio=audio,
        novelty=novelty,
    )
