from enum import Enum
from typing import Literal, Optional

from mediaforensics.schemas.audio import AudioForensicReport
from mediaforensics.schemas.base import ReportModel
from mediaforensics.schemas.face import FaceDetectionResult
from mediaforensics.schemas.image import ImageForensicReport
from mediaforensics.schemas.patterns import NoveltySummary


class Verdict(str, Enum):
    AUTHENTIC = "authentic"
    SUSPICIOUS = "suspicious"
    LIKELY_FAKE = "likely-fake"


class JobStatus(str, Enum):
    SUBMITTED = "submitted"
    EXTRACTING = "extracting"
    AGGREGATING = "aggregating"
    SCORED = "scored"
    FAILED = "failed"


class ModalityOutcome(ReportModel):
    name: str                                       # "image" | "faces" | "audio"
    status: Literal["ok", "failed", "timeout", "skipped"]
    score: Optional[int] = None                     # suspicion, 0-100
    error: Optional[str] = None


class CaseReport(ReportModel):
    job_id: str
    status: JobStatus
    verdict: Verdict
    overall_score: int
    is_partial: bool = False
    missing_modalities: list[str] = []
    modalities: list[ModalityOutcome] = []
    findings: list[str] = []
    image: Optional[ImageForensicReport] = None
    faces: Optional[FaceDetectionResult] = None
    audio: Optional[AudioForensicReport] = None
    novelty: NoveltySummary = NoveltySummary(status="none")
