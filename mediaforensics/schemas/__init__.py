from mediaforensics.schemas.audio import AudioForensicReport
from mediaforensics.schemas.face import FaceDetection, FaceDetectionResult
from mediaforensics.schemas.image import ImageForensicReport
from mediaforensics.schemas.patterns import (
    AlertEvent,
    NoveltySummary,
    PatternSignature,
    SoftwareSignature,
)
from mediaforensics.schemas.report import CaseReport, JobStatus, Verdict

__all__ = [
    "AudioForensicReport",
    "FaceDetection",
    "FaceDetectionResult",
    "ImageForensicReport",
    "AlertEvent",
    "NoveltySummary",
    "PatternSignature",
    "SoftwareSignature",
    "CaseReport",
    "JobStatus",
    "Verdict",
]
