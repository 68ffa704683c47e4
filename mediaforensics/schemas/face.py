from typing import Literal

from pydantic import BaseModel, Field

from mediaforensics.schemas.base import ReportModel


class Box(BaseModel):
    x: float
    y: float
    width: float
    height: float


class FaceDetection(BaseModel):
    """One detector output: pixel box, 68-point landmarks, expression scores."""
    box: Box
    landmarks: list[tuple[float, float]] = Field(default_factory=list)
    expressions: dict[str, float] = Field(default_factory=dict)


class LandmarkQuality(ReportModel):
    points: int
    out_of_bounds: int
    quality: Literal["good", "poor", "suspicious"]


class FaceAnalysis(ReportModel):
    id: int
    box: Box                            # percent of image size
    landmark_quality: LandmarkQuality
    symmetry: float                     # 0-1
    blur_score: float                   # 0-100, 100 = very sharp
    expressions: dict[str, float] = {}
    anomalies: list[str] = []


class FaceDetectionResult(ReportModel):
    faces_detected: int
    faces: list[FaceAnalysis] = []
    symmetry_score: float
    overall_score: int
    anomalies: list[str] = []
