from typing import Optional

from mediaforensics.schemas.base import AnalyzerResult, ReportModel


class ELAResult(AnalyzerResult):
    max_difference: float
    average_difference: float
    suspicious_areas: int               # pixel count above the ELA threshold
    image_data_url: Optional[str] = None


class NoiseResult(AnalyzerResult):
    noise_level: float
    uniformity: float                   # 0-1, 1 = perfectly uniform


class HistogramResult(AnalyzerResult):
    red_channel: list[int]
    green_channel: list[int]
    blue_channel: list[int]
    total_gaps: int
    total_peaks: int


class FrequencyResult(AnalyzerResult):
    blockiness: float
    compression_artifacts: float
    high_frequency_ratio: float


class MetadataResult(AnalyzerResult):
    """`score` is the flag-count proxy, min(100, 25·#flags)."""
    has_exif: bool
    software: Optional[str] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    date_time: Optional[str] = None
    suspicious_flags: list[str] = []


class SuspiciousRegion(ReportModel):
    x: float            # percent of image width
    y: float            # percent of image height
    width: float
    height: float
    intensity: float    # 0-1
    reason: str


class ImageForensicReport(ReportModel):
    ela: Optional[ELAResult] = None
    noise: Optional[NoiseResult] = None
    histogram: Optional[HistogramResult] = None
    frequency: Optional[FrequencyResult] = None
    metadata: Optional[MetadataResult] = None
    overall_score: int
    suspicious_regions: list[SuspiciousRegion] = []
    failed_analyzers: list[str] = []

    @property
    def findings(self) -> list[str]:
        merged: list[str] = []
        for part in (self.ela, self.noise, self.histogram, self.frequency, self.metadata):
            if part is not None:
                merged.extend(part.findings)
        return merged
