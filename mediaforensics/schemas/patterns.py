from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from mediaforensics.schemas.base import ReportModel


class PatternSignature(ReportModel):
    """One catalog row. `signature` is unique; the row is never deleted."""
    signature: str
    anomaly_type: str
    pattern_data: dict[str, Any] = {}
    occurrence_count: int = Field(1, ge=1)
    first_seen: datetime
    last_seen: datetime
    rarity_score: float = Field(100.0, ge=0, le=100)
    is_suspicious: bool = False
    detection_context: str = "unknown"
    example_file_names: list[str] = []
    notes: Optional[str] = None
    recent_observations: list[str] = Field(default_factory=list, exclude=True)


class SoftwareSignature(ReportModel):
    signature_pattern: str          # case-insensitive regex
    software_name: str
    category: Literal["ai_generator", "deepfake_tool", "editor", "other"]
    risk_level: Literal["low", "medium", "high", "critical"]
    occurrence_count: int = 0
    is_verified: bool = True

    @property
    def is_high_risk(self) -> bool:
        return self.risk_level in ("high", "critical")


class PatternCandidate(ReportModel):
    """A normalized fingerprint ready for submission to the catalog."""
    anomaly_type: str
    signature: str
    pattern_data: dict[str, Any] = {}
    software: Optional[str] = None


class UpsertOutcome(ReportModel):
    record: PatternSignature
    created: bool
    total_count: int


class NoveltyResult(ReportModel):
    signature: str
    anomaly_type: str
    status: Literal["tracked", "unknown"]
    rarity_score: Optional[float] = None     # None when status == "unknown"
    occurrence_count: Optional[int] = None
    is_never_seen_before: bool = False
    is_suspicious: bool = False
    software_match: Optional[str] = None


class NoveltySummary(ReportModel):
    status: Literal["tracked", "partial", "unknown", "none"]
    patterns: list[NoveltyResult] = []
    overall_risk_score: int = 0
    recommendations: list[str] = []
    never_seen_before: list[str] = []
    known_suspicious: list[str] = []

    @property
    def is_suspicious(self) -> bool:
        return any(p.is_suspicious for p in self.patterns)


class AlertEvent(ReportModel):
    pattern_signature: str
    anomaly_type: str
    rarity_score: float
    file_name: str
    is_suspicious: bool
    detection_context: str
    alert_level: Literal["critical", "warning"]
    pattern_data: dict[str, Any] = {}
