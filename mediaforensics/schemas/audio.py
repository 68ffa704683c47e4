from mediaforensics.schemas.base import AnalyzerResult, ReportModel


class SpectralResult(AnalyzerResult):
    """`score` mirrors naturalness (higher = more natural)."""
    dominant_frequencies: list[int]
    frequency_distribution: str     # "Natural" | "Irregular"
    naturalness: int
    spectral_entropy: float


class TemporalResult(AnalyzerResult):
    """`score` mirrors rhythm consistency."""
    silence_patterns: str
    silence_ratio: float
    rhythm_consistency: int
    transition_smoothness: str
    sudden_transitions: int


class NoiseProfileResult(AnalyzerResult):
    """`score` is 100 with no inconsistencies, lower otherwise."""
    background_noise: str
    noise_floor: float
    inconsistencies: list[str] = []


class CompressionResult(AnalyzerResult):
    codec: str
    quality: str
    artifacts: list[str] = []


class VoicePatternResult(AnalyzerResult):
    """`score` mirrors pitch variation."""
    estimated_pitch: float
    pitch_variation: int
    formant_consistency: str
    breath_patterns: str
    pause_count: int
    natural_pauses: bool


class AudioForensicReport(ReportModel):
    """overall_score is an authenticity score: higher = more natural."""
    spectral: SpectralResult
    temporal: TemporalResult
    noise: NoiseProfileResult
    compression: CompressionResult
    voice_patterns: VoicePatternResult
    overall_score: int
    duration_sec: float
    sample_rate: int
    findings: list[str] = []

    @property
    def suspicion_score(self) -> int:
        return 100 - self.overall_score
