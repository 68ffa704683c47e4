"""
Central engine configuration.

Every tunable value lives here as a typed, documented field.
Any field can be overridden at runtime via an environment variable of the
same name (case-insensitive), e.g.:

    ELA_QUALITY=85 uvicorn mediaforensics.main:app     # one-off experiment
    export CATALOG_TIMEOUT_SEC=0.5                      # staging override

A `.env` file at the project root is loaded automatically.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,   # ELA_QUALITY == ela_quality
        extra="ignore",         # silently drop unknown env vars
    )

    # ------------------------------------------------------------------ #
    # File Size Limits                                                    #
    # ------------------------------------------------------------------ #
    max_image_upload_mb: int = Field(
        20, description="Max MB for multipart image uploads"
    )
    max_audio_upload_mb: int = Field(
        50, description="Max MB for multipart audio uploads"
    )
    pil_max_image_pixels: int = Field(
        20_000_000, description="PIL decompression-bomb guard (pixels)"
    )

    # ------------------------------------------------------------------ #
    # Rate Limiting                                                       #
    # ------------------------------------------------------------------ #
    rate_limit_request_window_sec: int = Field(
        60, description="Sliding window for per-client /analyze requests (seconds)"
    )
    rate_limit_max_requests: int = Field(
        30, description="Max /analyze requests allowed within the window"
    )
    rate_limit_memory_limit: int = Field(
        1000, description="Max keys before in-memory rate-limit map is pruned"
    )

    # ------------------------------------------------------------------ #
    # Image: Error Level Analysis                                         #
    # ------------------------------------------------------------------ #
    ela_quality: int = Field(90, description="JPEG quality used for the re-encode")
    ela_threshold: float = Field(15.0, description="Mean channel diff above this → suspicious pixel")
    ela_visual_gain: float = Field(15.0, description="Diff-map amplification for visibility")
    ela_include_diff_map: bool = Field(True, description="Embed the PNG diff map in the report")

    # ------------------------------------------------------------------ #
    # Image: Histogram / Regions                                          #
    # ------------------------------------------------------------------ #
    histogram_max_gaps_per_channel: int = Field(
        64, description="Stop counting gaps in one channel after this many"
    )
    histogram_max_peaks_per_channel: int = Field(
        32, description="Stop counting peaks in one channel after this many"
    )
    region_grid_size: int = Field(32, description="Cell size (px) for the suspicious-region grid")
    region_intensity_scale: float = Field(30.0, description="Edge intensity mapped to 1.0")
    region_min_intensity: float = Field(0.4, description="Keep cells above this normalized intensity")
    region_high_intensity: float = Field(0.7, description="'High edge complexity' above this")
    region_max_count: int = Field(6, description="Max suspicious regions returned")

    # ------------------------------------------------------------------ #
    # Image: Overall weights                                              #
    # ------------------------------------------------------------------ #
    weight_ela: float = Field(0.35, description="ELA share of the image score")
    weight_noise: float = Field(0.20, description="Noise share of the image score")
    weight_histogram: float = Field(0.15, description="Histogram share of the image score")
    weight_frequency: float = Field(0.20, description="Frequency share of the image score")
    weight_metadata: float = Field(0.10, description="Metadata flag-proxy share of the image score")
    metadata_flag_points: int = Field(25, description="Metadata proxy points per suspicious flag")

    # ------------------------------------------------------------------ #
    # Audio                                                               #
    # ------------------------------------------------------------------ #
    audio_fft_size: int = Field(2048, description="Spectral analysis window (samples)")
    audio_dominant_magnitude: float = Field(50.0, description="Magnitude above this → dominant bin")
    audio_gap_hz: float = Field(2000.0, description="Adjacent dominant gap above this → artifact")
    audio_harmonic_tolerance_hz: float = Field(50.0, description="Harmonic match tolerance")
    audio_energy_window_sec: float = Field(0.05, description="Temporal energy window (50 ms)")
    audio_noise_window: int = Field(1024, description="Noise-profile window (samples)")
    audio_pause_window_sec: float = Field(0.1, description="Pause-candidate window (100 ms)")

    # ------------------------------------------------------------------ #
    # Faces                                                               #
    # ------------------------------------------------------------------ #
    face_crop_padding: int = Field(10, description="Padding (px) around a face box for blur")
    face_cascade_path: str = Field(
        "", description="Haar cascade XML; empty → OpenCV's bundled frontal-face model"
    )
    face_landmark_model_path: str = Field(
        "", description="LBF facemark model (lbfmodel.yaml); empty → detector unavailable"
    )

    # ------------------------------------------------------------------ #
    # Case aggregation                                                    #
    # ------------------------------------------------------------------ #
    modality_weight_image: float = Field(0.6, description="Image forensics share of a case score")
    modality_weight_faces: float = Field(0.4, description="Face geometry share of a case score")
    modality_weight_audio: float = Field(1.0, description="Audio share of a case score")
    verdict_suspicious_threshold: int = Field(20, description="Case score ≥ this → suspicious")
    verdict_fake_threshold: int = Field(60, description="Case score ≥ this → likely-fake")
    modality_timeout_sec: float = Field(30.0, description="Per-modality extraction budget")

    # ------------------------------------------------------------------ #
    # Novelty tracking                                                    #
    # ------------------------------------------------------------------ #
    catalog_timeout_sec: float = Field(2.0, description="Budget for one catalog upsert call")
    catalog_retries: int = Field(1, description="Retries after a catalog timeout")
    suspicious_rarity_threshold: float = Field(80.0, description="Rarity above this can be suspicious")
    never_seen_alert_threshold: float = Field(95.0, description="First sighting alert at/above this")
    suspicious_anomaly_types: list[str] = Field(
        ["software_ai", "software_deepfake", "filename_ai"],
        description="Anomaly classes that make a rare pattern suspicious",
    )
    example_file_names_max: int = Field(10, description="Example file names kept per pattern")
    recent_observations_max: int = Field(20, description="Applied observation ids kept per pattern")

    # ------------------------------------------------------------------ #
    # Alerts                                                              #
    # ------------------------------------------------------------------ #
    alert_webhook_url: str = Field("", description="POST target for pattern alerts; empty → log only")
    alert_webhook_timeout_sec: float = Field(10.0, description="Total budget for one webhook POST")
    alert_dedupe_ttl_sec: int = Field(
        3_600, description="1 h: one alert per signature per window (alert:{signature})"
    )

    # ------------------------------------------------------------------ #
    # Report cache                                                        #
    # ------------------------------------------------------------------ #
    upstash_redis_host: str = Field("", description="Upstash REST URL; empty → in-memory cache and dedupe")
    upstash_redis_password: str = Field("", description="Upstash REST token")
    report_cache_ttl_sec: int = Field(
        86_400, description="24 h: modality report cache (forensic:{hash})"
    )
    local_cache_max_size: int = Field(
        100, description="Max entries in the in-memory LRU cache"
    )
    local_cache_ttl_sec: int = Field(
        3_600, description="1 h: local cache entry lifetime"
    )

    # ------------------------------------------------------------------ #
    # Derived byte-level properties (computed from MB fields)             #
    # ------------------------------------------------------------------ #
    @property
    def max_image_upload_bytes(self) -> int:
        return self.max_image_upload_mb * 1024 * 1024

    @property
    def max_audio_upload_bytes(self) -> int:
        return self.max_audio_upload_mb * 1024 * 1024

    @property
    def image_weights(self) -> dict[str, float]:
        return {
            "ela": self.weight_ela,
            "noise": self.weight_noise,
            "histogram": self.weight_histogram,
            "frequency": self.weight_frequency,
            "metadata": self.weight_metadata,
        }

    @property
    def modality_weights(self) -> dict[str, float]:
        return {
            "image": self.modality_weight_image,
            "faces": self.modality_weight_faces,
            "audio": self.modality_weight_audio,
        }


# Single shared instance: import this everywhere.
settings = Settings()
