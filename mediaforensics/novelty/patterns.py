"""
Turns file metadata into normalized pattern candidates for the catalog.

A candidate's signature is the SHA-256 of the canonical JSON of its anomaly
type and the fields that identify the pattern. The literal file name is
never part of that tuple, so renaming a file does not create a new pattern.
"""

import re
import json
import hashlib
import logging
from datetime import datetime
from typing import Any, Optional

from mediaforensics.forensics.buffers import MediaFile
from mediaforensics.forensics.constants import (
    AI_DIMENSIONS,
    AI_GENERATOR_PATTERNS,
    DEEPFAKE_TOOL_PATTERNS,
    EDITOR_PATTERNS,
    PHOTO_EXTENSIONS,
    SUSPICIOUS_FILENAME_PATTERNS,
)
from mediaforensics.schemas.patterns import PatternCandidate

logger = logging.getLogger(__name__)

EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"
STANDARD_SAMPLE_RATES = {8000, 11025, 16000, 22050, 24000, 32000, 44100, 48000, 88200, 96000}
SEED_RE = re.compile(r"seed[:\s]+(\d+)", re.IGNORECASE)


def hash_pattern(anomaly_type: str, key: dict[str, Any]) -> str:
    canonical = json.dumps({"type": anomaly_type, **key}, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def make_candidate(
    anomaly_type: str,
    key: dict[str, Any],
    data: Optional[dict[str, Any]] = None,
    software: Optional[str] = None,
) -> PatternCandidate:
    return PatternCandidate(
        anomaly_type=anomaly_type,
        signature=hash_pattern(anomaly_type, key),
        pattern_data={**key, **(data or {})},
        software=software,
    )


def _first_match(patterns, text: str):
    for pattern in patterns:
        if pattern.search(text):
            return pattern
    return None


def _software_candidates(software: str) -> list[PatternCandidate]:
    candidates = []
    normalized = software.strip().lower()

    ai = _first_match(AI_GENERATOR_PATTERNS, software)
    if ai:
        candidates.append(make_candidate(
            "software_ai", {"software": normalized}, {"matched": ai.pattern}, software=software
        ))

    deepfake = _first_match(DEEPFAKE_TOOL_PATTERNS, software)
    if deepfake:
        candidates.append(make_candidate(
            "software_deepfake", {"software": normalized}, {"matched": deepfake.pattern}, software=software
        ))

    editor = _first_match(EDITOR_PATTERNS, software)
    if editor and not ai and not deepfake:
        candidates.append(make_candidate(
            "software_editor", {"software": normalized}, {"matched": editor.pattern}, software=software
        ))

    if not ai and not deepfake and not editor and len(software) > 3:
        # Unrecognized tool, possibly a new generator
        candidates.append(make_candidate("software_unknown", {"software": normalized}, software=software))

    return candidates


def _timestamp_candidates(date_time: str, now: datetime) -> list[PatternCandidate]:
    try:
        taken = datetime.strptime(date_time.strip(), EXIF_DATETIME_FORMAT)
    except ValueError:
        logger.debug(f"[PATTERNS] Unparseable EXIF DateTime: {date_time!r}")
        return []

    candidates = []
    if taken > now:
        candidates.append(make_candidate("timestamp_future", {"future": True, "date": date_time}))
    if taken.year < 1990:
        candidates.append(make_candidate("timestamp_impossible", {"impossible": True, "year": taken.year}))
    return candidates


def extract_image_patterns(
    media: MediaFile,
    exif: dict[str, Any],
    width: Optional[int] = None,
    height: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[PatternCandidate]:
    """
    Candidates for one image upload.

    `exif` is the dict returned by image_forensics.read_exif_fields; width
    and height fall back to the values found there.
    """
    now = now or datetime.now()
    candidates = []
    ext = media.extension

    if ext in PHOTO_EXTENSIONS and not (exif.get("Make") or exif.get("Model") or exif.get("DateTime")):
        candidates.append(make_candidate("exif_missing", {"missing": True, "extension": ext}))

    software = exif.get("Software")
    if software:
        candidates.extend(_software_candidates(str(software)))

    generation_text = exif.get("parameters") or exif.get("prompt")
    if generation_text:
        seed = SEED_RE.search(generation_text)
        candidates.append(make_candidate(
            "software_ai",
            {"prompt": True, "seed": seed.group(1) if seed else None},
            {"prompt_preview": generation_text[:100]},
        ))

    filename_pattern = _first_match(SUSPICIOUS_FILENAME_PATTERNS, media.filename)
    if filename_pattern:
        candidates.append(make_candidate("filename_ai", {"pattern": filename_pattern.pattern}))

    date_time = exif.get("DateTime")
    if date_time:
        candidates.extend(_timestamp_candidates(str(date_time), now))

    width = width or exif.get("width")
    height = height or exif.get("height")
    if width and height and (width, height) in AI_DIMENSIONS:
        candidates.append(make_candidate("dimension_unusual", {"width": width, "height": height}))

    return _unique(candidates)


def extract_audio_patterns(sample_rate: int, channels: int = 1) -> list[PatternCandidate]:
    if sample_rate in STANDARD_SAMPLE_RATES:
        return []
    return [make_candidate("compression_unusual", {"sample_rate": sample_rate, "channels": channels})]


def _unique(candidates: list[PatternCandidate]) -> list[PatternCandidate]:
    seen = set()
    out = []
    for c in candidates:
        if c.signature not in seen:
            seen.add(c.signature)
            out.append(c)
    return out
