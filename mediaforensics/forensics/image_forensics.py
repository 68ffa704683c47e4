"""
Pixel- and container-level forensics for a single decoded image.

Functions:
  - perform_ela: error-level analysis against a lossy re-encode.
  - analyze_noise: Laplacian noise level and uniformity.
  - analyze_histogram: per-channel gaps and spikes.
  - analyze_frequency: 8×8 block boundary discontinuity and HF energy.
  - detect_suspicious_regions: 32×32 grid cells with strong edge activity.
  - analyze_metadata: filename, MIME and embedded-metadata heuristics.
  - run_forensic_analysis: runs all of the above and fuses the scores.

All analyzers are pure functions over a read-only ImageBuffer.
"""

import io
import base64
import asyncio
import logging
import struct
from typing import Callable, Optional

import numpy as np
from PIL import Image

from mediaforensics.config import settings
from mediaforensics.core.errors import ExtractionError
from mediaforensics.forensics.buffers import ImageBuffer, MediaFile
from mediaforensics.forensics.constants import (
    AI_FILENAME_TOOLS,
    AI_GENERATOR_PATTERNS,
    EXTENSION_CONTAINERS,
    EXTENSION_MIME_TOKENS,
)
from mediaforensics.schemas.image import (
    ELAResult,
    FrequencyResult,
    HistogramResult,
    ImageForensicReport,
    MetadataResult,
    NoiseResult,
    SuspiciousRegion,
)

logger = logging.getLogger(__name__)

EXIF_MAKE, EXIF_MODEL, EXIF_SOFTWARE, EXIF_DATETIME = 0x010F, 0x0110, 0x0131, 0x0132
PNG_METADATA_CHUNKS = {b"tEXt", b"iTXt", b"zTXt", b"eXIf"}


# --------------------------------------------------------------------------- #
# Error Level Analysis                                                        #
# --------------------------------------------------------------------------- #

def _reencode_jpeg(buffer: ImageBuffer, quality: int) -> np.ndarray:
    out = io.BytesIO()
    buffer.to_image().save(out, format="JPEG", quality=quality, subsampling=0)
    with Image.open(io.BytesIO(out.getvalue())) as img:
        return np.array(img.convert("RGB"))


def _encode_png_data_url(rgb: np.ndarray) -> str:
    out = io.BytesIO()
    Image.fromarray(rgb).save(out, format="PNG")
    return "data:image/png;base64," + base64.b64encode(out.getvalue()).decode("ascii")


def perform_ela(buffer: ImageBuffer, quality: int = settings.ela_quality) -> ELAResult:
    """
    Re-encode at `quality`, decode, and diff against the original.

    A pixel is suspicious when its mean channel difference exceeds the ELA
    threshold. Suspicious pixels are drawn red-tinted in the diff map, the
    rest in grayscale.
    """
    quality = int(min(100, max(1, quality)))
    original = buffer.rgb.astype(np.int16)
    recompressed = _reencode_jpeg(buffer, quality).astype(np.int16)

    diff = np.abs(original - recompressed).mean(axis=2)
    pixel_count = diff.size
    suspicious_mask = diff > settings.ela_threshold
    suspicious_areas = int(suspicious_mask.sum())

    avg_difference = float(diff.mean())
    max_difference = float(diff.max())
    suspicious_ratio = suspicious_areas / pixel_count

    image_data_url = None
    if settings.ela_include_diff_map:
        scaled = np.minimum(255.0, diff * settings.ela_visual_gain)
        damped = np.where(suspicious_mask, scaled * 0.3, scaled)
        diff_map = np.stack([scaled, damped, damped], axis=2).astype(np.uint8)
        image_data_url = _encode_png_data_url(diff_map)

    score = min(100.0, suspicious_ratio * 500 + avg_difference * 5)

    findings = []
    if suspicious_ratio > 0.05:
        findings.append(f"Inconsistent compression error across {suspicious_ratio:.1%} of pixels")
    elif suspicious_areas > 0 and max_difference > settings.ela_threshold * 3:
        findings.append(f"Localized error-level hotspots ({suspicious_areas} pixels)")

    logger.debug(f"[ELA] q={quality} avg={avg_difference:.2f} max={max_difference:.2f} suspicious={suspicious_areas}")

    return ELAResult(
        score=round(score),
        findings=findings,
        max_difference=max_difference,
        average_difference=avg_difference,
        suspicious_areas=suspicious_areas,
        image_data_url=image_data_url,
    )


# --------------------------------------------------------------------------- #
# Noise                                                                       #
# --------------------------------------------------------------------------- #

def analyze_noise(buffer: ImageBuffer) -> NoiseResult:
    """Local noise from a 4-neighbour Laplacian over the channel-mean intensity."""
    intensity = buffer.intensity()
    if buffer.height < 3 or buffer.width < 3:
        return NoiseResult(score=0, noise_level=0.0, uniformity=1.0)

    center = intensity[1:-1, 1:-1]
    laplacian = np.abs(
        4 * center
        - intensity[:-2, 1:-1]
        - intensity[2:, 1:-1]
        - intensity[1:-1, :-2]
        - intensity[1:-1, 2:]
    )
    mean_noise = float(laplacian.mean())
    std_dev = float(laplacian.std())

    # A perfectly flat image has no noise at all, which is maximally uniform
    uniformity = 1.0 / (1.0 + std_dev / mean_noise) if mean_noise > 0 else 1.0

    anomalies = []
    if uniformity < 0.3:
        anomalies.append("Highly variable noise patterns detected")
    if mean_noise > 30:
        anomalies.append("Elevated noise levels")
    if std_dev > mean_noise * 2:
        anomalies.append("Noise pattern inconsistency")

    score = min(100.0, (1 - uniformity) * 50 + (25 if mean_noise > 20 else 0) + len(anomalies) * 10)

    return NoiseResult(
        score=round(score),
        findings=anomalies,
        noise_level=mean_noise,
        uniformity=uniformity,
    )


# --------------------------------------------------------------------------- #
# Histogram                                                                   #
# --------------------------------------------------------------------------- #

def _count_gaps(hist: list[int], cap: int) -> int:
    gaps = 0
    for i in range(10, 245):
        if hist[i] == 0 and hist[i - 1] > 0 and hist[i + 1] > 0:
            gaps += 1
            if gaps >= cap:
                break
    return gaps


def _count_peaks(hist: list[int], avg_count: float, cap: int) -> int:
    peaks = 0
    for i in range(5, 250):
        if hist[i] > avg_count * 20 and hist[i - 2] < avg_count and hist[i + 2] < avg_count:
            peaks += 1
            if peaks >= cap:
                break
    return peaks


def analyze_histogram(buffer: ImageBuffer) -> HistogramResult:
    """
    Build 256-bin RGB histograms and look for comb gaps (levels stretching)
    and isolated spikes (posterization or pasted flat regions).
    """
    rgb = buffer.rgb
    channels = {
        name: np.bincount(rgb[:, :, idx].ravel(), minlength=256).tolist()
        for idx, name in enumerate(("Red", "Green", "Blue"))
    }
    avg_count = rgb.shape[0] * rgb.shape[1] / 256

    anomalies = []
    total_gaps = 0
    total_peaks = 0
    for name, hist in channels.items():
        gaps = _count_gaps(hist, settings.histogram_max_gaps_per_channel)
        if gaps > 5:
            anomalies.append(f"{name} channel has {gaps} suspicious gaps")
        total_gaps += gaps

    for name, hist in channels.items():
        peaks = _count_peaks(hist, avg_count, settings.histogram_max_peaks_per_channel)
        if peaks > 3:
            anomalies.append(f"{name} channel shows unusual distribution peaks")
        total_peaks += peaks

    score = min(100, total_gaps * 3 + total_peaks * 5 + len(anomalies) * 10)

    return HistogramResult(
        score=score,
        findings=anomalies,
        red_channel=channels["Red"],
        green_channel=channels["Green"],
        blue_channel=channels["Blue"],
        total_gaps=total_gaps,
        total_peaks=total_peaks,
    )


# --------------------------------------------------------------------------- #
# Frequency                                                                   #
# --------------------------------------------------------------------------- #

def analyze_frequency(buffer: ImageBuffer) -> FrequencyResult:
    """Discontinuity across 8×8 block seams plus a gradient HF-energy ratio."""
    intensity = buffer.intensity()
    h, w = intensity.shape

    rows = np.arange(7, h - 1, 8)
    cols = np.arange(7, w - 1, 8)
    horizontal = np.abs(intensity[rows, : w - 1] - intensity[rows + 1, : w - 1])
    vertical = np.abs(intensity[: h - 1, cols] - intensity[: h - 1, cols + 1])

    total_boundaries = horizontal.size + vertical.size
    blockiness = (
        float(horizontal.sum() + vertical.sum()) / total_boundaries if total_boundaries else 0.0
    )

    hf_ratio = 0.0
    if h >= 3 and w >= 3:
        center = intensity[1:-1, 1:-1]
        gradient = np.abs(center - intensity[1:-1, 2:]) + np.abs(center - intensity[2:, 1:-1])
        total_energy = float(center.sum())
        hf_ratio = float(gradient.sum()) / total_energy if total_energy > 0 else 0.0

    compression_artifacts = blockiness / 10

    anomalies = []
    if blockiness > 5:
        anomalies.append("Visible 8x8 block artifacts (JPEG compression)")
    if hf_ratio > 0.3:
        anomalies.append("High frequency anomalies detected")
    if blockiness > 10:
        anomalies.append("Severe compression or re-encoding detected")

    score = min(100.0, blockiness * 5 + compression_artifacts * 10 + len(anomalies) * 15)

    return FrequencyResult(
        score=round(score),
        findings=anomalies,
        blockiness=blockiness,
        compression_artifacts=compression_artifacts,
        high_frequency_ratio=hf_ratio,
    )


# --------------------------------------------------------------------------- #
# Suspicious regions                                                          #
# --------------------------------------------------------------------------- #

def detect_suspicious_regions(buffer: ImageBuffer) -> list[SuspiciousRegion]:
    """
    Average adjacent-pixel colour difference per grid cell, normalized to
    [0, 1]. Cells above the minimum intensity are returned strongest first.
    """
    rgb = buffer.rgb.astype(np.int16)
    h, w = buffer.height, buffer.width
    grid = settings.region_grid_size

    edge = np.zeros((h, w), dtype=np.float64)
    if h > 1 and w > 1:
        inner = rgb[1:, 1:]
        edge[1:, 1:] = (
            np.abs(inner - rgb[1:, :-1]).sum(axis=2) + np.abs(inner - rgb[:-1, 1:]).sum(axis=2)
        ) / 6

    row_starts = np.arange(0, h, grid)
    col_starts = np.arange(0, w, grid)
    cell_sums = np.add.reduceat(np.add.reduceat(edge, row_starts, axis=0), col_starts, axis=1)
    cell_heights = np.diff(np.append(row_starts, h))
    cell_widths = np.diff(np.append(col_starts, w))
    cell_avgs = cell_sums / np.outer(cell_heights, cell_widths)

    regions = []
    for gy, start_y in enumerate(row_starts):
        for gx, start_x in enumerate(col_starts):
            intensity = min(1.0, float(cell_avgs[gy, gx]) / settings.region_intensity_scale)
            if intensity <= settings.region_min_intensity:
                continue
            regions.append(SuspiciousRegion(
                x=start_x / w * 100,
                y=start_y / h * 100,
                width=cell_widths[gx] / w * 100,
                height=cell_heights[gy] / h * 100,
                intensity=intensity,
                reason=(
                    "High edge complexity"
                    if intensity > settings.region_high_intensity
                    else "Moderate edge artifacts"
                ),
            ))

    regions.sort(key=lambda r: r.intensity, reverse=True)
    return regions[: settings.region_max_count]


# --------------------------------------------------------------------------- #
# Metadata                                                                    #
# --------------------------------------------------------------------------- #

def sniff_container(data: bytes) -> Optional[str]:
    if data[:2] == b"\xff\xd8":
        return "jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data[:4] in (b"GIF8",):
        return "gif"
    return None


def _jpeg_has_app1(data: bytes) -> bool:
    """Walk JPEG segment markers from the SOI looking for APP1 (EXIF/XMP)."""
    offset = 2
    while offset + 4 <= len(data):
        marker = struct.unpack(">H", data[offset:offset + 2])[0]
        if marker == 0xFFE1:
            return True
        if marker & 0xFF00 != 0xFF00 or marker == 0xFFDA:
            break
        segment_length = struct.unpack(">H", data[offset + 2:offset + 4])[0]
        offset += 2 + segment_length
    return False


def _png_has_metadata(data: bytes) -> bool:
    offset = 8
    while offset + 8 <= len(data):
        length = struct.unpack(">I", data[offset:offset + 4])[0]
        chunk_type = data[offset + 4:offset + 8]
        if chunk_type in PNG_METADATA_CHUNKS:
            return True
        if chunk_type == b"IEND":
            break
        offset += 12 + length
    return False


def _webp_has_metadata(data: bytes) -> bool:
    offset = 12
    while offset + 8 <= len(data):
        chunk_type = data[offset:offset + 4]
        if chunk_type in (b"EXIF", b"XMP "):
            return True
        size = struct.unpack("<I", data[offset + 4:offset + 8])[0]
        offset += 8 + size + (size & 1)
    return False


def has_embedded_metadata(data: bytes, container: Optional[str]) -> bool:
    if container == "jpeg":
        return _jpeg_has_app1(data)
    if container == "png":
        return _png_has_metadata(data)
    if container == "webp":
        return _webp_has_metadata(data)
    return False


def read_exif_fields(data: bytes) -> dict:
    """
    Extract the few EXIF/info fields the analyzers care about.
    Returns an empty dict when the container has none or cannot be parsed.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            exif = img.getexif()
            fields = {
                "Make": exif.get(EXIF_MAKE),
                "Model": exif.get(EXIF_MODEL),
                "Software": exif.get(EXIF_SOFTWARE) or img.info.get("Software"),
                "DateTime": exif.get(EXIF_DATETIME),
                "width": img.width,
                "height": img.height,
            }
            for key in ("parameters", "prompt", "Description", "Comment"):
                value = img.info.get(key)
                if isinstance(value, str):
                    fields[key] = value
    except Exception as e:
        logger.debug(f"[META] EXIF read failed: {e}")
        return {}

    return {
        k: (v.strip("\x00 ").strip() if isinstance(v, str) else v)
        for k, v in fields.items()
        if v not in (None, "")
    }


def analyze_metadata(media: MediaFile) -> MetadataResult:
    """
    Filename, MIME-consistency and embedded-metadata heuristics.
    The numeric score is the flag-count proxy used for fusion.
    """
    flags = []
    lower_name = media.filename.lower()
    for tool in AI_FILENAME_TOOLS:
        if tool in lower_name:
            flags.append(f"Filename suggests AI generation: {tool}")

    ext = media.extension
    expected_token = EXTENSION_MIME_TOKENS.get(ext)
    if media.content_type and expected_token and expected_token not in media.content_type.lower():
        flags.append("File extension does not match MIME type")

    container = sniff_container(media.data)
    expected_container = EXTENSION_CONTAINERS.get(ext)
    if container and expected_container and container != expected_container:
        flags.append(f"File extension does not match file signature ({container})")

    has_exif = has_embedded_metadata(media.data, container)
    if not has_exif:
        if container == "jpeg":
            flags.append("JPEG file missing EXIF data (possible screenshot or processed)")
        elif container == "png":
            flags.append("PNG file has no embedded metadata (stripped or generated)")

    exif = read_exif_fields(media.data) if has_exif else {}
    software = exif.get("Software")
    if software and any(p.search(str(software)) for p in AI_GENERATOR_PATTERNS):
        flags.append(f"Software tag names an AI generator: {software}")

    return MetadataResult(
        score=min(100, len(flags) * settings.metadata_flag_points),
        findings=list(flags),
        has_exif=has_exif,
        software=str(software) if software else None,
        camera_make=exif.get("Make"),
        camera_model=exif.get("Model"),
        date_time=exif.get("DateTime"),
        suspicious_flags=flags,
    )


# --------------------------------------------------------------------------- #
# Orchestration                                                               #
# --------------------------------------------------------------------------- #

async def run_forensic_analysis(buffer: ImageBuffer, media: MediaFile) -> ImageForensicReport:
    """
    Run the five analyzers concurrently and fuse them with the fixed weights.

    An analyzer that raises is listed in `failed_analyzers`; the remaining
    weights are renormalized so one fault never hides the other results.
    """
    analyzers: dict[str, Callable] = {
        "ela": lambda: perform_ela(buffer, settings.ela_quality),
        "noise": lambda: analyze_noise(buffer),
        "histogram": lambda: analyze_histogram(buffer),
        "frequency": lambda: analyze_frequency(buffer),
        "metadata": lambda: analyze_metadata(media),
        "regions": lambda: detect_suspicious_regions(buffer),
    }
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(fn) for fn in analyzers.values()), return_exceptions=True
    )

    results = {}
    failed = []
    for name, outcome in zip(analyzers, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, Exception):
            logger.error(f"[FORENSICS] {name} analyzer failed: {outcome}")
            failed.append(name)
        else:
            results[name] = outcome

    weights = settings.image_weights
    scored = {name: results[name].score for name in weights if name in results}
    if not scored:
        raise ExtractionError(f"All image analyzers failed: {', '.join(failed)}")

    if len(scored) == len(weights):
        overall = round(sum(weights[k] * scored[k] for k in scored))
    else:
        total_weight = sum(weights[k] for k in scored)
        overall = round(sum(weights[k] * scored[k] for k in scored) / total_weight)

    logger.info(f"[FORENSICS] image overall={overall} scores={scored} failed={failed}")

    return ImageForensicReport(
        ela=results.get("ela"),
        noise=results.get("noise"),
        histogram=results.get("histogram"),
        frequency=results.get("frequency"),
        metadata=results.get("metadata"),
        overall_score=min(100, max(0, overall)),
        suspicious_regions=results.get("regions", []),
        failed_analyzers=failed,
    )
