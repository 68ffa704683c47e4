"""
Unit tests for mediaforensics/forensics/face_geometry.py and the detector state object.
"""

from unittest.mock import patch

import numpy as np
import pytest

from mediaforensics.core.errors import ExtractionError
from mediaforensics.forensics.buffers import ImageBuffer
from mediaforensics.forensics.face_detector import DetectorState, FaceDetectorProvider
from mediaforensics.forensics.face_geometry import (
    analyze_faces,
    analyze_landmark_quality,
    calculate_blur_score,
    calculate_symmetry,
)
from mediaforensics.schemas.face import Box, FaceDetection
from tests.conftest import mirrored_landmarks


def _buffer(size: int = 200, seed: int = 1) -> ImageBuffer:
    rng = np.random.default_rng(seed)
    return ImageBuffer.from_array(rng.integers(0, 256, (size, size, 3), dtype=np.uint8))


BOX = Box(x=60, y=40, width=80, height=120)


# ---------------------------------------------------------------------------
# Symmetry
# ---------------------------------------------------------------------------


def test_mirrored_landmarks_are_perfectly_symmetric():
    assert calculate_symmetry(mirrored_landmarks()) == 1.0


@pytest.mark.parametrize("index", range(68))
def test_moving_any_landmark_lowers_symmetry(index):
    points = mirrored_landmarks()
    x, y = points[index]
    points[index] = (x + 1.5, y + 0.5)
    assert calculate_symmetry(points) < 1.0


@pytest.mark.parametrize("index", [8, 27, 33, 51, 57, 62, 66])
def test_midline_landmark_off_axis_lowers_symmetry(index):
    points = mirrored_landmarks()
    x, y = points[index]
    points[index] = (x + 7, y + 3)
    assert calculate_symmetry(points) == pytest.approx(1 - (7 / 12) / 20)


@pytest.mark.parametrize("index,dx,dy", [(0, 1.5, 0), (45, 0, 0.5), (48, -3, 2), (61, 0, 1)])
def test_paired_perturbation_lowers_symmetry(index, dx, dy):
    points = mirrored_landmarks()
    x, y = points[index]
    points[index] = (x + dx, y + dy)
    assert calculate_symmetry(points) < 1.0


def test_short_landmark_set_is_neutral():
    assert calculate_symmetry([(0, 0)] * 10) == 0.5


# ---------------------------------------------------------------------------
# Landmark quality and blur
# ---------------------------------------------------------------------------


def test_landmark_quality_grades_out_of_bounds_points():
    inside = mirrored_landmarks()
    assert analyze_landmark_quality(inside, BOX).quality == "good"

    outside = list(inside)
    for i in range(6):
        outside[i] = (500.0, 500.0)
    quality = analyze_landmark_quality(outside, BOX)
    assert quality.out_of_bounds == 6
    assert quality.quality == "suspicious"


def test_blur_score_separates_flat_and_textured_crops():
    flat = ImageBuffer.from_array(np.full((200, 200, 3), 90, dtype=np.uint8))
    assert calculate_blur_score(flat, BOX) == 0.0
    assert calculate_blur_score(_buffer(), BOX) == 100.0


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def test_no_faces_report():
    result = analyze_faces(_buffer(), [])
    assert result.faces_detected == 0
    assert result.overall_score == 0
    assert result.anomalies == ["No faces detected"]


def test_face_report_in_percent_and_bounded():
    detection = FaceDetection(
        box=BOX,
        landmarks=mirrored_landmarks(),
        expressions={"neutral": 0.99, "happy": 0.01},
    )
    result = analyze_faces(_buffer(), [detection])

    assert result.faces_detected == 1
    face = result.faces[0]
    assert face.box.x == pytest.approx(30.0)
    assert face.box.height == pytest.approx(60.0)
    assert face.symmetry == 1.0
    assert "Unnaturally sharp and symmetric (possible AI generation)" in face.anomalies
    assert "Unnaturally neutral expression" in face.anomalies
    assert 0 <= result.overall_score <= 100


def test_duplicate_anomalies_are_merged():
    flat = ImageBuffer.from_array(np.full((200, 200, 3), 90, dtype=np.uint8))
    detection = FaceDetection(box=BOX, landmarks=mirrored_landmarks())
    result = analyze_faces(flat, [detection, detection])
    assert result.anomalies.count("Face region appears blurred") == 1
    assert result.faces_detected == 2


# ---------------------------------------------------------------------------
# Detector state
# ---------------------------------------------------------------------------


async def test_unconfigured_detector_fails_fast():
    detector = FaceDetectorProvider(landmark_model_path="")
    assert detector.is_configured is False
    with pytest.raises(ExtractionError):
        await detector.ensure_ready()
    assert detector.state == DetectorState.FAILED


async def test_detector_loads_once_for_concurrent_callers():
    import asyncio

    detector = FaceDetectorProvider(landmark_model_path="lbfmodel.yaml")
    with patch.object(detector, "_load", return_value=("cascade", "facemark")) as load:
        await asyncio.gather(detector.ensure_ready(), detector.ensure_ready(), detector.ensure_ready())
    assert load.call_count == 1
    assert detector.state == DetectorState.READY


async def test_detector_failure_is_retried_on_next_call():
    detector = FaceDetectorProvider(landmark_model_path="lbfmodel.yaml")
    with patch.object(detector, "_load", side_effect=OSError("missing model")):
        with pytest.raises(ExtractionError):
            await detector.ensure_ready()
    assert detector.state == DetectorState.FAILED

    with patch.object(detector, "_load", return_value=("cascade", "facemark")):
        await detector.ensure_ready()
    assert detector.state == DetectorState.READY
