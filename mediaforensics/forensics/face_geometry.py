"""
Face geometry checks over externally detected faces.

Each face arrives as a pixel box plus a 68-point landmark set (iBUG/dlib
topology) and optional expression confidences. Symmetry, landmark quality
and crop sharpness are combined into per-face anomalies and a report score
(higher = more suspicious).
"""

import logging
from typing import Optional, Sequence

import cv2
import numpy as np

from mediaforensics.config import settings
from mediaforensics.forensics.buffers import ImageBuffer
from mediaforensics.schemas.face import (
    Box,
    FaceAnalysis,
    FaceDetection,
    FaceDetectionResult,
    LandmarkQuality,
)

logger = logging.getLogger(__name__)

NOSE_TIP = 30

SYMMETRY_PAIRS = (
    (0, 16), (1, 15), (2, 14), (3, 13), (4, 12), (5, 11), (6, 10), (7, 9),     # jaw
    (17, 26), (18, 25), (19, 24), (20, 23), (21, 22),                           # brows
    (36, 45), (37, 44), (38, 43), (39, 42), (40, 47), (41, 46),                 # eyes
    (31, 35), (32, 34),                                                         # nose
    (48, 54), (49, 53), (50, 52), (59, 55), (58, 56),                           # mouth
)

# Landmarks outside SYMMETRY_PAIRS: inner lip corners/sides mirror each other,
# the rest sit on the vertical axis.
INNER_LIP_PAIRS = ((60, 64), (61, 63), (67, 65))
MIDLINE_POINTS = (8, 27, 28, 29, 33, 51, 57, 62, 66)


def _pair_diffs(points: np.ndarray, pairs, axis_x: float) -> np.ndarray:
    pairs = np.asarray(pairs)
    left = points[pairs[:, 0]]
    right = points[pairs[:, 1]]
    x_diff = np.abs(np.abs(left[:, 0] - axis_x) - np.abs(right[:, 0] - axis_x))
    y_diff = np.abs(left[:, 1] - right[:, 1])
    return x_diff + y_diff


def calculate_symmetry(landmarks: Sequence[tuple[float, float]]) -> float:
    """
    1.0 for a landmark set mirrored about the vertical line through the nose
    tip, dropping towards 0 as mirrored pairs drift apart or midline points
    leave the axis.
    """
    if len(landmarks) < 68:
        return 0.5

    points = np.asarray(landmarks, dtype=np.float64)
    axis_x = points[NOSE_TIP, 0]

    off_axis = np.concatenate([
        _pair_diffs(points, INNER_LIP_PAIRS, axis_x),
        np.abs(points[list(MIDLINE_POINTS), 0] - axis_x),
    ])
    avg_diff = float(_pair_diffs(points, SYMMETRY_PAIRS, axis_x).mean() + off_axis.mean())

    return 1 - min(1.0, avg_diff / 20)


def analyze_landmark_quality(landmarks: Sequence[tuple[float, float]], box: Box) -> LandmarkQuality:
    """Count landmarks outside the face box grown by 20% on every side."""
    out_of_bounds = 0
    for x, y in landmarks:
        if (
            x < box.x - box.width * 0.2
            or x > box.x + box.width * 1.2
            or y < box.y - box.height * 0.2
            or y > box.y + box.height * 1.2
        ):
            out_of_bounds += 1

    if out_of_bounds > 5:
        quality = "suspicious"
    elif out_of_bounds > 2:
        quality = "poor"
    else:
        quality = "good"

    return LandmarkQuality(points=len(landmarks), out_of_bounds=out_of_bounds, quality=quality)


def calculate_blur_score(buffer: ImageBuffer, box: Box, padding: int = settings.face_crop_padding) -> float:
    """Mean squared Laplacian over the padded face crop, /10 and capped at 100."""
    x = max(0, int(round(box.x - padding)))
    y = max(0, int(round(box.y - padding)))
    w = min(buffer.width - x, int(round(box.width + padding * 2)))
    h = min(buffer.height - y, int(round(box.height + padding * 2)))
    if w < 3 or h < 3:
        return 0.0

    crop = buffer.intensity()[y:y + h, x:x + w]
    laplacian = cv2.Laplacian(crop, cv2.CV_64F, ksize=1)[1:-1, 1:-1]
    return min(100.0, float((laplacian ** 2).mean()) / 10)


def _dominant_expression(expressions: dict[str, float]) -> Optional[tuple[str, float]]:
    if not expressions:
        return None
    return max(expressions.items(), key=lambda kv: kv[1])


def analyze_face(buffer: ImageBuffer, face_id: int, detection: FaceDetection) -> FaceAnalysis:
    box = detection.box
    symmetry = calculate_symmetry(detection.landmarks)
    landmark_quality = analyze_landmark_quality(detection.landmarks, box)
    blur = calculate_blur_score(buffer, box)

    anomalies = []
    if symmetry < 0.7:
        anomalies.append("Unusual facial asymmetry")
    if landmark_quality.quality == "suspicious":
        anomalies.append("Landmark positioning anomalies")
    if blur < 20:
        anomalies.append("Face region appears blurred")
    if blur > 90 and symmetry > 0.95:
        anomalies.append("Unnaturally sharp and symmetric (possible AI generation)")

    dominant = _dominant_expression(detection.expressions)
    if dominant and dominant[0] == "neutral" and dominant[1] > 0.95:
        anomalies.append("Unnaturally neutral expression")

    return FaceAnalysis(
        id=face_id,
        box=Box(
            x=box.x / buffer.width * 100,
            y=box.y / buffer.height * 100,
            width=box.width / buffer.width * 100,
            height=box.height / buffer.height * 100,
        ),
        landmark_quality=landmark_quality,
        symmetry=symmetry,
        blur_score=blur,
        expressions=dict(detection.expressions),
        anomalies=anomalies,
    )


def analyze_faces(buffer: ImageBuffer, detections: Sequence[FaceDetection]) -> FaceDetectionResult:
    faces = [analyze_face(buffer, i + 1, d) for i, d in enumerate(detections)]

    anomalies: list[str] = []
    for face in faces:
        for anomaly in face.anomalies:
            if anomaly not in anomalies:
                anomalies.append(anomaly)

    if not faces:
        return FaceDetectionResult(
            faces_detected=0,
            faces=[],
            symmetry_score=0.0,
            overall_score=0,
            anomalies=["No faces detected"],
        )

    avg_symmetry = sum(f.symmetry for f in faces) / len(faces)
    score = min(100.0, (1 - avg_symmetry) * 30 + min(40, len(anomalies) * 10))
    logger.debug(f"[FACES] {len(faces)} face(s), symmetry={avg_symmetry:.3f}, anomalies={anomalies}")

    return FaceDetectionResult(
        faces_detected=len(faces),
        faces=faces,
        symmetry_score=avg_symmetry,
        overall_score=round(score),
        anomalies=anomalies,
    )
