"""
OpenCV-backed face + landmark detector with explicit load state.

The provider moves UNINITIALIZED → LOADING → READY or FAILED. Concurrent
callers during LOADING await the same load task; a FAILED provider retries
on the next call. Detection itself is synchronous and meant to run in a
worker thread.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

import cv2
import numpy as np

from mediaforensics.config import settings
from mediaforensics.core.errors import ExtractionError
from mediaforensics.forensics.buffers import ImageBuffer
from mediaforensics.schemas.face import Box, FaceDetection

logger = logging.getLogger(__name__)


class DetectorState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class FaceDetectorProvider:
    def __init__(self, cascade_path: Optional[str] = None, landmark_model_path: Optional[str] = None):
        self.cascade_path = cascade_path or settings.face_cascade_path or (
            cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
        )
        self.landmark_model_path = (
            landmark_model_path if landmark_model_path is not None else settings.face_landmark_model_path
        )
        self.state = DetectorState.UNINITIALIZED
        self.error: Optional[str] = None
        self._cascade = None
        self._facemark = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def is_configured(self) -> bool:
        """Landmarks need a facemark model; without one the detector is never used."""
        return bool(self.landmark_model_path)

    def _load(self):
        cascade = cv2.CascadeClassifier(self.cascade_path)
        if cascade.empty():
            raise ExtractionError(f"Could not load face cascade: {self.cascade_path}")
        facemark = cv2.face.createFacemarkLBF()
        facemark.loadModel(self.landmark_model_path)
        return cascade, facemark

    async def _run_load(self) -> None:
        self.state = DetectorState.LOADING
        try:
            self._cascade, self._facemark = await asyncio.to_thread(self._load)
        except Exception as e:
            self.state = DetectorState.FAILED
            self.error = str(e)
            logger.error(f"[FACES] Detector failed to load: {e}")
            raise
        self.state = DetectorState.READY
        self.error = None
        logger.info("[FACES] Detector models loaded")

    async def ensure_ready(self) -> None:
        if self.state == DetectorState.READY:
            return
        if not self.is_configured:
            self.state = DetectorState.FAILED
            self.error = "No landmark model configured"
            raise ExtractionError(self.error)

        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.create_task(self._run_load())
        try:
            await asyncio.shield(self._load_task)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Face detector unavailable: {e}") from e

    def detect(self, buffer: ImageBuffer) -> list[FaceDetection]:
        if self.state != DetectorState.READY:
            raise ExtractionError(f"Face detector is {self.state.value}")

        gray = cv2.cvtColor(np.ascontiguousarray(buffer.rgb), cv2.COLOR_RGB2GRAY)
        boxes = self._cascade.detectMultiScale(gray, scaleFactor=1.1, minNeighbors=5)
        if len(boxes) == 0:
            return []

        ok, landmark_sets = self._facemark.fit(gray, np.asarray(boxes))
        if not ok:
            raise ExtractionError("Landmark fitting failed")

        detections = []
        for (x, y, w, h), points in zip(boxes, landmark_sets):
            detections.append(FaceDetection(
                box=Box(x=float(x), y=float(y), width=float(w), height=float(h)),
                landmarks=[(float(px), float(py)) for px, py in np.asarray(points).reshape(-1, 2)],
            ))
        return detections
