"""
Shared pytest fixtures for all test modules.

IMPORTANT: TESTING must be set before the app is imported so the lifespan
skips the background cleanup task.
"""

import io
import os
import wave

os.environ["TESTING"] = "true"

from unittest.mock import patch

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image, PngImagePlugin

from tests.mocks.firebase_mock import MockFirestore, mock_transactional
from tests.mocks.redis_mock import MockRedis

# App import happens AFTER os.environ["TESTING"] is set above.
from mediaforensics.main import app  # noqa: E402


# ---------------------------------------------------------------------------
# Core infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Local report cache and rate-limit windows are module globals."""
    from mediaforensics.core import rate_limiter
    from mediaforensics.forensics import cache

    cache.local_cache.clear()
    rate_limiter._rate_limits.clear()
    yield
    cache.local_cache.clear()
    rate_limiter._rate_limits.clear()


@pytest.fixture
def mock_firebase(monkeypatch):
    """Replace firebase.db with an in-memory MockFirestore."""
    from mediaforensics.integrations import firebase as fb

    mock_db = MockFirestore()
    monkeypatch.setattr(fb, "db", mock_db)
    return mock_db


@pytest.fixture
def mock_redis(monkeypatch):
    """Replace redis_client.client with an in-memory MockRedis."""
    from mediaforensics.integrations import redis_client as rc

    mock_rc = MockRedis()
    monkeypatch.setattr(rc, "client", mock_rc)
    return mock_rc


@pytest.fixture
def no_redis(monkeypatch):
    from mediaforensics.integrations import redis_client as rc

    monkeypatch.setattr(rc, "client", None)


@pytest.fixture
def firestore_tx():
    """Neutralise @firestore.transactional so MockFirestore transactions run inline."""
    with patch("firebase_admin.firestore.transactional", side_effect=mock_transactional):
        yield


@pytest.fixture
def client(mock_firebase, mock_redis, firestore_tx):
    """
    FastAPI TestClient with mocked Firebase and Redis.

    initialize() calls are patched to no-ops so they can't overwrite our mocks
    or attempt real network connections during the lifespan startup.
    """
    with (
        patch("mediaforensics.integrations.firebase.initialize"),
        patch("mediaforensics.integrations.redis_client.initialize"),
        patch("mediaforensics.integrations.http_client.initialize"),
    ):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c


@pytest.fixture
def memory_client(mock_redis, monkeypatch):
    """TestClient whose lifespan falls back to the in-memory pattern catalog."""
    from mediaforensics.integrations import firebase as fb

    monkeypatch.setattr(fb, "db", None)
    with (
        patch("mediaforensics.integrations.firebase.initialize"),
        patch("mediaforensics.integrations.redis_client.initialize"),
        patch("mediaforensics.integrations.http_client.initialize"),
    ):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c


# ---------------------------------------------------------------------------
# Shared test-data helpers
# ---------------------------------------------------------------------------


def gradient_pixels(width: int = 64, height: int = 64) -> np.ndarray:
    """Smooth RGB gradient: no hard edges, no flat histogram."""
    xs = np.linspace(0, 255, width)
    ys = np.linspace(0, 255, height)
    r = np.tile(xs, (height, 1))
    g = np.tile(ys[:, None], (1, width))
    b = (r + g) / 2
    return np.stack([r, g, b], axis=2).astype(np.uint8)


def encode_image(pixels: np.ndarray, fmt: str = "PNG", text: dict | None = None, **save_kwargs) -> bytes:
    buf = io.BytesIO()
    img = Image.fromarray(pixels)
    if fmt == "PNG" and text:
        info = PngImagePlugin.PngInfo()
        for key, value in text.items():
            info.add_text(key, value)
        save_kwargs["pnginfo"] = info
    img.save(buf, format=fmt, **save_kwargs)
    return buf.getvalue()


def make_tiny_jpeg() -> bytes:
    """Create a minimal 10×10 JPEG in memory; fast and valid."""
    buf = io.BytesIO()
    Image.new("RGB", (10, 10), color=(128, 128, 128)).save(buf, format="JPEG")
    return buf.getvalue()


def make_wav(samples: np.ndarray, sample_rate: int = 44100, channels: int = 1) -> bytes:
    """Encode float samples in [-1, 1] as 16-bit PCM WAV."""
    pcm = (np.clip(samples, -1, 1) * 32767).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def sine(freq: float, seconds: float = 1.0, sample_rate: int = 44100, amplitude: float = 0.5) -> np.ndarray:
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    return amplitude * np.sin(2 * np.pi * freq * t)


def mirrored_landmarks(cx: float = 100.0, top: float = 50.0) -> list[tuple[float, float]]:
    """68 points symmetric about x = cx through the nose tip (index 30)."""
    from mediaforensics.forensics.face_geometry import INNER_LIP_PAIRS, NOSE_TIP, SYMMETRY_PAIRS

    points = [(cx, top + i) for i in range(68)]
    for offset, (left, right) in enumerate(SYMMETRY_PAIRS + INNER_LIP_PAIRS, start=1):
        y = top + 2 * offset
        dx = 5 + offset
        points[left] = (cx - dx, y)
        points[right] = (cx + dx, y)
    points[NOSE_TIP] = (cx, top + 40)
    return points


@pytest.fixture
def gradient_png() -> bytes:
    return encode_image(gradient_pixels())


@pytest.fixture
def tiny_jpg() -> bytes:
    return make_tiny_jpeg()
