"""
Decoded media buffers shared read-only across extractors.

`decode_image` and `decode_audio` are the only places raw bytes are turned
into arrays; both raise DecodeError for unsupported or corrupt input.
"""

import io
import logging
import os
import wave
from dataclasses import dataclass, field

import numpy as np
from PIL import Image, UnidentifiedImageError

from mediaforensics.core.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaFile:
    """Original upload: bytes plus the name/type the client declared."""
    data: bytes
    filename: str
    content_type: str = ""

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower().lstrip(".")


@dataclass(frozen=True)
class ImageBuffer:
    pixels: np.ndarray      # (height, width, 4) uint8 RGBA, read-only

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def rgb(self) -> np.ndarray:
        return self.pixels[:, :, :3]

    def intensity(self) -> np.ndarray:
        """3-channel average as float64, shape (height, width)."""
        return self.rgb.astype(np.float64).mean(axis=2)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "ImageBuffer":
        """Wrap an (H, W, 3|4) uint8 array; alpha is filled with 255 when absent."""
        arr = np.asarray(array, dtype=np.uint8)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise DecodeError(f"Expected HxWx3 or HxWx4 pixels, got shape {arr.shape}")
        if arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=2)
        arr = np.ascontiguousarray(arr)
        arr.setflags(write=False)
        return cls(pixels=arr)

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.rgb))


@dataclass(frozen=True)
class AudioBuffer:
    samples: np.ndarray     # mono float32 in [-1, 1], read-only
    sample_rate: int
    mime_type: str = "audio/wav"
    channels: int = field(default=1)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0

    @classmethod
    def from_samples(
        cls, samples, sample_rate: int, mime_type: str = "audio/wav", channels: int = 1
    ) -> "AudioBuffer":
        arr = np.ascontiguousarray(np.asarray(samples, dtype=np.float32).reshape(-1))
        arr.setflags(write=False)
        return cls(samples=arr, sample_rate=int(sample_rate), mime_type=mime_type, channels=channels)


def decode_image(data: bytes) -> ImageBuffer:
    """Decode any Pillow-readable image into an RGBA buffer."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeError(f"Could not decode image: {e}") from e

    if rgba.width == 0 or rgba.height == 0:
        raise DecodeError("Image has no pixels")
    return ImageBuffer.from_array(np.array(rgba))


def decode_audio(data: bytes, mime_type: str = "audio/wav") -> AudioBuffer:
    """
    Decode WAV bytes to mono float32 samples.

    Supports 8-bit, 16-bit, 24-bit, and 32-bit PCM WAV files.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            sr = wf.getframerate()
            n_channels = wf.getnchannels()
            sampwidth = wf.getsampwidth()
            raw = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        raise DecodeError(f"Could not decode audio: {e}") from e

    if sampwidth == 1:
        samples = np.frombuffer(raw, dtype=np.uint8).astype(np.float32) / 128.0 - 1.0
    elif sampwidth == 2:
        samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    elif sampwidth == 3:
        # 24-bit: vectorized unpack of 3-byte little-endian samples
        raw_arr = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3)
        ints = (raw_arr[:, 0].astype(np.int32)
                | (raw_arr[:, 1].astype(np.int32) << 8)
                | (raw_arr[:, 2].astype(np.int32) << 16))
        ints = np.where(ints >= 0x800000, ints - 0x1000000, ints)
        samples = ints.astype(np.float32) / 8388608.0
    elif sampwidth == 4:
        samples = np.frombuffer(raw, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise DecodeError(f"Unsupported sample width: {sampwidth}")

    if n_channels > 1:
        usable = len(samples) - len(samples) % n_channels
        samples = samples[:usable].reshape(-1, n_channels).mean(axis=1)

    if sr <= 0 or len(samples) == 0:
        raise DecodeError("Audio stream is empty")

    logger.debug(f"[DECODE] audio: {len(samples)} samples @ {sr} Hz, {n_channels} ch")
    return AudioBuffer.from_samples(samples, sr, mime_type, channels=n_channels)
