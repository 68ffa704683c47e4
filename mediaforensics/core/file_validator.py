"""
Upload validation and log sanitization utilities.

Sets PIL.Image.MAX_IMAGE_PIXELS to prevent decompression-bomb attacks.
"""

import io
import os
import re
import wave
import logging

from fastapi import HTTPException
from PIL import Image

from mediaforensics.config import settings

Image.MAX_IMAGE_PIXELS = settings.pil_max_image_pixels

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp', '.tif', '.tiff']
AUDIO_EXTENSIONS = ['.wav', '.wave']
IMAGE_FORMATS = ['jpeg', 'png', 'webp', 'gif', 'bmp', 'tiff', 'mpo']


def media_kind(filename: str) -> str:
    """Return "image" or "audio" for a supported extension; 415 otherwise."""
    ext = os.path.splitext(filename or "")[1].lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext in AUDIO_EXTENSIONS:
        return "audio"
    raise HTTPException(status_code=415, detail="Unsupported file format.")


def validate_file(filename: str, filesize: int, data: bytes = None, kind: str = None) -> bool:
    """Check file extension, size, and content integrity."""
    actual_kind = media_kind(filename)
    if kind and actual_kind != kind:
        raise HTTPException(
            status_code=415,
            detail=f"Expected an {kind} file, got {os.path.splitext(filename)[1].lower()}."
        )

    if actual_kind == "image":
        if filesize > settings.max_image_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Image too large. Max {settings.max_image_upload_mb}MB allowed."
            )
    elif filesize > settings.max_audio_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Audio too large. Max {settings.max_audio_upload_mb}MB allowed."
        )

    if data is not None:
        try:
            if not data:
                raise ValueError("Empty upload")
            if actual_kind == "image":
                with Image.open(io.BytesIO(data)) as img:
                    img.verify()
                with Image.open(io.BytesIO(data)) as img2:
                    actual_format = (img2.format or "").lower()
                    if actual_format not in IMAGE_FORMATS:
                        raise ValueError(f"Format mismatch: {actual_format}")
            else:
                with wave.open(io.BytesIO(data), "rb") as wav:
                    if wav.getnframes() == 0:
                        raise ValueError("WAV stream has no frames")
        except Exception as e:
            logger.error(f"Corrupted or mislabelled upload ({sanitize_log_message(filename)}): {e}")
            raise HTTPException(status_code=400, detail="Invalid file content or format mismatch.")

    return True


def sanitize_log_message(message: str) -> str:
    """Strip sensitive file paths from log messages."""
    msg = re.sub(r'\/[^\s]+\/tmp[a-zA-Z0-9_]+', '[TEMP_FILE]', message)
    msg = re.sub(r'\/[^\s]+\/([^\/\s]+)', r'.../\1', msg)
    return msg
