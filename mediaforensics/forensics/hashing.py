"""
Hashing helpers for the report cache layer.
"""

import hashlib
import logging

from mediaforensics.forensics.buffers import MediaFile

logger = logging.getLogger(__name__)


def get_media_hash(media: MediaFile, modality: str) -> str:
    """
    Cache key for one modality report of one upload.

    The declared name and MIME type are part of the key because the metadata
    analyzer reads them.
    """
    h = hashlib.sha256()
    h.update(media.data)
    h.update(b"\x00" + media.filename.encode("utf-8"))
    h.update(b"\x00" + media.content_type.encode("utf-8"))
    res = f"{modality}:{h.hexdigest()}"
    logger.debug(f"[HASH] {modality} key for {len(media.data)} bytes: {res}")
    return res
