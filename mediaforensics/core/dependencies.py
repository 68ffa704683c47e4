"""
Request-scoped accessors for the engine objects built in the lifespan.

Routes depend on these instead of touching `app.state` directly so tests can
override them with `app.dependency_overrides`.
"""

from typing import Optional

from fastapi import HTTPException, Request

from mediaforensics.forensics.face_detector import FaceDetectorProvider
from mediaforensics.novelty.store import CatalogStore
from mediaforensics.novelty.tracker import MetadataNoveltyTracker


def get_tracker(request: Request) -> Optional[MetadataNoveltyTracker]:
    return getattr(request.app.state, "tracker", None)


def get_detector(request: Request) -> Optional[FaceDetectorProvider]:
    return getattr(request.app.state, "detector", None)


def get_store(request: Request) -> CatalogStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Pattern catalog is not available")
    return store
