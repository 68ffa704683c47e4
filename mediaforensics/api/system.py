"""
System / health routes.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["System"])


@router.get("/health")
async def health(request: Request):
    detector = getattr(request.app.state, "detector", None)
    store = getattr(request.app.state, "store", None)
    return {
        "status": "healthy",
        "catalog": type(store).__name__ if store is not None else None,
        "face_detector": detector.state.value if detector is not None else None,
    }


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots():
    return "User-agent: *\nDisallow: /"
