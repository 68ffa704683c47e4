"""
Pattern catalog routes: rare patterns, one signature, software catalog.

Catalog calls are blocking (Firestore SDK), so they run in the threadpool.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from mediaforensics.core.dependencies import get_store
from mediaforensics.core.errors import CatalogUnavailable
from mediaforensics.novelty.store import CatalogStore
from mediaforensics.schemas.patterns import PatternSignature, SoftwareSignature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Patterns"])


@router.get("/patterns/rare", response_model=list[PatternSignature])
async def list_rare_patterns(
    limit: int = Query(20, ge=1, le=100),
    store: CatalogStore = Depends(get_store),
):
    """Catalog rows ordered by rarity, rarest first."""
    try:
        return await run_in_threadpool(store.list_rare, limit)
    except CatalogUnavailable as e:
        logger.error(f"[NOVELTY] Rare-pattern listing failed: {e}")
        raise HTTPException(status_code=503, detail="Pattern catalog unavailable")


@router.get("/patterns/{signature}", response_model=PatternSignature)
async def get_pattern(signature: str, store: CatalogStore = Depends(get_store)):
    try:
        record = await run_in_threadpool(store.get, signature)
    except CatalogUnavailable as e:
        logger.error(f"[NOVELTY] Pattern lookup failed for {signature[:12]}: {e}")
        raise HTTPException(status_code=503, detail="Pattern catalog unavailable")
    if record is None:
        raise HTTPException(status_code=404, detail="Pattern not found")
    return record


@router.get("/software-signatures", response_model=list[SoftwareSignature])
async def list_software_signatures(store: CatalogStore = Depends(get_store)):
    try:
        return await run_in_threadpool(store.list_software)
    except CatalogUnavailable as e:
        logger.error(f"[NOVELTY] Software catalog read failed: {e}")
        raise HTTPException(status_code=503, detail="Pattern catalog unavailable")
