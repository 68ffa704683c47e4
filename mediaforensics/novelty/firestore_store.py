"""
Firestore-backed pattern catalog.

Layout:
  pattern_signatures/{signature}   one row per pattern
  catalog_meta/stats               {"total_signatures": n}
  software_signatures/{slug}       curated tools with hit counts

The upsert reads the row and the stats document and writes both inside one
transaction, so Firestore's optimistic concurrency retries a racing writer
instead of losing its increment or creating a second row.

The Firebase `db` client is accessed at call-time via the integration module
so it picks up the instance initialized during the FastAPI lifespan.
"""

import re
import logging
from datetime import datetime, timezone
from typing import Optional

from firebase_admin import firestore

from mediaforensics.config import settings
from mediaforensics.core.errors import CatalogUnavailable
from mediaforensics.integrations import firebase as firebase_module
from mediaforensics.novelty.rarity import calculate_rarity_score, is_suspicious_pattern
from mediaforensics.novelty.software_catalog import DEFAULT_SOFTWARE_SIGNATURES
from mediaforensics.novelty.store import (
    CatalogStore,
    append_bounded,
    created_by,
    remember_observation,
)
from mediaforensics.schemas.patterns import (
    PatternCandidate,
    PatternSignature,
    SoftwareSignature,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)

PATTERNS_COLLECTION = "pattern_signatures"
META_COLLECTION = "catalog_meta"
STATS_DOC = "stats"
SOFTWARE_COLLECTION = "software_signatures"


def software_doc_id(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _to_record(data: dict) -> PatternSignature:
    return PatternSignature(**data)


class FirestoreCatalogStore(CatalogStore):
    def __init__(self, db=None):
        self._db = db

    def _get_db(self):
        db = self._db or firebase_module.db
        if not db:
            raise CatalogUnavailable("Firestore is not initialized")
        return db

    def upsert(
        self,
        candidate: PatternCandidate,
        observation_id: str,
        file_name: str = "",
        detection_context: str = "unknown",
        high_risk_software: bool = False,
    ) -> UpsertOutcome:
        db = self._get_db()
        row_ref = db.collection(PATTERNS_COLLECTION).document(candidate.signature)
        stats_ref = db.collection(META_COLLECTION).document(STATS_DOC)
        now = datetime.now(timezone.utc)

        @firestore.transactional
        def upsert_in_transaction(transaction, row_ref, stats_ref):
            snapshot = row_ref.get(transaction=transaction)
            stats = stats_ref.get(transaction=transaction)
            total = (stats.get("total_signatures") if stats.exists else 0) or 0

            if not snapshot.exists:
                total += 1
                data = {
                    "signature": candidate.signature,
                    "anomaly_type": candidate.anomaly_type,
                    "pattern_data": candidate.pattern_data,
                    "occurrence_count": 1,
                    "first_seen": now,
                    "last_seen": now,
                    "rarity_score": 100.0,
                    "is_suspicious": is_suspicious_pattern(
                        100.0, candidate.anomaly_type, high_risk_software
                    ),
                    "detection_context": detection_context,
                    "example_file_names": [file_name] if file_name else [],
                    "recent_observations": [observation_id],
                }
                transaction.set(row_ref, data)
                transaction.set(stats_ref, {
                    "total_signatures": total,
                    "updated_at": firestore.SERVER_TIMESTAMP,
                })
                return data, True, total

            current = snapshot.to_dict()
            recent = current.get("recent_observations") or []
            if observation_id in recent:
                created = created_by(recent, current.get("occurrence_count") or 0, observation_id)
                return current, created, total

            count = (current.get("occurrence_count") or 0) + 1
            rarity = calculate_rarity_score(count, total)
            names = current.get("example_file_names") or []
            update = {
                "occurrence_count": count,
                "last_seen": now,
                "rarity_score": rarity,
                "is_suspicious": is_suspicious_pattern(
                    rarity, current.get("anomaly_type", candidate.anomaly_type), high_risk_software
                ),
                "example_file_names": append_bounded(
                    names, file_name, settings.example_file_names_max
                ) if file_name else names,
                "recent_observations": remember_observation(
                    current.get("recent_observations") or [], observation_id
                ),
            }
            transaction.update(row_ref, update)
            return {**current, **update}, False, total

        try:
            transaction = db.transaction()
            data, created, total = upsert_in_transaction(transaction, row_ref, stats_ref)
        except Exception as e:
            logger.error(f"[NOVELTY] Firestore upsert failed for {candidate.signature[:12]}: {e}")
            raise CatalogUnavailable(str(e)) from e

        return UpsertOutcome(record=_to_record(data), created=created, total_count=total)

    def get(self, signature: str) -> Optional[PatternSignature]:
        db = self._get_db()
        try:
            doc = db.collection(PATTERNS_COLLECTION).document(signature).get()
        except Exception as e:
            raise CatalogUnavailable(str(e)) from e
        return _to_record(doc.to_dict()) if doc.exists else None

    def list_rare(self, limit: int = 20) -> list[PatternSignature]:
        db = self._get_db()
        try:
            docs = (
                db.collection(PATTERNS_COLLECTION)
                .order_by("rarity_score", direction=firestore.Query.DESCENDING)
                .limit(limit)
                .stream()
            )
            return [_to_record(doc.to_dict()) for doc in docs]
        except Exception as e:
            raise CatalogUnavailable(str(e)) from e

    def total_count(self) -> int:
        db = self._get_db()
        try:
            stats = db.collection(META_COLLECTION).document(STATS_DOC).get()
        except Exception as e:
            raise CatalogUnavailable(str(e)) from e
        return (stats.get("total_signatures") or 0) if stats.exists else 0

    def list_software(self) -> list[SoftwareSignature]:
        """Stored entries overlay the curated defaults (hit counts, verification)."""
        db = self._get_db()
        merged = {software_doc_id(s.software_name): s for s in DEFAULT_SOFTWARE_SIGNATURES}
        try:
            for doc in db.collection(SOFTWARE_COLLECTION).stream():
                data = doc.to_dict()
                base = merged.get(doc.id)
                if base is not None:
                    merged[doc.id] = base.model_copy(update={
                        "occurrence_count": data.get("occurrence_count", 0),
                        "is_verified": data.get("is_verified", base.is_verified),
                    })
                elif data.get("signature_pattern") and data.get("software_name"):
                    merged[doc.id] = SoftwareSignature(**data)
        except Exception as e:
            logger.warning(f"[NOVELTY] Software catalog read failed, using defaults: {e}")
        return sorted(merged.values(), key=lambda s: -s.occurrence_count)

    def record_software_match(self, software_name: str) -> None:
        db = self._get_db()
        ref = db.collection(SOFTWARE_COLLECTION).document(software_doc_id(software_name))
        try:
            ref.set({
                "software_name": software_name,
                "occurrence_count": firestore.Increment(1),
                "last_seen": firestore.SERVER_TIMESTAMP,
            }, merge=True)
        except Exception as e:
            logger.warning(f"[NOVELTY] Software hit count update failed for {software_name}: {e}")
