"""
Pattern catalog storage.

`CatalogStore` is the only door to the shared catalog. Every mutation goes
through `upsert`, which must create-or-increment a row atomically: callers
never read a row and write it back themselves.

Each submission carries an `observation_id`. A store remembers the last few
ids applied to a row and ignores a repeat, so a caller may safely retry an
upsert whose outcome it never saw.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from mediaforensics.config import settings
from mediaforensics.novelty.rarity import calculate_rarity_score, is_suspicious_pattern
from mediaforensics.novelty.software_catalog import DEFAULT_SOFTWARE_SIGNATURES
from mediaforensics.schemas.patterns import (
    PatternCandidate,
    PatternSignature,
    SoftwareSignature,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)


def append_bounded(items: list, value, limit: int) -> list:
    """Copy of `items` with `value` appended if new and there is room."""
    if value in items or len(items) >= limit:
        return list(items)
    return [*items, value]


def remember_observation(recent: list[str], observation_id: str) -> list[str]:
    return [*recent, observation_id][-settings.recent_observations_max:]


def created_by(recent: list[str], occurrence_count: int, observation_id: str) -> bool:
    """True when `observation_id` is the one that inserted the row.

    Holds only while the id list is untrimmed, so a replay after the row has
    seen more than `recent_observations_max` sightings reports False.
    """
    return recent[:1] == [observation_id] and occurrence_count == len(recent)


class CatalogStore(ABC):
    @abstractmethod
    def upsert(
        self,
        candidate: PatternCandidate,
        observation_id: str,
        file_name: str = "",
        detection_context: str = "unknown",
        high_risk_software: bool = False,
    ) -> UpsertOutcome:
        """Create the row at count 1 or increment it, and recompute its rarity."""

    @abstractmethod
    def get(self, signature: str) -> Optional[PatternSignature]:
        ...

    @abstractmethod
    def list_rare(self, limit: int = 20) -> list[PatternSignature]:
        """Rows ordered by rarity, rarest first."""

    @abstractmethod
    def total_count(self) -> int:
        """Number of distinct signatures in the catalog."""

    @abstractmethod
    def list_software(self) -> list[SoftwareSignature]:
        ...

    @abstractmethod
    def record_software_match(self, software_name: str) -> None:
        ...


class InMemoryCatalogStore(CatalogStore):
    """Process-local catalog guarded by a single lock."""

    def __init__(self, software: Optional[list[SoftwareSignature]] = None):
        self._lock = threading.Lock()
        self._rows: dict[str, PatternSignature] = {}
        self._software: dict[str, SoftwareSignature] = {
            s.software_name: s for s in (software if software is not None else DEFAULT_SOFTWARE_SIGNATURES)
        }

    def upsert(
        self,
        candidate: PatternCandidate,
        observation_id: str,
        file_name: str = "",
        detection_context: str = "unknown",
        high_risk_software: bool = False,
    ) -> UpsertOutcome:
        now = datetime.now(timezone.utc)
        with self._lock:
            row = self._rows.get(candidate.signature)

            if row is None:
                row = PatternSignature(
                    signature=candidate.signature,
                    anomaly_type=candidate.anomaly_type,
                    pattern_data=candidate.pattern_data,
                    occurrence_count=1,
                    first_seen=now,
                    last_seen=now,
                    rarity_score=100.0,
                    is_suspicious=is_suspicious_pattern(100.0, candidate.anomaly_type, high_risk_software),
                    detection_context=detection_context,
                    example_file_names=[file_name] if file_name else [],
                    recent_observations=[observation_id],
                )
                self._rows[candidate.signature] = row
                return UpsertOutcome(record=row, created=True, total_count=len(self._rows))

            if observation_id in row.recent_observations:
                created = created_by(row.recent_observations, row.occurrence_count, observation_id)
                return UpsertOutcome(record=row, created=created, total_count=len(self._rows))

            count = row.occurrence_count + 1
            rarity = calculate_rarity_score(count, len(self._rows))
            row = row.model_copy(update={
                "occurrence_count": count,
                "last_seen": now,
                "rarity_score": rarity,
                "is_suspicious": is_suspicious_pattern(rarity, row.anomaly_type, high_risk_software),
                "example_file_names": append_bounded(
                    row.example_file_names, file_name, settings.example_file_names_max
                ) if file_name else list(row.example_file_names),
                "recent_observations": remember_observation(row.recent_observations, observation_id),
            })
            self._rows[candidate.signature] = row
            return UpsertOutcome(record=row, created=False, total_count=len(self._rows))

    def get(self, signature: str) -> Optional[PatternSignature]:
        with self._lock:
            return self._rows.get(signature)

    def list_rare(self, limit: int = 20) -> list[PatternSignature]:
        with self._lock:
            rows = list(self._rows.values())
        rows.sort(key=lambda r: (-r.rarity_score, r.occurrence_count))
        return rows[:limit]

    def total_count(self) -> int:
        with self._lock:
            return len(self._rows)

    def list_software(self) -> list[SoftwareSignature]:
        with self._lock:
            rows = list(self._software.values())
        return sorted(rows, key=lambda s: -s.occurrence_count)

    def record_software_match(self, software_name: str) -> None:
        with self._lock:
            sig = self._software.get(software_name)
            if sig is None:
                logger.debug(f"[NOVELTY] Unknown software entry: {software_name}")
                return
            self._software[software_name] = sig.model_copy(
                update={"occurrence_count": sig.occurrence_count + 1}
            )
