"""
Unit tests for mediaforensics/novelty/firestore_store.py.

Firebase transactions are neutralised with a pass-through mock_transactional
(firestore_tx fixture) so the transaction body runs inline against MockFirestore.
"""

from unittest.mock import MagicMock

import pytest

from mediaforensics.core.errors import CatalogUnavailable
from mediaforensics.novelty.firestore_store import (
    META_COLLECTION,
    PATTERNS_COLLECTION,
    SOFTWARE_COLLECTION,
    FirestoreCatalogStore,
    software_doc_id,
)
from mediaforensics.novelty.patterns import make_candidate

pytestmark = pytest.mark.usefixtures("firestore_tx")


def _candidate(software: str = "midjourney"):
    return make_candidate("software_ai", {"software": software})


def test_create_then_increment(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)

    first = store.upsert(_candidate(), "obs-1", file_name="a.png", detection_context="api")
    assert first.created is True
    assert first.record.rarity_score == 100.0
    assert first.record.detection_context == "api"

    store.upsert(_candidate("other"), "obs-2")
    second = store.upsert(_candidate(), "obs-3", file_name="b.png")
    assert second.created is False
    assert second.record.occurrence_count == 2
    assert second.record.rarity_score < 100.0
    assert second.record.example_file_names == ["a.png", "b.png"]

    stats = mock_firebase.dump(META_COLLECTION)["stats"]
    assert stats["total_signatures"] == 2
    assert store.total_count() == 2


def test_upsert_runs_in_one_transaction_per_call(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)
    store.upsert(_candidate(), "obs-1")
    store.upsert(_candidate(), "obs-2")

    assert len(mock_firebase.transactions) == 2
    created_writes = [w[1] for w in mock_firebase.transactions[0].writes]
    assert created_writes == [_candidate().signature, "stats"]
    assert [w[0] for w in mock_firebase.transactions[1].writes] == ["update"]


def test_replayed_observation_is_ignored(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)
    store.upsert(_candidate(), "obs-1")
    store.upsert(_candidate(), "obs-2")
    replay = store.upsert(_candidate(), "obs-2")

    assert replay.record.occurrence_count == 2
    row = mock_firebase.dump(PATTERNS_COLLECTION)[_candidate().signature]
    assert row["occurrence_count"] == 2


def test_replay_of_creating_observation_keeps_created_flag(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)
    store.upsert(_candidate(), "obs-1")

    replay = store.upsert(_candidate(), "obs-1")
    assert replay.created is True
    assert replay.record.occurrence_count == 1
    assert len(mock_firebase.dump(PATTERNS_COLLECTION)) == 1


def test_get_and_list_rare(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)
    for i in range(3):
        store.upsert(_candidate("common"), f"c{i}")
    store.upsert(_candidate("rare"), "r0")

    assert store.get(_candidate("rare").signature).occurrence_count == 1
    assert store.get("missing") is None
    rows = store.list_rare(limit=1)
    assert [r.signature for r in rows] == [_candidate("rare").signature]


def test_software_hits_use_increment(mock_firebase):
    store = FirestoreCatalogStore(db=mock_firebase)
    store.record_software_match("Stable Diffusion")
    store.record_software_match("Stable Diffusion")

    doc = mock_firebase.dump(SOFTWARE_COLLECTION)[software_doc_id("Stable Diffusion")]
    assert doc["occurrence_count"] == 2

    merged = {s.software_name: s for s in store.list_software()}
    assert merged["Stable Diffusion"].occurrence_count == 2
    assert merged["Stable Diffusion"].risk_level == "high"
    assert "Adobe Photoshop" in merged


def test_missing_db_raises_catalog_unavailable(monkeypatch):
    from mediaforensics.integrations import firebase as fb

    monkeypatch.setattr(fb, "db", None)
    store = FirestoreCatalogStore()
    with pytest.raises(CatalogUnavailable):
        store.upsert(_candidate(), "obs-1")
    with pytest.raises(CatalogUnavailable):
        store.list_rare()


def test_transaction_failure_raises_catalog_unavailable(mock_firebase):
    broken = MagicMock()
    broken.collection.side_effect = mock_firebase.collection
    broken.transaction.side_effect = RuntimeError("deadline exceeded")
    store = FirestoreCatalogStore(db=broken)

    with pytest.raises(CatalogUnavailable):
        store.upsert(_candidate(), "obs-1")


def test_software_doc_id_slug():
    assert software_doc_id("AUTOMATIC1111 WebUI") == "automatic1111-webui"
    assert software_doc_id("Leonardo.Ai") == "leonardo-ai"
