"""
Tests for GET /patterns/rare, GET /patterns/{signature} and
GET /software-signatures.
"""

from unittest.mock import MagicMock

import pytest

from mediaforensics.core.dependencies import get_store
from mediaforensics.core.errors import CatalogUnavailable
from mediaforensics.main import app
from mediaforensics.novelty.patterns import make_candidate


def _seed(c, software: str, times: int = 1):
    store = c.app.state.store
    candidate = make_candidate("software_unknown", {"software": software})
    for i in range(times):
        store.upsert(candidate, f"{software}-{i}", file_name=f"{software}-{i}.png")
    return candidate.signature


@pytest.fixture
def broken_store():
    store = MagicMock()
    store.list_rare.side_effect = CatalogUnavailable("deadline exceeded")
    store.get.side_effect = CatalogUnavailable("deadline exceeded")
    store.list_software.side_effect = CatalogUnavailable("deadline exceeded")
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_store, None)


# ---------------------------------------------------------------------------
# /patterns/rare
# ---------------------------------------------------------------------------


def test_rare_patterns_empty_catalog(memory_client):
    response = memory_client.get("/patterns/rare")
    assert response.status_code == 200
    assert response.json() == []


def test_rare_patterns_are_ordered_rarest_first(memory_client):
    common = _seed(memory_client, "commontool", times=5)
    rare = _seed(memory_client, "raretool")

    body = memory_client.get("/patterns/rare").json()
    assert [row["signature"] for row in body] == [rare, common]
    assert body[0]["rarityScore"] == 100.0
    assert body[1]["occurrenceCount"] == 5
    assert "recentObservations" not in body[0]


def test_rare_patterns_limit_is_validated(memory_client):
    _seed(memory_client, "one")
    _seed(memory_client, "two")
    assert len(memory_client.get("/patterns/rare?limit=1").json()) == 1
    assert memory_client.get("/patterns/rare?limit=0").status_code == 422
    assert memory_client.get("/patterns/rare?limit=101").status_code == 422


def test_rare_patterns_from_firestore(client):
    signature = _seed(client, "firestoretool", times=2)
    body = client.get("/patterns/rare").json()
    assert body[0]["signature"] == signature
    assert body[0]["occurrenceCount"] == 2


# ---------------------------------------------------------------------------
# /patterns/{signature}
# ---------------------------------------------------------------------------


def test_get_pattern(memory_client):
    signature = _seed(memory_client, "lookuptool", times=3)
    response = memory_client.get(f"/patterns/{signature}")
    assert response.status_code == 200

    body = response.json()
    assert body["anomalyType"] == "software_unknown"
    assert body["occurrenceCount"] == 3
    assert body["exampleFileNames"] == ["lookuptool-0.png", "lookuptool-1.png", "lookuptool-2.png"]


def test_get_unknown_pattern_returns_404(memory_client):
    response = memory_client.get(f"/patterns/{'0' * 64}")
    assert response.status_code == 404
    assert response.json()["detail"] == "Pattern not found"


# ---------------------------------------------------------------------------
# /software-signatures
# ---------------------------------------------------------------------------


def test_software_signatures(memory_client):
    memory_client.app.state.store.record_software_match("Midjourney")
    body = memory_client.get("/software-signatures").json()

    assert body[0]["softwareName"] == "Midjourney"
    assert body[0]["occurrenceCount"] == 1
    assert {row["category"] for row in body} == {"ai_generator", "deepfake_tool", "editor"}


# ---------------------------------------------------------------------------
# Catalog outage
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("path", ["/patterns/rare", f"/patterns/{'a' * 64}", "/software-signatures"])
def test_catalog_outage_returns_503(memory_client, broken_store, path):
    response = memory_client.get(path)
    assert response.status_code == 503
    assert response.json()["detail"] == "Pattern catalog unavailable"
