"""
Unit tests for mediaforensics/novelty/store.py: InMemoryCatalogStore.

Concurrency is exercised with real threads racing on the same new signature.
"""

import threading
import uuid

from mediaforensics.novelty.patterns import make_candidate
from mediaforensics.novelty.store import InMemoryCatalogStore, append_bounded


def _candidate(software: str = "midjourney"):
    return make_candidate("software_ai", {"software": software})


def test_first_submission_creates_row_at_100():
    store = InMemoryCatalogStore()
    outcome = store.upsert(_candidate(), uuid.uuid4().hex, file_name="a.png")

    assert outcome.created is True
    assert outcome.total_count == 1
    assert outcome.record.occurrence_count == 1
    assert outcome.record.rarity_score == 100.0
    assert outcome.record.first_seen == outcome.record.last_seen
    assert outcome.record.example_file_names == ["a.png"]


def test_repeated_submissions_count_up_and_rarity_never_rises():
    store = InMemoryCatalogStore()
    for other in range(5):
        store.upsert(_candidate(f"tool-{other}"), uuid.uuid4().hex)

    rarities = []
    for n in range(1, 11):
        outcome = store.upsert(_candidate(), uuid.uuid4().hex)
        assert outcome.record.occurrence_count == n
        rarities.append(outcome.record.rarity_score)

    assert rarities[0] == 100.0
    assert all(a >= b for a, b in zip(rarities, rarities[1:]))
    assert store.total_count() == 6


def test_replayed_observation_is_not_counted_twice():
    store = InMemoryCatalogStore()
    store.upsert(_candidate(), "obs-1")
    store.upsert(_candidate(), "obs-2")
    replay = store.upsert(_candidate(), "obs-2")
    assert replay.created is False
    assert replay.record.occurrence_count == 2


def test_replay_of_creating_observation_still_reports_created():
    store = InMemoryCatalogStore()
    store.upsert(_candidate(), "obs-1")
    assert store.upsert(_candidate(), "obs-1").created is True

    store.upsert(_candidate(), "obs-2")
    replay = store.upsert(_candidate(), "obs-1")
    assert replay.created is False
    assert replay.record.occurrence_count == 2


def test_concurrent_first_submissions_converge_to_one_row():
    store = InMemoryCatalogStore()
    barrier = threading.Barrier(8)
    outcomes = []

    def submit():
        barrier.wait()
        outcomes.append(store.upsert(_candidate("brand-new"), uuid.uuid4().hex))

    threads = [threading.Thread(target=submit) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.total_count() == 1
    assert store.get(_candidate("brand-new").signature).occurrence_count == 8
    assert sum(1 for o in outcomes if o.created) == 1


def test_two_racing_submissions_give_count_two():
    store = InMemoryCatalogStore()
    barrier = threading.Barrier(2)

    def submit():
        barrier.wait()
        store.upsert(_candidate("pair"), uuid.uuid4().hex)

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.total_count() == 1
    assert store.get(_candidate("pair").signature).occurrence_count == 2


def test_example_file_names_are_bounded(monkeypatch):
    from mediaforensics.config import settings

    monkeypatch.setattr(settings, "example_file_names_max", 3)
    store = InMemoryCatalogStore()
    for i in range(6):
        store.upsert(_candidate(), uuid.uuid4().hex, file_name=f"f{i}.png")
    assert store.get(_candidate().signature).example_file_names == ["f0.png", "f1.png", "f2.png"]
    assert append_bounded(["a"], "a", 5) == ["a"]


def test_high_risk_software_marks_row_suspicious():
    store = InMemoryCatalogStore()
    candidate = make_candidate("software_unknown", {"software": "x"})
    outcome = store.upsert(candidate, "o1", high_risk_software=True)
    assert outcome.record.is_suspicious is True


def test_list_rare_orders_by_rarity():
    store = InMemoryCatalogStore()
    for _ in range(4):
        store.upsert(_candidate("common"), uuid.uuid4().hex)
    store.upsert(_candidate("rare"), uuid.uuid4().hex)

    rows = store.list_rare(limit=10)
    assert rows[0].signature == _candidate("rare").signature
    assert store.list_rare(limit=1) == rows[:1]
    assert store.get("missing") is None


def test_software_hits_are_counted():
    store = InMemoryCatalogStore()
    store.record_software_match("Midjourney")
    store.record_software_match("Midjourney")
    store.record_software_match("Not In Catalog")
    top = store.list_software()[0]
    assert top.software_name == "Midjourney"
    assert top.occurrence_count == 2
