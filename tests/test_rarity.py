"""Pure unit tests for mediaforensics/novelty/rarity.py."""

import pytest

from mediaforensics.novelty.rarity import calculate_rarity_score, is_suspicious_pattern


def test_first_sighting_is_always_100():
    for total in (0, 1, 10, 10_000):
        assert calculate_rarity_score(1, total) == 100.0


def test_score_falls_as_occurrences_grow():
    scores = [calculate_rarity_score(n, 50) for n in range(1, 200)]
    assert all(a >= b for a, b in zip(scores, scores[1:]))
    assert scores[-1] < scores[0]


def test_same_count_reads_rarer_in_a_larger_population():
    assert calculate_rarity_score(5, 10) < calculate_rarity_score(5, 1000)


def test_score_is_bounded_and_rounded():
    for occurrence in (1, 2, 7, 500, 10**6):
        for total in (0, 1, 3, 10**6):
            score = calculate_rarity_score(occurrence, total)
            assert 0 <= score <= 100
            assert score == round(score, 2)


def test_degenerate_inputs_are_clamped():
    assert calculate_rarity_score(0, 5) == 100.0
    assert calculate_rarity_score(3, -4) == 0.0


@pytest.mark.parametrize("rarity,anomaly_type,high_risk,expected", [
    (95.0, "software_ai", False, True),
    (80.0, "software_ai", False, False),
    (99.0, "exif_missing", False, False),
    (10.0, "exif_missing", True, True),
])
def test_suspicion_rule(rarity, anomaly_type, high_risk, expected):
    assert is_suspicious_pattern(rarity, anomaly_type, high_risk) is expected


def test_suspicious_types_can_be_overridden():
    assert is_suspicious_pattern(90.0, "exif_missing", suspicious_types={"exif_missing"}) is True
