"""
Unit tests for mediaforensics/forensics/aggregator.py: job state machine,
verdict thresholds and weighted modality fusion.
"""

import pytest

from mediaforensics.core.errors import AnalysisUnavailable, InvalidTransition
from mediaforensics.forensics.aggregator import AnalysisJob, aggregate, dedupe_findings, verdict_for
from mediaforensics.schemas.patterns import NoveltyResult, NoveltySummary
from mediaforensics.schemas.report import JobStatus, ModalityOutcome, Verdict


def _extracting_job() -> AnalysisJob:
    job = AnalysisJob()
    job.advance(JobStatus.EXTRACTING)
    return job


def _ok(name: str, score: int) -> ModalityOutcome:
    return ModalityOutcome(name=name, status="ok", score=score)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def test_happy_path_history():
    job = _extracting_job()
    aggregate(job, [_ok("image", 10)])
    assert job.history == [
        JobStatus.SUBMITTED, JobStatus.EXTRACTING, JobStatus.AGGREGATING, JobStatus.SCORED,
    ]


def test_skipping_a_state_is_rejected():
    job = AnalysisJob()
    with pytest.raises(InvalidTransition):
        job.advance(JobStatus.AGGREGATING)
    assert job.status == JobStatus.SUBMITTED


def test_terminal_states_are_final():
    job = _extracting_job()
    aggregate(job, [_ok("image", 10)])
    with pytest.raises(InvalidTransition):
        job.advance(JobStatus.FAILED)

    job.fail("late error")
    assert job.status == JobStatus.SCORED


# ---------------------------------------------------------------------------
# Verdicts and fusion
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("score,verdict", [
    (0, Verdict.AUTHENTIC),
    (19, Verdict.AUTHENTIC),
    (20, Verdict.SUSPICIOUS),
    (59, Verdict.SUSPICIOUS),
    (60, Verdict.LIKELY_FAKE),
    (100, Verdict.LIKELY_FAKE),
])
def test_verdict_thresholds(score, verdict):
    assert verdict_for(score) == verdict


def test_weighted_fusion():
    report = aggregate(_extracting_job(), [_ok("image", 50), _ok("faces", 100)])
    assert report.overall_score == 70
    assert report.verdict == Verdict.LIKELY_FAKE
    assert report.is_partial is False
    assert report.status == JobStatus.SCORED


def test_failed_modality_renormalizes_and_marks_partial():
    outcomes = [_ok("image", 50), ModalityOutcome(name="faces", status="timeout", error="Exceeded 30s")]
    report = aggregate(_extracting_job(), outcomes)

    assert report.overall_score == 50
    assert report.is_partial is True
    assert report.missing_modalities == ["faces"]
    assert "faces analysis unavailable" in report.findings


def test_skipped_modality_is_not_missing():
    outcomes = [_ok("image", 30), ModalityOutcome(name="faces", status="skipped", error="No faces")]
    report = aggregate(_extracting_job(), outcomes)
    assert report.overall_score == 30
    assert report.is_partial is False
    assert report.missing_modalities == []


def test_all_modalities_failed():
    job = _extracting_job()
    outcomes = [
        ModalityOutcome(name="image", status="failed", error="Unsupported image format"),
        ModalityOutcome(name="faces", status="skipped", error="No face detector configured"),
    ]
    with pytest.raises(AnalysisUnavailable) as exc:
        aggregate(job, outcomes)

    assert exc.value.failures == {"image": "Unsupported image format"}
    assert job.status == JobStatus.FAILED


# ---------------------------------------------------------------------------
# Novelty findings
# ---------------------------------------------------------------------------


def test_novelty_adds_findings_but_not_score():
    novelty = NoveltySummary(status="partial", patterns=[
        NoveltyResult(signature="a", anomaly_type="software_ai", status="tracked", rarity_score=100.0,
                      is_never_seen_before=True, is_suspicious=True, software_match="Midjourney"),
        NoveltyResult(signature="b", anomaly_type="exif_missing", status="unknown"),
    ])
    plain = aggregate(_extracting_job(), [_ok("image", 40)])
    flagged = aggregate(_extracting_job(), [_ok("image", 40)], novelty=novelty)

    assert flagged.overall_score == plain.overall_score
    assert "Suspicious metadata pattern: software_ai (Midjourney), rarity 100" in flagged.findings
    assert "Pattern catalog unavailable: rarity unknown for some metadata patterns" in flagged.findings


def test_dedupe_findings_keeps_first_occurrence_order():
    assert dedupe_findings([["a", "b"], ["b", "c"], ["a"]]) == ["a", "b", "c"]
