from __future__ import annotations

from datetime import datetime, timezone

from core.assessment import CategoryDetail, ImportanceAssessment, ImportanceDetail
from core.config import ScoringWeights
from core.models import MediaKind, SourceInfo
from core.scoring import ImportanceScorer, ImportanceTier, classify_score, is_breaking_news, source_reliability

NOON = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _assessment(score: int) -> ImportanceAssessment:
    return ImportanceAssessment(
        importance=ImportanceDetail(score=score, reasoning="test"),
        category=CategoryDetail(category="politics", confidence=0.9),
    )


def test_content_score_grows_with_length_and_keywords() -> None:
    filler = " The committee published further details later in the day."
    texts = [
        "Meeting notes",
        "Minister presents the budget for 2025." + filler,
        "Minister presents the budget for 2025, details at https://example.org" + filler * 5,
        "Breaking: minister presents the budget for 2025, see https://example.org" + filler * 9,
    ]
    scores = [ImportanceScorer.content_score(text) for text in texts]
    assert scores == sorted(scores)
    assert scores[0] == 0
    assert scores[-1] == 90


def test_content_score_counts_media() -> None:
    assert ImportanceScorer.content_score("Photo report", MediaKind.PHOTO) == 10
    assert ImportanceScorer.content_score("Photo report", MediaKind.TEXT) == 0


def test_content_score_is_capped() -> None:
    text = "⚡ Breaking: war and sanctions, 100 dead, https://x.y " + "x" * 600
    assert ImportanceScorer.content_score(text, MediaKind.VIDEO) == 100


def test_timeliness_score() -> None:
    assert ImportanceScorer.timeliness_score(3, breaking=True) == 100
    assert ImportanceScorer.timeliness_score(3, breaking=False) == 50
    assert ImportanceScorer.timeliness_score(8, breaking=False) == 70
    assert ImportanceScorer.timeliness_score(12, breaking=False) == 80
    assert ImportanceScorer.timeliness_score(22, breaking=False) == 70


def test_source_score_without_source() -> None:
    assert ImportanceScorer.source_score(None) == 65


def test_source_score_for_verified_reliable_large_channel() -> None:
    source = SourceInfo("@reuters", display_name="Reuters World", subscriber_count=250_000, verified=True)
    assert ImportanceScorer.source_score(source) == 100


def test_unreliable_source_is_floored() -> None:
    assert source_reliability("Anonymous rumors") == 0.1
    assert ImportanceScorer.source_score(SourceInfo("@x", display_name="Anonymous rumors")) == 53


def test_final_score_uses_weights() -> None:
    scorer = ImportanceScorer(ScoringWeights(content=0.0, assessment=1.0, source=0.0, timeliness=0.0))
    breakdown = scorer.score("Meeting notes", _assessment(73), now=NOON)
    assert breakdown.final_score == 73
    assert breakdown.tier == ImportanceTier.HIGH


def test_default_weights_combine_subscores() -> None:
    breakdown = ImportanceScorer().score("Meeting notes", _assessment(60), now=NOON)
    assert (breakdown.content_score, breakdown.source_score, breakdown.timeliness_score) == (0, 65, 80)
    # 0*0.25 + 60*0.5 + 65*0.15 + 80*0.1 = 47.75
    assert breakdown.final_score == 48
    assert breakdown.tier == ImportanceTier.LOW


def test_invalid_weights_warn_but_still_score() -> None:
    scorer = ImportanceScorer(ScoringWeights(content=0.5, assessment=0.5, source=0.5, timeliness=0.5))
    assert not scorer.weights_valid
    breakdown = scorer.score("Meeting notes", _assessment(100), now=NOON)
    assert 0 <= breakdown.final_score <= 100


def test_with_weights_returns_new_scorer() -> None:
    scorer = ImportanceScorer()
    other = scorer.with_weights(ScoringWeights(content=0.1, assessment=0.7, source=0.1, timeliness=0.1))
    assert other is not scorer
    assert scorer.weights == ScoringWeights()
    assert other.weights.assessment == 0.7


def test_tiers() -> None:
    assert classify_score(85) == ImportanceTier.CRITICAL
    assert classify_score(84) == ImportanceTier.HIGH
    assert classify_score(50) == ImportanceTier.MEDIUM
    assert classify_score(30) == ImportanceTier.LOW
    assert classify_score(29) == ImportanceTier.MINIMAL


def test_breaking_markers() -> None:
    assert is_breaking_news("BREAKING: markets fall")
    assert is_breaking_news("⚡ Курс доллара")
    assert is_breaking_news("Срочно: новости")
    assert not is_breaking_news("Quarterly report released")
