"""Weighted importance scoring (core domain).

The final score blends four 0-100 sub-scores: what the text looks like, what
the assessment service (or its fallback) thinks, how trustworthy the source
is, and how timely the message is.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import logging
import re
from typing import List, Optional

from core.assessment import ImportanceAssessment
from core.config import ScoringWeights
from core.models import MediaKind, SourceInfo
from core.text import compile_terms, find_terms

LOGGER = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.01

CRITICAL_KEYWORDS = compile_terms(
    [
        "срочно",
        "экстренно",
        "важно",
        "внимание",
        "алерт",
        "breaking",
        "urgent",
        "critical",
        "alert",
    ]
)

HIGH_IMPORTANCE_KEYWORDS = compile_terms(
    [
        # politics
        "президент",
        "правительств",
        "госдум",
        "министр",
        "губернатор",
        "закон",
        "указ",
        "выборы",
        "референдум",
        "president",
        "government",
        "minister",
        "election",
        # economy
        "курс",
        "доллар",
        "евро",
        "рубл",
        "инфляци",
        "банк россии",
        "санкци",
        "нефть",
        "бюджет",
        "налог",
        "exchange rate",
        "inflation",
        "sanctions",
        "central bank",
        # security and emergencies
        "война",
        "конфликт",
        "теракт",
        "авария",
        "катастроф",
        "пожар",
        "наводнени",
        "землетрясени",
        "эвакуаци",
        "war",
        "terrorist",
        "explosion",
        "earthquake",
        "evacuation",
        # health
        "covid",
        "коронавирус",
        "пандеми",
        "эпидеми",
        "вакцин",
        "карантин",
        "pandemic",
        "epidemic",
        "outbreak",
    ]
)

BREAKING_PATTERNS = [
    re.compile(r"\bbreaking\b", re.IGNORECASE),
    re.compile(r"\bjust now\b", re.IGNORECASE),
    re.compile(r"\blive(?: update| now|:)", re.IGNORECASE),
    re.compile(r"\bon air\b", re.IGNORECASE),
    re.compile(r"срочн", re.IGNORECASE),
    re.compile(r"только что", re.IGNORECASE),
    re.compile(r"минуту назад", re.IGNORECASE),
    re.compile(r"происходит сейчас", re.IGNORECASE),
    re.compile(r"в прямом эфире", re.IGNORECASE),
    re.compile(r"молния", re.IGNORECASE),
    re.compile("⚡"),
]

RELIABLE_SOURCES = compile_terms(
    [
        "reuters",
        "associated press",
        "bloomberg",
        "bbc",
        "interfax",
        "tass",
        "ria",
        "рбк",
        "риа",
        "тасс",
        "интерфакс",
        "коммерсант",
        "ведомости",
        "первый канал",
    ]
)

UNRELIABLE_SOURCES = compile_terms(
    [
        "anonymous",
        "rumor",
        "rumour",
        "unofficial",
        "unconfirmed",
        "аноним",
        "слухи",
        "неофициальн",
        "неподтвержд",
    ]
)

_URL_RE = re.compile(r"https?://")


class ImportanceTier(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores, final weighted score and tier for one message."""

    content_score: int
    assessment_score: int
    source_score: int
    timeliness_score: int
    final_score: int
    tier: ImportanceTier
    reasoning: List[str]


def classify_score(score: int) -> ImportanceTier:
    if score >= 85:
        return ImportanceTier.CRITICAL
    if score >= 70:
        return ImportanceTier.HIGH
    if score >= 50:
        return ImportanceTier.MEDIUM
    if score >= 30:
        return ImportanceTier.LOW
    return ImportanceTier.MINIMAL


def is_breaking_news(text: str) -> bool:
    return any(pattern.search(text) for pattern in BREAKING_PATTERNS)


def has_important_keywords(text: str) -> bool:
    return bool(find_terms(text, CRITICAL_KEYWORDS) or find_terms(text, HIGH_IMPORTANCE_KEYWORDS))


def source_reliability(source_name: Optional[str], verified: bool = False) -> float:
    """Return a 0.1-1.0 trust estimate for a feed."""

    reliability = 0.5
    if verified:
        reliability += 0.3
    if source_name:
        if find_terms(source_name, RELIABLE_SOURCES):
            reliability = min(1.0, reliability + 0.3)
        if find_terms(source_name, UNRELIABLE_SOURCES):
            reliability = max(0.1, reliability - 0.4)
    return max(0.1, min(1.0, reliability))


def _clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


class ImportanceScorer:
    """Combines content, assessment, source and timeliness signals."""

    def __init__(self, weights: Optional[ScoringWeights] = None) -> None:
        self._weights = weights or ScoringWeights()
        self.weights_valid = abs(self._weights.total() - 1.0) <= WEIGHT_TOLERANCE
        if not self.weights_valid:
            LOGGER.warning("Scoring weights sum to %.3f instead of 1.0: %s", self._weights.total(), self._weights)

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def with_weights(self, weights: ScoringWeights) -> "ImportanceScorer":
        return ImportanceScorer(weights)

    def score(
        self,
        text: str,
        assessment: ImportanceAssessment,
        source: Optional[SourceInfo] = None,
        media_kind: MediaKind = MediaKind.TEXT,
        now: Optional[datetime] = None,
    ) -> ScoreBreakdown:
        """Score one message; now defaults to the local wall clock."""

        text = text or ""
        now = now or datetime.now().astimezone()
        breaking = is_breaking_news(text)
        keywords = has_important_keywords(text)

        content_score = self.content_score(text, media_kind)
        assessment_score = _clamp_score(assessment.importance.score)
        source_score = self.source_score(source)
        timeliness_score = self.timeliness_score(now.hour, breaking)

        weights = self._weights
        final_score = _clamp_score(
            content_score * weights.content
            + assessment_score * weights.assessment
            + source_score * weights.source
            + timeliness_score * weights.timeliness
        )

        reasoning = [
            f"assessment score: {assessment.importance.score}/100",
            f"category: {assessment.category.category}",
        ]
        if breaking:
            reasoning.append("breaking news")
        if keywords:
            reasoning.append("important keywords")
        if len(text) > 300:
            reasoning.append("detailed content")
        if source is not None and source.verified:
            reasoning.append("verified source")
        reasoning.append(
            f"components: content={content_score}, assessment={assessment_score}, "
            f"source={source_score}, timeliness={timeliness_score}"
        )

        breakdown = ScoreBreakdown(
            content_score=content_score,
            assessment_score=assessment_score,
            source_score=source_score,
            timeliness_score=timeliness_score,
            final_score=final_score,
            tier=classify_score(final_score),
            reasoning=reasoning,
        )
        LOGGER.debug("Score %s (%s): %s", final_score, breakdown.tier.value, reasoning[-1])
        return breakdown

    @staticmethod
    def content_score(text: str, media_kind: MediaKind = MediaKind.TEXT) -> int:
        score = 0
        for bracket in (100, 300, 500):
            if len(text) > bracket:
                score += 10
        if has_important_keywords(text):
            score += 20
        if any(char.isdigit() for char in text):
            score += 10
        if _URL_RE.search(text):
            score += 5
        if media_kind != MediaKind.TEXT:
            score += 10
        if is_breaking_news(text):
            score += 25
        return min(100, score)

    @staticmethod
    def source_score(source: Optional[SourceInfo]) -> int:
        name = source.display_name if source else None
        verified = bool(source and source.verified)
        score = 50 + source_reliability(name, verified) * 30
        if verified:
            score += 15
        subscribers = source.subscriber_count if source else None
        if subscribers:
            for bracket in (1_000, 10_000, 100_000):
                if subscribers > bracket:
                    score += 5
        return _clamp_score(score)

    @staticmethod
    def timeliness_score(hour: int, breaking: bool) -> int:
        if breaking:
            return 100
        score = 50
        if 8 <= hour <= 22:
            score += 20
        if 9 <= hour <= 18:
            score += 10
        return min(100, score)
