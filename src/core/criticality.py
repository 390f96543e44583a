"""Criticality classification (core domain).

Criticality is a stricter gate than a high importance score: it decides
whether a message is worth interrupting a recipient for. The classifier is
driven by fixed bilingual lexicons plus the stored importance score, and it
never raises: a failure always reads as "not critical, do not notify".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Dict, List, Optional, Tuple

from core.config import CriticalityConfig
from core.models import Message
from core.text import compile_terms, find_terms

LOGGER = logging.getLogger(__name__)


class EmergencyType(str, Enum):
    NATURAL_DISASTER = "natural_disaster"
    TERRORISM = "terrorism"
    WAR = "war"
    HEALTH_EMERGENCY = "health_emergency"
    INFRASTRUCTURE_FAILURE = "infrastructure_failure"
    ECONOMIC_CRISIS = "economic_crisis"


class TimeSensitivity(str, Enum):
    IMMEDIATE = "immediate"
    URGENT = "urgent"
    IMPORTANT = "important"
    NORMAL = "normal"


class RecommendedAction(str, Enum):
    IMMEDIATE = "immediate"
    PRIORITY = "priority"
    STANDARD = "standard"
    NONE = "none"


LEXICONS: Dict[str, List[str]] = {
    "emergency": [
        "экстренно",
        "срочно",
        "внимание",
        "важно",
        "критично",
        "чрезвычайная ситуация",
        "чс",
        "катастроф",
        "авария",
        "emergency",
        "urgent",
        "critical",
        "breaking",
    ],
    "disaster": [
        "землетрясени",
        "цунами",
        "наводнени",
        "пожар",
        "ураган",
        "торнадо",
        "извержени",
        "оползн",
        "лавин",
        "засух",
        "earthquake",
        "tsunami",
        "flood",
        "wildfire",
        "hurricane",
    ],
    "security": [
        "теракт",
        "террор",
        "взрыв",
        "стрельб",
        "нападени",
        "захват",
        "заложник",
        "угроз",
        "эвакуаци",
        "terrorism",
        "terrorist",
        "attack",
        "shooting",
        "hostage",
        "evacuation",
    ],
    "war": [
        "войн",
        "военные действия",
        "обстрел",
        "бомбардировк",
        "мобилизаци",
        "военное положение",
        "вторжени",
        "war",
        "military action",
        "shelling",
        "bombing",
        "mobilization",
        "invasion",
    ],
    "health": [
        "эпидеми",
        "пандеми",
        "вирус",
        "заражени",
        "карантин",
        "вспышк",
        "смертельн",
        "отравлени",
        "радиаци",
        "pandemic",
        "epidemic",
        "virus",
        "outbreak",
        "quarantine",
        "radiation",
    ],
    "infrastructure": [
        "отключени",
        "блэкаут",
        "авария на станции",
        "разрушение моста",
        "отказ системы",
        "транспортный коллапс",
        "энергосистем",
        "аэс",
        "атомн",
        "blackout",
        "power outage",
        "system failure",
        "infrastructure collapse",
        "nuclear facility",
        "nuclear plant",
    ],
    "economic": [
        "обвал",
        "кризис",
        "дефолт",
        "банкротств",
        "девальваци",
        "гиперинфляци",
        "экономический коллапс",
        "market crash",
        "crisis",
        "default",
        "bankruptcy",
        "devaluation",
    ],
}

# Lexicons consulted, in priority order, to tag the kind of emergency.
EMERGENCY_PRIORITY: List[Tuple[str, EmergencyType]] = [
    ("disaster", EmergencyType.NATURAL_DISASTER),
    ("security", EmergencyType.TERRORISM),
    ("war", EmergencyType.WAR),
    ("health", EmergencyType.HEALTH_EMERGENCY),
    ("infrastructure", EmergencyType.INFRASTRUCTURE_FAILURE),
    ("economic", EmergencyType.ECONOMIC_CRISIS),
]

URGENCY_MARKERS = compile_terms(
    [
        "прямо сейчас",
        "в данный момент",
        "происходит сейчас",
        "только что",
        "немедленно",
        "в эту минуту",
        "на данный момент",
        "right now",
        "happening now",
        "just in",
        "breaking news",
        "live update",
        "developing story",
    ]
)

BREAKING_MARKERS = compile_terms(
    [
        "breaking",
        "срочные новости",
        "экстренные новости",
        "только что",
        "just in",
        "developing",
        "последние новости",
    ]
)

CRITICAL_CATEGORIES = frozenset(
    {
        "breaking_news",
        "emergency",
        "disaster",
        "security",
        "health_alert",
        "government_alert",
        "weather_emergency",
        "military_action",
        "terrorism",
        "natural_disaster",
        "incidents",
    }
)

_COMPILED_LEXICONS = {name: compile_terms(terms) for name, terms in LEXICONS.items()}

KEYWORD_POINTS = 15
MARKER_POINTS = 10
KEYWORD_POINTS_CAP = 40
CATEGORY_POINTS = 20
BREAKING_BONUS = 15
EMERGENCY_TYPE_BONUS = 10
IMMEDIATE_BONUS = 10
URGENT_BONUS = 5


@dataclass(frozen=True)
class CriticalityFactors:
    importance_score: int = 0
    assessment_reasoning: Optional[str] = None
    critical_keywords: List[str] = field(default_factory=list)
    urgency_markers: List[str] = field(default_factory=list)
    critical_category: bool = False
    breaking_news: bool = False
    emergency_type: Optional[EmergencyType] = None
    time_sensitivity: TimeSensitivity = TimeSensitivity.NORMAL


@dataclass(frozen=True)
class CriticalityResult:
    is_critical: bool
    criticality_score: int
    confidence: float
    factors: CriticalityFactors
    reasons: List[str]
    recommended_action: RecommendedAction

    @classmethod
    def not_critical(cls, reason: str) -> "CriticalityResult":
        """Safe result used whenever classification cannot be trusted."""

        return cls(
            is_critical=False,
            criticality_score=0,
            confidence=0.0,
            factors=CriticalityFactors(),
            reasons=[reason],
            recommended_action=RecommendedAction.NONE,
        )


class CriticalityClassifier:
    """Keyword and pattern driven critical-news detector."""

    def __init__(self, config: Optional[CriticalityConfig] = None) -> None:
        self._config = config or CriticalityConfig()

    @property
    def config(self) -> CriticalityConfig:
        return self._config

    def with_config(self, config: CriticalityConfig) -> "CriticalityClassifier":
        return CriticalityClassifier(config)

    def classify(self, message: Message, assessment_reasoning: Optional[str] = None) -> CriticalityResult:
        """Classify a persisted message; never raises."""

        try:
            factors = self._extract_factors(message, assessment_reasoning)
            score = self._score(factors)
            result = CriticalityResult(
                is_critical=score >= self._config.critical_threshold,
                criticality_score=score,
                confidence=self._confidence(factors),
                factors=factors,
                reasons=self._reasons(factors, score),
                recommended_action=self._recommended_action(score),
            )
        except Exception:
            LOGGER.exception("Criticality analysis failed for message %s", getattr(message, "id", None))
            return CriticalityResult.not_critical("analysis failed")

        LOGGER.debug(
            "Criticality for message %s: score=%s critical=%s action=%s",
            message.id,
            result.criticality_score,
            result.is_critical,
            result.recommended_action.value,
        )
        return result

    def _extract_factors(self, message: Message, assessment_reasoning: Optional[str]) -> CriticalityFactors:
        content = message.text
        if not isinstance(content, str) or not content.strip():
            raise ValueError("message has no content to classify")

        keywords: List[str] = []
        markers: List[str] = []
        breaking = False
        emergency_type: Optional[EmergencyType] = None
        if self._config.use_keyword_analysis:
            hits_by_lexicon = {name: find_terms(content, compiled) for name, compiled in _COMPILED_LEXICONS.items()}
            for hits in hits_by_lexicon.values():
                for hit in hits:
                    if hit not in keywords:
                        keywords.append(hit)
            markers = find_terms(content, URGENCY_MARKERS)
            breaking = bool(find_terms(content, BREAKING_MARKERS))
            emergency_type = next(
                (kind for name, kind in EMERGENCY_PRIORITY if hits_by_lexicon[name]),
                None,
            )

        critical_category = False
        if self._config.use_category_analysis and message.category:
            critical_category = message.category.lower() in CRITICAL_CATEGORIES

        importance = int(message.importance_score or 0)
        return CriticalityFactors(
            importance_score=importance,
            assessment_reasoning=assessment_reasoning or None,
            critical_keywords=keywords,
            urgency_markers=markers,
            critical_category=critical_category,
            breaking_news=breaking,
            emergency_type=emergency_type,
            time_sensitivity=_time_sensitivity(importance, keywords, markers, breaking),
        )

    def _score(self, factors: CriticalityFactors) -> int:
        config = self._config
        keyword_points = min(
            len(factors.critical_keywords) * KEYWORD_POINTS + len(factors.urgency_markers) * MARKER_POINTS,
            KEYWORD_POINTS_CAP,
        )
        score = (
            factors.importance_score * config.ai_weight
            + keyword_points * config.keywords_weight
            + (CATEGORY_POINTS if factors.critical_category else 0) * config.category_weight
        )
        if factors.breaking_news:
            score += BREAKING_BONUS
        if factors.emergency_type is not None:
            score += EMERGENCY_TYPE_BONUS
        if factors.time_sensitivity == TimeSensitivity.IMMEDIATE:
            score += IMMEDIATE_BONUS
        elif factors.time_sensitivity == TimeSensitivity.URGENT:
            score += URGENT_BONUS
        return int(max(0, min(100, round(score))))

    @staticmethod
    def _confidence(factors: CriticalityFactors) -> float:
        confidence = 0.5
        if factors.assessment_reasoning:
            confidence += 0.3
        indicators = (
            len(factors.critical_keywords)
            + len(factors.urgency_markers)
            + int(factors.critical_category)
            + int(factors.breaking_news)
        )
        confidence += min(indicators * 0.1, 0.4)
        return min(confidence, 1.0)

    def _reasons(self, factors: CriticalityFactors, score: int) -> List[str]:
        reasons: List[str] = []
        if factors.importance_score >= 85:
            reasons.append(f"high importance score: {factors.importance_score}")
        if factors.critical_keywords:
            reasons.append(f"critical keywords: {', '.join(factors.critical_keywords)}")
        if factors.urgency_markers:
            reasons.append(f"urgency markers: {', '.join(factors.urgency_markers)}")
        if factors.critical_category:
            reasons.append("critical category")
        if factors.breaking_news:
            reasons.append("breaking news")
        if factors.emergency_type is not None:
            reasons.append(f"emergency type: {factors.emergency_type.value}")
        if factors.time_sensitivity == TimeSensitivity.IMMEDIATE:
            reasons.append("needs immediate attention")
        if not reasons and score >= self._config.critical_threshold:
            reasons.append("combination of factors")
        return reasons

    def _recommended_action(self, score: int) -> RecommendedAction:
        if score >= self._config.emergency_threshold:
            return RecommendedAction.IMMEDIATE
        if score >= self._config.critical_threshold:
            return RecommendedAction.PRIORITY
        if score >= self._config.standard_threshold:
            return RecommendedAction.STANDARD
        return RecommendedAction.NONE


def _time_sensitivity(importance: int, keywords: List[str], markers: List[str], breaking: bool) -> TimeSensitivity:
    if markers or breaking:
        return TimeSensitivity.IMMEDIATE
    if len(keywords) > 2 or importance > 85:
        return TimeSensitivity.URGENT
    if keywords or importance > 70:
        return TimeSensitivity.IMPORTANT
    return TimeSensitivity.NORMAL
