"""Importance assessment (core domain).

The assessor asks an external language-model service for a structured
judgement of a message and falls back to a deterministic heuristic whenever
the service is disabled, slow, failing or returns unusable output. The
service response is never trusted: it is parsed through a lenient wire model
that clamps and degrades each field on its own.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.models import AssessmentRequest, MediaKind
from core.ports import AssessmentServicePort
from core.text import compile_terms, find_terms, top_keywords

LOGGER = logging.getLogger(__name__)

OTHER_CATEGORY = "other"

# Closed taxonomy the service must choose from.
CATEGORIES: List[str] = [
    "politics",
    "economy",
    "technology",
    "science",
    "sports",
    "culture",
    "health",
    "incidents",
    "international",
    "society",
    "crypto",
    "finance",
    "education",
    "ecology",
    OTHER_CATEGORY,
]

# Feeds are largely Russian-language; models often answer in kind.
_CATEGORY_ALIASES: Dict[str, str] = {
    "политика": "politics",
    "экономика": "economy",
    "технологии": "technology",
    "наука": "science",
    "спорт": "sports",
    "культура": "culture",
    "медицина": "health",
    "происшествия": "incidents",
    "международные новости": "international",
    "общество": "society",
    "криптовалюты": "crypto",
    "финансы": "finance",
    "образование": "education",
    "экология": "ecology",
    "другое": OTHER_CATEGORY,
}

FALLBACK_BASE_SCORE = 30
FALLBACK_KEYWORD_BONUS = 15

FALLBACK_KEYWORDS = compile_terms(
    [
        "urgent",
        "emergency",
        "important",
        "attention",
        "president",
        "government",
        "parliament",
        "war",
        "conflict",
        "terrorist attack",
        "accident",
        "exchange rate",
        "inflation",
        "срочно",
        "экстренно",
        "важно",
        "внимание",
        "президент",
        "правительств",
        "госдум",
        "война",
        "конфликт",
        "теракт",
        "авария",
        "курс",
        "доллар",
        "рубл",
        "инфляци",
    ]
)


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().rstrip("%"))
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _to_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def normalize_category(value: Any) -> str:
    """Map a free-form category into the taxonomy, else "other"."""

    if not isinstance(value, str):
        return OTHER_CATEGORY
    lowered = value.strip().lower()
    if lowered in CATEGORIES:
        return lowered
    return _CATEGORY_ALIASES.get(lowered, OTHER_CATEGORY)


class _ImportanceWire(BaseModel):
    score: Optional[int] = None
    reasoning: Optional[str] = None
    factors: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> Optional[int]:
        number = _to_number(value)
        return None if number is None else int(_clamp(round(number), 0, 100))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, value: Any) -> Optional[str]:
        return value.strip() or None if isinstance(value, str) else None

    @field_validator("factors", mode="before")
    @classmethod
    def _factors(cls, value: Any) -> List[str]:
        return _to_strings(value)


class _CategoryWire(BaseModel):
    category: str = OTHER_CATEGORY
    confidence: float = 0.5
    keywords: List[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> str:
        return normalize_category(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        number = _to_number(value)
        return 0.5 if number is None else _clamp(number, 0.0, 1.0)

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> List[str]:
        return _to_strings(value)


class AssessmentPayload(BaseModel):
    """Lenient view of the service's JSON; every field is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    importance: _ImportanceWire = Field(default_factory=_ImportanceWire)
    category: _CategoryWire = Field(default_factory=_CategoryWire)
    sentiment: Sentiment = Sentiment.NEUTRAL
    keywords: List[str] = Field(default_factory=list)
    is_spam: bool = Field(False, alias="isSpam")
    is_ad: bool = Field(False, alias="isAd")
    summary: Optional[str] = None

    @field_validator("importance", mode="before")
    @classmethod
    def _importance(cls, value: Any) -> Any:
        # A bare number is a common shorthand for {"score": n}.
        if isinstance(value, (int, float, str)) and not isinstance(value, bool):
            return {"score": value}
        return value if isinstance(value, dict) else {}

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"category": value}
        return value if isinstance(value, dict) else {}

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip().lower() in {s.value for s in Sentiment}:
            return value.strip().lower()
        return Sentiment.NEUTRAL.value

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords(cls, value: Any) -> List[str]:
        return _to_strings(value)

    @field_validator("is_spam", "is_ad", mode="before")
    @classmethod
    def _flags(cls, value: Any) -> bool:
        return _to_flag(value)

    @field_validator("summary", mode="before")
    @classmethod
    def _summary(cls, value: Any) -> Optional[str]:
        return value.strip() or None if isinstance(value, str) else None


class ImportanceDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    reasoning: str
    factors: List[str] = Field(default_factory=list)


class CategoryDetail(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str = OTHER_CATEGORY
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    keywords: List[str] = Field(default_factory=list)


class ImportanceAssessment(BaseModel):
    """Validated assessment of one message."""

    model_config = ConfigDict(frozen=True)

    importance: ImportanceDetail
    category: CategoryDetail
    sentiment: Sentiment = Sentiment.NEUTRAL
    keywords: List[str] = Field(default_factory=list)
    is_spam: bool = False
    is_ad: bool = False
    summary: Optional[str] = None
    fallback: bool = False

    @property
    def score(self) -> int:
        return self.importance.score


def fallback_importance(text: str) -> int:
    """Deterministic importance score used when the service is unavailable."""

    score = FALLBACK_BASE_SCORE
    if len(text) > 200:
        score += 10
    if len(text) > 500:
        score += 10
    score += len(find_terms(text, FALLBACK_KEYWORDS)) * FALLBACK_KEYWORD_BONUS
    return int(_clamp(score, 0, 100))


def fallback_assessment(text: str) -> ImportanceAssessment:
    keywords = top_keywords(text)
    return ImportanceAssessment(
        importance=ImportanceDetail(
            score=fallback_importance(text),
            reasoning="Heuristic assessment (service unavailable)",
            factors=["message length", "critical keywords"],
        ),
        category=CategoryDetail(category=OTHER_CATEGORY, confidence=0.3, keywords=keywords),
        sentiment=Sentiment.NEUTRAL,
        keywords=keywords,
        fallback=True,
    )


def assessment_from_payload(payload: Any, text: str) -> ImportanceAssessment:
    """Validate a raw service payload, degrading fields one by one.

    Raises ValueError only when the payload is not a JSON object at all.
    """

    if not isinstance(payload, dict):
        raise ValueError(f"Assessment payload must be an object, got {type(payload).__name__}")
    try:
        wire = AssessmentPayload.model_validate(payload)
    except ValidationError as exc:
        # Every field validator degrades on its own; reaching this means a
        # nested structure was unusable as a whole.
        raise ValueError(f"Assessment payload rejected: {exc}") from exc

    score = wire.importance.score
    if score is None:
        score = fallback_importance(text)
    return ImportanceAssessment(
        importance=ImportanceDetail(
            score=score,
            reasoning=wire.importance.reasoning or "Automatic assessment",
            factors=wire.importance.factors,
        ),
        category=CategoryDetail(
            category=wire.category.category,
            confidence=wire.category.confidence,
            keywords=wire.category.keywords,
        ),
        sentiment=wire.sentiment,
        keywords=wire.keywords,
        is_spam=wire.is_spam,
        is_ad=wire.is_ad,
        summary=wire.summary,
    )


class ImportanceAssessor:
    """Best-effort external assessment with a deterministic fallback."""

    def __init__(self, service: Optional[AssessmentServicePort] = None, timeout: float = 30.0) -> None:
        self._service = service
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return self._service is not None

    async def assess(
        self,
        text: str,
        source_name: Optional[str] = None,
        media_kind: MediaKind = MediaKind.TEXT,
    ) -> ImportanceAssessment:
        """Return the service's assessment, or the heuristic one on any failure."""

        text = text or ""
        if self._service is None:
            return fallback_assessment(text)

        request = AssessmentRequest(text=text, source_name=source_name, media_kind=media_kind)
        try:
            payload = await asyncio.wait_for(self._service.request_assessment(request), self._timeout)
            assessment = assessment_from_payload(payload, text)
        except Exception as exc:
            # Timeouts, transport errors and malformed output all degrade the
            # same way: the message is still scored, just heuristically.
            LOGGER.warning("Assessment service failed, using fallback: %s", exc)
            return fallback_assessment(text)

        LOGGER.debug(
            "Assessment: score=%s category=%s sentiment=%s",
            assessment.importance.score,
            assessment.category.category,
            assessment.sentiment.value,
        )
        return assessment
