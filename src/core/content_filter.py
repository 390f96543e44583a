"""Heuristic content filter (core domain).

The filter is a pure function of (text, media kind): no I/O, no hidden state,
so re-submitting the same message always yields the same verdict.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
import unicodedata
from typing import List, Optional

from core.models import FilterResult, MediaKind

LOGGER = logging.getLogger(__name__)

# Messages are blocked only when the strongest rule is at least this confident.
BLOCK_THRESHOLD = 0.7

AD_CATEGORY_WEIGHT = 0.3
SPAM_MATCH_WEIGHT = 0.2
UPPERCASE_RATIO_WEIGHT = 0.4
WORD_REPETITION_WEIGHT = 0.3
SHORT_TEXT_CONFIDENCE = 0.8
SYMBOLS_ONLY_CONFIDENCE = 0.9


@dataclass(frozen=True)
class _Category:
    name: str
    pattern: re.Pattern


_AD_CATEGORIES: List[_Category] = [
    _Category(
        "commercial call-to-action",
        re.compile(
            r"(?:купи|покупай|продаю|продается|заказ|скидк|акци[яи]|распродаж|оформить|доставка|курьер"
            r"|\bbuy now\b|\bfor sale\b|\bdiscount|\bsale\b|\border now\b|free shipping)",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "price mention",
        re.compile(
            r"(?:цена|стоимост|руб|\bprice\b|\bcost\b|[₽$€]).*\d",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "get-rich-quick",
        re.compile(
            r"(?:заработ|пассивный доход|легкие деньги|лёгкие деньги|без вложений|гарантированный доход"
            r"|инвестируй|крипт|биткоин|форекс|бинанс"
            r"|passive income|easy money|get rich|guaranteed (?:income|profit)|\bforex\b|\bbinance\b)",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "gambling",
        re.compile(
            r"(?:ставк|казино|рулетк|слоты|букмекер|1xbet|fonbet"
            r"|\bcasino\b|\bbetting\b|\bbookmaker|\bjackpot\b|\bslots\b)",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "subscribe/click bait",
        re.compile(
            r"(?:переходи|жми|кликай|подписыв|регистрир|(?:телеграм|telegram).*(?:канал|группа|бот)"
            r"|click here|\bsubscribe\b|sign up now|follow the link|link in bio)",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "medical products",
        re.compile(
            r"(?:похудени|диет[аы]|таблетк|препарат|потенци|эрекци"
            r"|weight loss|diet pills|\bpotency\b|miracle cure)",
            re.IGNORECASE,
        ),
    ),
]

_SPAM_PATTERNS: List[_Category] = [
    _Category("repeated characters", re.compile(r"([^\d\s])\1{4,}")),
    _Category("excessive exclamation marks", re.compile(r"!{3,}")),
    _Category("excessive question marks", re.compile(r"\?{3,}")),
    _Category("long uppercase run", re.compile(r"[A-ZА-ЯЁ]{10,}")),
    _Category(
        "urgency cliche",
        re.compile(
            r"(?:срочно|немедленно|быстрее|скорее|только сегодня|ограниченное время|не упусти|последний шанс"
            r"|act now|limited time|don't miss|last chance|today only)",
            re.IGNORECASE,
        ),
    ),
    _Category(
        "emoji flood",
        re.compile("[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\U0001F1E0-\U0001F1FF]{5,}"),
    ),
]

# Zero-width joiner and emoji variation selectors glue emoji sequences together.
_EMOJI_GLUE = {"\u200d", "\ufe0e", "\ufe0f"}


def _is_symbolic(char: str) -> bool:
    if char.isspace() or char in _EMOJI_GLUE:
        return True
    return unicodedata.category(char)[0] in {"P", "S", "Z"}


class ContentFilter:
    """Blocks advertising, spam and low-quality messages."""

    def evaluate(self, text: Optional[str], media_kind: Optional[MediaKind] = MediaKind.TEXT) -> FilterResult:
        """Return the filter verdict for one message."""

        if not text or not text.strip():
            if media_kind is None or media_kind == MediaKind.TEXT:
                return FilterResult(blocked=True, reasons=["empty message"], confidence=1.0)
            # Media carries the content; an empty caption is fine.
            return FilterResult(blocked=False, reasons=[], confidence=1.0)

        reasons: List[str] = []
        confidence = 0.0
        for check in (self._check_ads, self._check_spam, self._check_low_quality):
            check_reasons, check_confidence = check(text)
            if check_reasons:
                reasons.extend(check_reasons)
                confidence = max(confidence, check_confidence)

        blocked = bool(reasons) and confidence >= BLOCK_THRESHOLD
        if blocked:
            LOGGER.debug("Content blocked (%.2f): %s | %s", confidence, "; ".join(reasons), text[:100])
        return FilterResult(blocked=blocked, reasons=reasons, confidence=confidence)

    def describe(self) -> dict:
        """Return pattern counts for monitoring."""

        return {
            "total_patterns": len(_AD_CATEGORIES) + len(_SPAM_PATTERNS) + 2,
            "ad_categories": [category.name for category in _AD_CATEGORIES],
            "spam_patterns": [pattern.name for pattern in _SPAM_PATTERNS],
            "block_threshold": BLOCK_THRESHOLD,
        }

    @staticmethod
    def _check_ads(text: str) -> tuple[List[str], float]:
        reasons = [f"advertising: {category.name}" for category in _AD_CATEGORIES if category.pattern.search(text)]
        return reasons, min(len(reasons) * AD_CATEGORY_WEIGHT, 1.0)

    @staticmethod
    def _check_spam(text: str) -> tuple[List[str], float]:
        reasons: List[str] = []
        score = 0.0

        for spam in _SPAM_PATTERNS:
            # finditer counts whole runs even for patterns with capture groups.
            hits = sum(1 for _ in spam.pattern.finditer(text))
            if hits:
                score += hits * SPAM_MATCH_WEIGHT
                reasons.append(f"spam: {spam.name}")

        uppercase = sum(1 for char in text if char.isupper())
        if len(text) > 20 and uppercase / len(text) > 0.5:
            score += UPPERCASE_RATIO_WEIGHT
            reasons.append("spam: excessive uppercase")

        words = text.lower().split()
        counts: dict[str, int] = {}
        for word in words:
            if len(word) > 2:
                counts[word] = counts.get(word, 0) + 1
        if counts and max(counts.values()) > max(len(words) * 0.3, 3):
            score += WORD_REPETITION_WEIGHT
            reasons.append("spam: repeated words")

        return reasons, min(score, 1.0)

    @staticmethod
    def _check_low_quality(text: str) -> tuple[List[str], float]:
        reasons: List[str] = []
        confidence = 0.0
        stripped = text.strip()

        if len(stripped) < 3:
            confidence = SHORT_TEXT_CONFIDENCE
            reasons.append("low quality: too short")

        if all(_is_symbolic(char) for char in stripped):
            confidence = max(confidence, SYMBOLS_ONLY_CONFIDENCE)
            reasons.append("low quality: only emoji or punctuation")

        return reasons, confidence
