"""Text helpers shared by the filter, scorer and classifier (core domain)."""

from __future__ import annotations

from collections import Counter
import re
from typing import Iterable, List

_WORD_RE = re.compile(r"[^\W_]+")


def compile_terms(terms: Iterable[str]) -> List[tuple[str, re.Pattern]]:
    """Compile lexicon terms into word-start patterns.

    Terms match at the start of a word so stems ("эвакуац") still catch their
    inflections while short English words ("war") do not fire inside
    unrelated words ("software").
    """

    return [(term, re.compile(r"\b" + re.escape(term.lower()))) for term in terms]


def find_terms(text: str, compiled: Iterable[tuple[str, re.Pattern]]) -> List[str]:
    """Return the lexicon terms present in text, in lexicon order."""

    lowered = text.lower()
    return [term for term, pattern in compiled if pattern.search(lowered)]


def top_keywords(text: str, limit: int = 5, min_length: int = 4) -> List[str]:
    """Return the most frequent words of at least min_length characters."""

    words = [word for word in _WORD_RE.findall(text.lower()) if len(word) >= min_length]
    # Counter.most_common keeps first-seen order for ties.
    return [word for word, _ in Counter(words).most_common(limit)]
