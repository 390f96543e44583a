"""Fixed instruction set sent to the assessment model."""

from __future__ import annotations

from core.assessment import CATEGORIES
from core.models import AssessmentRequest

SYSTEM_PROMPT = (
    "You are an expert at assessing news content from Telegram channels, "
    "most of them Russian-language.\n\n"
    "Your task:\n"
    "1. Rate the importance of the news from 0 to 100 based on relevance, "
    "social significance and impact on the audience.\n"
    "2. Pick the content category.\n"
    "3. Extract keywords.\n"
    "4. Determine the sentiment (positive, negative or neutral).\n"
    "5. Detect spam and advertising.\n\n"
    "Importance scale:\n"
    "- 90-100: emergencies and major events affecting many people\n"
    "- 70-89: important regional or industry news\n"
    "- 50-69: moderately interesting news\n"
    "- 30-49: minor news\n"
    "- 0-29: entertainment, personal opinions, spam\n\n"
    "Always answer with a single valid JSON object and no extra commentary."
)


def build_user_prompt(request: AssessmentRequest) -> str:
    return (
        "Analyze the following Telegram channel message.\n\n"
        f"Channel: {request.source_name or 'unknown'}\n"
        f"Content type: {request.media_kind.value}\n"
        f'Message: "{request.text}"\n\n'
        "Return a JSON object with the fields:\n"
        "- importance: {score: number 0-100, reasoning: string, factors: array of strings}\n"
        "- category: {category: one of the categories, confidence: number 0-1, keywords: array of strings}\n"
        '- sentiment: "positive" | "negative" | "neutral"\n'
        "- keywords: array of 3-7 keywords\n"
        "- isSpam: boolean\n"
        "- isAd: boolean\n"
        "- summary: short summary (optional)\n\n"
        f"Available categories: {', '.join(CATEGORIES)}"
    )
