"""Static configuration for newsbeacon.

All user-editable settings (sources, scoring knobs, recipients, delivery)
live in a single JSON file for quick edits without touching Python. Secrets
come from the environment (.env via python-dotenv).
"""

import json
import os

from dotenv import load_dotenv

from core.config import (
    CriticalityConfig,
    EligibilityPolicy,
    PacingPolicy,
    PipelineConfig,
    ScoringWeights,
)
from core.models import QuietHours, RecipientPreferences, SourceInfo

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database.
DB_PATH = os.getenv("NEWSBEACON_DB", os.path.join(PROJECT_ROOT, "newsbeacon.db"))

CONFIG_PATH = os.getenv("NEWSBEACON_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _normalize_sources(raw_sources: list[dict]) -> dict[str, SourceInfo]:
    """Enabled sources keyed by source_key; aliases become display names."""

    sources: dict[str, SourceInfo] = {}
    for entry in raw_sources:
        source_key = entry.get("source_key")
        if not source_key or not entry.get("enabled", True):
            continue
        source_key = source_key.lower()
        sources[source_key] = SourceInfo(
            source_id=source_key,
            display_name=entry.get("alias"),
            subscriber_count=entry.get("subscriber_count"),
            verified=bool(entry.get("verified", False)),
        )
    return sources


def _build_pipeline_config(config: dict) -> PipelineConfig:
    weights = config.get("scoring", {}).get("weights", {})
    criticality = config.get("criticality", {})
    eligibility = config.get("eligibility", {})
    pacing = config.get("pacing", {})
    pipeline = config.get("pipeline", {})
    return PipelineConfig(
        enable_filtering=bool(pipeline.get("enable_filtering", True)),
        enable_assessment=bool(pipeline.get("enable_assessment", True)),
        enable_notifications=bool(pipeline.get("enable_notifications", True)),
        enable_auto_sending=bool(pipeline.get("enable_auto_sending", True)),
        batch_size=int(pipeline.get("batch_size", 10)),
        processing_delay=float(pipeline.get("processing_delay", 1.0)),
        weights=ScoringWeights(**weights),
        criticality=CriticalityConfig(**criticality),
        eligibility=EligibilityPolicy(**eligibility),
        pacing=PacingPolicy(**pacing),
    )


def _normalize_recipients(raw_recipients: list[dict]) -> list[tuple[str, RecipientPreferences]]:
    recipients = []
    for entry in raw_recipients:
        address = entry.get("address")
        if not address:
            continue
        quiet = entry.get("quiet_hours")
        preferences = RecipientPreferences(
            notifications_enabled=bool(entry.get("notifications_enabled", True)),
            score_threshold=int(entry.get("score_threshold", 50)),
            categories=tuple(entry.get("categories", ())),
            keywords=tuple(entry.get("keywords", ())),
            quiet_hours=QuietHours(quiet["start"], quiet["end"]) if quiet else None,
        )
        recipients.append((str(address), preferences))
    return recipients


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Enabled sources; an empty map means every incoming chat is harvested.
SOURCES = _normalize_sources(_CONFIG.get("sources", []))

PIPELINE_CONFIG = _build_pipeline_config(_CONFIG)

# Assessment service. Without an API key the heuristic fallback is used.
_assessment = _CONFIG.get("assessment", {})
ASSESSMENT_ENABLED = bool(_assessment.get("enabled", True))
ASSESSMENT_MODEL = _assessment.get("model", "gpt-4o-mini")
ASSESSMENT_MAX_TOKENS = int(_assessment.get("max_tokens", 1000))
ASSESSMENT_TEMPERATURE = float(_assessment.get("temperature", 0.3))
ASSESSMENT_TIMEOUT = float(_assessment.get("timeout", 30.0))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Delivery method switches channel adapters without changing core logic:
# "saved_messages" (Telethon user account) or "bot" (Bot API, needs BOT_API).
_delivery = _CONFIG.get("delivery", {})
DELIVERY_METHOD = _delivery.get("method", "saved_messages")
BOT_TOKEN = os.getenv("BOT_API")
RECIPIENTS = _normalize_recipients(_delivery.get("recipients", []))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
