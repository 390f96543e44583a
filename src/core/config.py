"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely. All of
them are frozen: changing a knob means building a new value and swapping it
in, never mutating the one an in-flight batch is reading.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Criticality score at which a message is treated as critical / an emergency.
CRITICAL_THRESHOLD = 80
EMERGENCY_THRESHOLD = 90
STANDARD_THRESHOLD = 60

# Criticality score that lets a notification through a recipient's quiet hours.
QUIET_HOURS_OVERRIDE = 90


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the four importance sub-scores; expected to sum to 1.0."""

    content: float = 0.25
    assessment: float = 0.5
    source: float = 0.15
    timeliness: float = 0.1

    def total(self) -> float:
        return self.content + self.assessment + self.source + self.timeliness


@dataclass(frozen=True)
class CriticalityConfig:
    """Thresholds and weights for the criticality classifier."""

    critical_threshold: int = CRITICAL_THRESHOLD
    emergency_threshold: int = EMERGENCY_THRESHOLD
    standard_threshold: int = STANDARD_THRESHOLD
    ai_weight: float = 0.6
    keywords_weight: float = 0.3
    category_weight: float = 0.1
    use_keyword_analysis: bool = True
    use_category_analysis: bool = True


@dataclass(frozen=True)
class EligibilityPolicy:
    """Per-recipient decision knobs."""

    quiet_hours_override: int = QUIET_HOURS_OVERRIDE


@dataclass(frozen=True)
class PacingPolicy:
    """Delivery pacing, in seconds, to respect the channel's rate limits."""

    per_recipient_interval: float = 0.2
    global_interval: float = 0.1


@dataclass(frozen=True)
class PipelineConfig:
    """Stage switches and batch pacing for the message processor."""

    enable_filtering: bool = True
    enable_assessment: bool = True
    enable_notifications: bool = True
    enable_auto_sending: bool = True
    batch_size: int = 10
    processing_delay: float = 1.0
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    criticality: CriticalityConfig = field(default_factory=CriticalityConfig)
    eligibility: EligibilityPolicy = field(default_factory=EligibilityPolicy)
    pacing: PacingPolicy = field(default_factory=PacingPolicy)
