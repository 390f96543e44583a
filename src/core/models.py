"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class MediaKind(str, Enum):
    TEXT = "text"
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"
    STICKER = "sticker"
    ANIMATION = "animation"


class NotificationKind(str, Enum):
    IMMEDIATE = "immediate"
    DIGEST = "digest"
    SYSTEM = "system"


@dataclass(frozen=True)
class HarvestedMessage:
    """A message as delivered by the feed ingestion layer, before persistence."""

    source_key: str
    external_id: int
    text: str
    media_kind: MediaKind
    posted_at: datetime


@dataclass(frozen=True)
class Message:
    """Persisted message tracked through the filter and assessment stages."""

    id: int
    source_id: str
    text: str
    media_kind: MediaKind = MediaKind.TEXT
    pass_filter: bool = False
    processed: bool = False
    importance_score: int = 0
    category: Optional[str] = None
    filter_reasons: Tuple[str, ...] = ()
    filter_checked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class SourceInfo:
    """Feed metadata used for source-reliability signals."""

    source_id: str
    display_name: Optional[str] = None
    subscriber_count: Optional[int] = None
    verified: bool = False


def parse_clock(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight."""

    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"Invalid time of day: {value!r}")
    total = int(hours) * 60 + int(minutes)
    if int(hours) > 23 or int(minutes) > 59:
        raise ValueError(f"Invalid time of day: {value!r}")
    return total


@dataclass(frozen=True)
class QuietHours:
    """Do-not-disturb window; start may be later than end (wraps midnight)."""

    start: str
    end: str

    def __post_init__(self) -> None:
        parse_clock(self.start)
        parse_clock(self.end)

    @property
    def start_minute(self) -> int:
        return parse_clock(self.start)

    @property
    def end_minute(self) -> int:
        return parse_clock(self.end)


@dataclass(frozen=True)
class RecipientPreferences:
    notifications_enabled: bool = True
    score_threshold: int = 50
    categories: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    quiet_hours: Optional[QuietHours] = None


@dataclass(frozen=True)
class Recipient:
    """Subscriber with a delivery address and notification preferences."""

    id: int
    address: str
    active: bool = True
    preferences: RecipientPreferences = field(default_factory=RecipientPreferences)


@dataclass(frozen=True)
class NotificationDraft:
    """Notification content ready to be persisted."""

    recipient_id: int
    body: str
    kind: NotificationKind = NotificationKind.IMMEDIATE
    message_id: Optional[int] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class NotificationRecord:
    """Persisted notification; `sent` only ever moves from False to True."""

    id: int
    recipient_id: int
    body: str
    kind: NotificationKind = NotificationKind.IMMEDIATE
    message_id: Optional[int] = None
    title: Optional[str] = None
    sent: bool = False
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FilterResult:
    """Outcome of the content filter for one message."""

    blocked: bool
    reasons: List[str]
    confidence: float

    @property
    def passed(self) -> bool:
        return not self.blocked


@dataclass(frozen=True)
class AssessmentRequest:
    """What the external assessment service is asked to judge."""

    text: str
    source_name: Optional[str] = None
    media_kind: MediaKind = MediaKind.TEXT


@dataclass(frozen=True)
class DisplayOptions:
    rich_text: bool = True
    link_preview: bool = False
    silent: bool = False


@dataclass(frozen=True)
class DeliveryRequest:
    """One notification handed to a delivery channel."""

    address: str
    body: str
    title: Optional[str] = None
    options: DisplayOptions = field(default_factory=DisplayOptions)


@dataclass(frozen=True)
class DeliveryReceipt:
    """Channel answer: accepted with a message id, or rejected with a reason."""

    accepted: bool
    message_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class NotificationStats:
    """Notification counts for one recipient, or for everyone."""

    total: int = 0
    sent: int = 0
    pending: int = 0
