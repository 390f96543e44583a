"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for storage, assessment and delivery
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from core.models import (
    AssessmentRequest,
    DeliveryReceipt,
    DeliveryRequest,
    Message,
    NotificationDraft,
    NotificationKind,
    NotificationRecord,
    NotificationStats,
    Recipient,
    SourceInfo,
)


class StorePort(Protocol):
    """Storage operations required by the core pipeline.

    Implementations raise core.errors.StoreError on read/write failures.
    """

    def get_message(self, message_id: int) -> Optional[Message]:
        ...

    def get_source(self, source_id: str) -> Optional[SourceInfo]:
        ...

    def list_pending_messages(self, limit: int) -> List[Message]:
        ...

    def record_filter_result(self, message_id: int, passed: bool, reasons: Sequence[str]) -> bool:
        """Persist the filter verdict unless the message was already processed."""
        ...

    def record_assessment(self, message_id: int, score: int, category: Optional[str]) -> bool:
        """Mark processed with score/category, only if passed and not yet processed."""
        ...

    def mark_processed(self, message_id: int) -> bool:
        """Mark processed keeping the stored score, only if passed and not yet processed."""
        ...

    def list_active_recipients(self) -> List[Recipient]:
        ...

    def get_recipient(self, recipient_id: int) -> Optional[Recipient]:
        ...

    def notification_exists(self, message_id: int, recipient_id: int, kind: NotificationKind) -> bool:
        ...

    def create_notification(self, draft: NotificationDraft) -> NotificationRecord:
        ...

    def mark_notification_sent(self, notification_id: int, sent_at: datetime) -> None:
        ...

    def list_unsent_notifications(self, recipient_id: Optional[int] = None) -> List[NotificationRecord]:
        ...

    def notification_stats(self, recipient_id: Optional[int] = None) -> NotificationStats:
        ...


class AssessmentServicePort(Protocol):
    """External natural-language assessment service."""

    async def request_assessment(self, request: AssessmentRequest) -> Dict[str, Any]:
        ...


class DeliveryChannelPort(Protocol):
    """Notification delivery operations required by the dispatcher."""

    async def can_reach(self, address: str) -> bool:
        ...

    async def deliver(self, request: DeliveryRequest) -> DeliveryReceipt:
        ...

    async def health(self) -> bool:
        """True when the channel can currently send at all."""
        ...
