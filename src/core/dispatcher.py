"""Bulk notification delivery (core domain).

The dispatcher takes persisted, unsent notification records, delivers them
through a delivery channel port and marks the ones the channel accepted as
sent. Failures are recorded, never retried within the same pass; running it
again over the same records only re-attempts the ones still unsent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from core.config import PacingPolicy
from core.errors import StoreError
from core.models import (
    DeliveryRequest,
    DisplayOptions,
    NotificationKind,
    NotificationRecord,
    NotificationStats,
    Recipient,
)
from core.ports import DeliveryChannelPort, StorePort

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class DeliveryOutcome:
    notification_id: int
    recipient_id: int
    sent: bool
    message_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class BulkDeliveryResult:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[DeliveryOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def record(self, outcome: DeliveryOutcome) -> None:
        self.results.append(outcome)
        if outcome.sent:
            self.successful += 1
        else:
            self.failed += 1
            self.errors.append(f"recipient {outcome.recipient_id}: {outcome.error}")


class Pacer:
    """Minimum spacing between sends, per recipient and across recipients.

    Intervals are measured from the start of the previous attempt, successful
    or not.
    """

    def __init__(self, policy: PacingPolicy, clock: Clock = time.monotonic, sleep: Sleep = asyncio.sleep) -> None:
        self._policy = policy
        self._clock = clock
        self._sleep = sleep
        self._last_attempt: Optional[float] = None
        self._last_recipient: Optional[int] = None

    async def wait(self, recipient_id: int) -> None:
        if self._last_attempt is not None:
            if recipient_id == self._last_recipient:
                interval = self._policy.per_recipient_interval
            else:
                interval = self._policy.global_interval
            remaining = interval - (self._clock() - self._last_attempt)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_attempt = self._clock()
        self._last_recipient = recipient_id


class Dispatcher:
    """Delivers notification records grouped by recipient."""

    def __init__(
        self,
        store: StorePort,
        channel: DeliveryChannelPort,
        pacing: Optional[PacingPolicy] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._channel = channel
        self._pacing = pacing or PacingPolicy()
        self._clock = clock
        self._sleep = sleep

    async def dispatch(self, records: Sequence[NotificationRecord]) -> BulkDeliveryResult:
        result = BulkDeliveryResult(total=len(records))
        groups: Dict[int, List[NotificationRecord]] = {}
        for record in records:
            if record.sent:
                result.skipped += 1
                continue
            # dicts keep insertion order: recipients are served first-seen first.
            groups.setdefault(record.recipient_id, []).append(record)

        pacer = Pacer(self._pacing, self._clock, self._sleep)
        for recipient_id, group in groups.items():
            await self._dispatch_group(recipient_id, group, pacer, result)

        LOGGER.info(
            "Delivery pass: total=%s sent=%s failed=%s skipped=%s",
            result.total,
            result.successful,
            result.failed,
            result.skipped,
        )
        return result

    async def send_pending(self, recipient_id: Optional[int] = None) -> BulkDeliveryResult:
        """Deliver every unsent record, optionally for one recipient only."""

        try:
            records = self._store.list_unsent_notifications(recipient_id)
        except StoreError as exc:
            LOGGER.error("Could not list unsent notifications: %s", exc)
            result = BulkDeliveryResult()
            result.errors.append(f"store: {exc}")
            return result
        return await self.dispatch(records)

    async def health(self) -> bool:
        """Ask the channel whether it can send; a check that raises reads as unhealthy."""

        try:
            healthy = bool(await self._channel.health())
        except Exception as exc:
            LOGGER.warning("Channel health check failed: %s", exc)
            return False
        LOGGER.debug("Channel health check: healthy=%s", healthy)
        return healthy

    def delivery_stats(self, recipient_id: Optional[int] = None) -> NotificationStats:
        """Total/sent/pending notification counts, per recipient or overall."""

        try:
            return self._store.notification_stats(recipient_id)
        except StoreError as exc:
            LOGGER.error("Could not read delivery stats for recipient %s: %s", recipient_id, exc)
            return NotificationStats()

    async def _dispatch_group(
        self,
        recipient_id: int,
        records: List[NotificationRecord],
        pacer: Pacer,
        result: BulkDeliveryResult,
    ) -> None:
        recipient, reason = await self._check_recipient(recipient_id)
        if recipient is None:
            LOGGER.warning("Skipping %s notification(s) for recipient %s: %s", len(records), recipient_id, reason)
            for record in records:
                result.record(DeliveryOutcome(record.id, recipient_id, False, error=reason))
            return

        for record in records:
            await pacer.wait(recipient_id)
            result.record(await self._deliver_one(recipient, record))

    async def _check_recipient(self, recipient_id: int) -> Tuple[Optional[Recipient], str]:
        """Return the deliverable recipient, or None with the reason it is not."""

        try:
            recipient = self._store.get_recipient(recipient_id)
        except StoreError as exc:
            return None, f"recipient lookup failed: {exc}"
        if recipient is None:
            return None, "recipient not found"
        if not recipient.active:
            return None, "recipient inactive"
        if not recipient.preferences.notifications_enabled:
            return None, "notifications disabled"
        try:
            reachable = await self._channel.can_reach(recipient.address)
        except Exception as exc:
            LOGGER.warning("Reachability probe failed for recipient %s: %s", recipient_id, exc)
            reachable = False
        if not reachable:
            return None, "address unreachable"
        return recipient, ""

    async def _deliver_one(self, recipient: Recipient, record: NotificationRecord) -> DeliveryOutcome:
        request = DeliveryRequest(
            address=recipient.address,
            body=record.body,
            title=record.title,
            options=DisplayOptions(
                rich_text=True,
                link_preview=False,
                silent=record.kind != NotificationKind.IMMEDIATE,
            ),
        )
        try:
            receipt = await self._channel.deliver(request)
        except Exception as exc:
            LOGGER.warning("Delivery of notification %s failed: %s", record.id, exc)
            return DeliveryOutcome(record.id, recipient.id, False, error=str(exc) or type(exc).__name__)

        if not receipt.accepted:
            return DeliveryOutcome(record.id, recipient.id, False, error=receipt.reason or "rejected")

        try:
            self._store.mark_notification_sent(record.id, datetime.now(timezone.utc))
        except StoreError as exc:
            LOGGER.error("Delivered notification %s but could not mark it sent: %s", record.id, exc)
            return DeliveryOutcome(record.id, recipient.id, False, receipt.message_id, f"mark sent failed: {exc}")
        return DeliveryOutcome(record.id, recipient.id, True, receipt.message_id)
