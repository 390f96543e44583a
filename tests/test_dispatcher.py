from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Optional

from core.config import PacingPolicy
from core.dispatcher import Dispatcher, Pacer
from core.errors import StoreError
from core.models import (
    DeliveryReceipt,
    DeliveryRequest,
    NotificationKind,
    NotificationRecord,
    NotificationStats,
    Recipient,
    RecipientPreferences,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(round(seconds, 6))
        self.now += seconds


class FakeStore:
    def __init__(self, recipients: list[Recipient], records: list[NotificationRecord]) -> None:
        self.recipients = {recipient.id: recipient for recipient in recipients}
        self.records = {record.id: record for record in records}
        self.marked: list[int] = []

    def get_recipient(self, recipient_id: int) -> Optional[Recipient]:
        if recipient_id == 666:
            raise StoreError("database is locked")
        return self.recipients.get(recipient_id)

    def mark_notification_sent(self, notification_id: int, sent_at: datetime) -> None:
        self.marked.append(notification_id)
        self.records[notification_id] = replace(self.records[notification_id], sent=True, sent_at=sent_at)

    def list_unsent_notifications(self, recipient_id: Optional[int] = None) -> list[NotificationRecord]:
        return [
            record
            for record in self.records.values()
            if not record.sent and (recipient_id is None or record.recipient_id == recipient_id)
        ]

    def notification_stats(self, recipient_id: Optional[int] = None) -> NotificationStats:
        if recipient_id == 666:
            raise StoreError("database is locked")
        records = [
            record for record in self.records.values() if recipient_id is None or record.recipient_id == recipient_id
        ]
        sent = sum(1 for record in records if record.sent)
        return NotificationStats(total=len(records), sent=sent, pending=len(records) - sent)


class FakeChannel:
    def __init__(
        self,
        clock: FakeClock,
        unreachable: set[str] = frozenset(),
        reject: set[str] = frozenset(),
        explode: set[str] = frozenset(),
        healthy: object = True,
    ) -> None:
        self._clock = clock
        self._healthy = healthy
        self._unreachable = unreachable
        self._reject = reject
        self._explode = explode
        self.probes: list[str] = []
        self.delivered: list[tuple[float, DeliveryRequest]] = []

    async def health(self) -> bool:
        if isinstance(self._healthy, Exception):
            raise self._healthy
        return self._healthy

    async def can_reach(self, address: str) -> bool:
        self.probes.append(address)
        return address not in self._unreachable

    async def deliver(self, request: DeliveryRequest) -> DeliveryReceipt:
        self.delivered.append((self._clock.now, request))
        if request.body in self._explode:
            raise ConnectionError("socket closed")
        if request.body in self._reject:
            return DeliveryReceipt(accepted=False, reason="chat not found")
        return DeliveryReceipt(accepted=True, message_id=len(self.delivered))


def _recipient(recipient_id: int, **preferences) -> Recipient:
    active = preferences.pop("active", True)
    return Recipient(
        id=recipient_id,
        address=f"user{recipient_id}",
        active=active,
        preferences=RecipientPreferences(**preferences),
    )


def _record(record_id: int, recipient_id: int, body: str = "", **fields) -> NotificationRecord:
    return NotificationRecord(
        id=record_id,
        recipient_id=recipient_id,
        body=body or f"body {record_id}",
        message_id=record_id,
        title="⚠️ Important news",
        **fields,
    )


def _dispatcher(store: FakeStore, channel: FakeChannel, clock: FakeClock) -> Dispatcher:
    return Dispatcher(store, channel, PacingPolicy(per_recipient_interval=0.2, global_interval=0.1), clock, clock.sleep)


def test_same_recipient_is_paced_and_both_marked_sent() -> None:
    clock = FakeClock()
    records = [_record(1, 1), _record(2, 1)]
    store = FakeStore([_recipient(1)], records)
    channel = FakeChannel(clock)

    result = asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert result.successful == 2
    assert result.failed == 0
    assert store.marked == [1, 2]
    assert clock.sleeps == [0.2]
    sent_times = [at for at, _ in channel.delivered]
    assert sent_times[1] - sent_times[0] >= 0.2


def test_unreachable_address_fails_only_that_recipient() -> None:
    clock = FakeClock()
    records = [_record(1, 1), _record(2, 2)]
    store = FakeStore([_recipient(1), _recipient(2)], records)
    channel = FakeChannel(clock, unreachable={"user2"})

    result = asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert result.successful == 1
    assert result.failed == 1
    assert store.marked == [1]
    assert [request.address for _, request in channel.delivered] == ["user1"]
    assert result.errors == ["recipient 2: address unreachable"]
    assert not store.records[2].sent


def test_global_interval_between_recipients() -> None:
    clock = FakeClock()
    records = [_record(1, 1), _record(2, 2)]
    store = FakeStore([_recipient(1), _recipient(2)], records)

    asyncio.run(_dispatcher(store, FakeChannel(clock), clock).dispatch(records))

    assert clock.sleeps == [0.1]


def test_recipients_are_served_in_first_seen_order() -> None:
    clock = FakeClock()
    records = [_record(1, 2), _record(2, 1), _record(3, 2)]
    store = FakeStore([_recipient(1), _recipient(2)], records)
    channel = FakeChannel(clock)

    asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert [request.body for _, request in channel.delivered] == ["body 1", "body 3", "body 2"]


def test_interval_is_honoured_after_a_rejected_send() -> None:
    clock = FakeClock()
    records = [_record(1, 1, body="bad"), _record(2, 1)]
    store = FakeStore([_recipient(1)], records)
    channel = FakeChannel(clock, reject={"bad"})

    result = asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert result.failed == 1
    assert result.successful == 1
    assert clock.sleeps == [0.2]
    assert result.errors == ["recipient 1: chat not found"]
    assert not store.records[1].sent


def test_channel_exception_is_recorded_not_raised() -> None:
    clock = FakeClock()
    records = [_record(1, 1, body="boom"), _record(2, 1)]
    store = FakeStore([_recipient(1)], records)

    result = asyncio.run(_dispatcher(store, FakeChannel(clock, explode={"boom"}), clock).dispatch(records))

    assert result.failed == 1
    assert result.successful == 1
    assert result.errors == ["recipient 1: socket closed"]


def test_already_sent_records_are_skipped() -> None:
    clock = FakeClock()
    records = [_record(1, 1, sent=True), _record(2, 1)]
    store = FakeStore([_recipient(1)], records)
    channel = FakeChannel(clock)

    result = asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert result.total == 2
    assert result.skipped == 1
    assert result.successful == 1
    assert len(channel.delivered) == 1


def test_send_pending_is_idempotent() -> None:
    clock = FakeClock()
    store = FakeStore([_recipient(1)], [_record(1, 1), _record(2, 1)])
    channel = FakeChannel(clock)
    dispatcher = _dispatcher(store, channel, clock)

    first = asyncio.run(dispatcher.send_pending())
    second = asyncio.run(dispatcher.send_pending())

    assert first.successful == 2
    assert second.total == 0
    assert len(channel.delivered) == 2


def test_send_pending_retries_only_unsent() -> None:
    clock = FakeClock()
    store = FakeStore([_recipient(1)], [_record(1, 1, body="bad"), _record(2, 1)])
    first = asyncio.run(_dispatcher(store, FakeChannel(clock, reject={"bad"}), clock).send_pending())
    channel = FakeChannel(clock)
    second = asyncio.run(_dispatcher(store, channel, clock).send_pending())

    assert first.successful == 1
    assert second.total == 1
    assert second.successful == 1
    assert [request.body for _, request in channel.delivered] == ["bad"]


def test_recipient_problems_fail_without_delivery() -> None:
    clock = FakeClock()
    records = [_record(1, 1), _record(2, 2), _record(3, 3), _record(4, 666)]
    store = FakeStore([_recipient(1, notifications_enabled=False), _recipient(2, active=False)], records)
    channel = FakeChannel(clock)

    result = asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    assert result.failed == 4
    assert channel.delivered == []
    assert channel.probes == []
    assert result.errors[0] == "recipient 1: notifications disabled"
    assert result.errors[1] == "recipient 2: recipient inactive"
    assert result.errors[2] == "recipient 3: recipient not found"
    assert result.errors[3].startswith("recipient 666: recipient lookup failed")


def test_display_options() -> None:
    clock = FakeClock()
    records = [_record(1, 1), _record(2, 1, kind=NotificationKind.DIGEST)]
    store = FakeStore([_recipient(1)], records)
    channel = FakeChannel(clock)

    asyncio.run(_dispatcher(store, channel, clock).dispatch(records))

    immediate, digest = (request for _, request in channel.delivered)
    assert immediate.title == "⚠️ Important news"
    assert immediate.options.rich_text
    assert not immediate.options.link_preview
    assert not immediate.options.silent
    assert digest.options.silent


def test_pacer_does_not_sleep_when_interval_already_elapsed() -> None:
    clock = FakeClock()
    pacer = Pacer(PacingPolicy(per_recipient_interval=0.2, global_interval=0.1), clock, clock.sleep)

    async def scenario() -> None:
        await pacer.wait(1)
        clock.now += 5
        await pacer.wait(1)

    asyncio.run(scenario())
    assert clock.sleeps == []


def test_channel_health_is_reported() -> None:
    clock = FakeClock()
    store = FakeStore([], [])

    assert asyncio.run(_dispatcher(store, FakeChannel(clock), clock).health())
    assert not asyncio.run(_dispatcher(store, FakeChannel(clock, healthy=False), clock).health())


def test_failing_health_check_reads_as_unhealthy() -> None:
    clock = FakeClock()
    channel = FakeChannel(clock, healthy=ConnectionError("socket closed"))
    assert not asyncio.run(_dispatcher(FakeStore([], []), channel, clock).health())


def test_delivery_stats_per_recipient() -> None:
    clock = FakeClock()
    records = [_record(1, 1, sent=True), _record(2, 1), _record(3, 2)]
    dispatcher = _dispatcher(FakeStore([_recipient(1), _recipient(2)], records), FakeChannel(clock), clock)

    assert dispatcher.delivery_stats(1) == NotificationStats(total=2, sent=1, pending=1)
    assert dispatcher.delivery_stats() == NotificationStats(total=3, sent=1, pending=2)
    # Store failures come back as empty counts.
    assert dispatcher.delivery_stats(666) == NotificationStats()
