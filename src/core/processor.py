"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for storage,
assessment and delivery, enabling other frontends or adapters without
changes here.

Per message the stages run strictly forward: content filter, assessment and
scoring, criticality, per-recipient eligibility, notification records and
(optionally) delivery. Every store write is conditional, so a message another
worker already handled comes back as a skipped result instead of being
processed twice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence

from core.assessment import ImportanceAssessor
from core.config import CriticalityConfig, EligibilityPolicy, PipelineConfig, ScoringWeights
from core.content_filter import ContentFilter
from core.criticality import CriticalityClassifier, CriticalityResult
from core.dispatcher import BulkDeliveryResult, Dispatcher
from core.eligibility import EligibilityDecider
from core.errors import DuplicateNotificationError, StoreError
from core.models import (
    FilterResult,
    Message,
    NotificationDraft,
    NotificationKind,
    NotificationRecord,
    NotificationStats,
    SourceInfo,
)
from core.ports import StorePort
from core.scoring import ImportanceScorer

LOGGER = logging.getLogger(__name__)

BODY_LIMIT = 200

TITLE_CRITICAL = "🚨 Critical news"
TITLE_IMPORTANT = "⚠️ Important news"
TITLE_URGENT = "📢 Urgent news"


def _local_now() -> datetime:
    return datetime.now().astimezone()


def notification_title(result: CriticalityResult, config: Optional[CriticalityConfig] = None) -> str:
    config = config or CriticalityConfig()
    if result.criticality_score >= config.emergency_threshold:
        return TITLE_CRITICAL
    if result.criticality_score >= config.critical_threshold:
        return TITLE_IMPORTANT
    return TITLE_URGENT


def notification_body(text: str) -> str:
    if len(text) > BODY_LIMIT:
        return text[: BODY_LIMIT - 3] + "..."
    return text


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one message; passed_filter is True when the filter let it through."""

    message_id: int
    success: bool = True
    passed_filter: bool = False
    analyzed: bool = False
    notifications_created: int = 0
    notifications_sent: int = 0
    score: Optional[int] = None
    category: Optional[str] = None
    skipped: bool = False
    error: Optional[str] = None


@dataclass
class BatchStats:
    processed: int = 0
    filtered: int = 0
    analyzed: int = 0
    notifications_created: int = 0
    notifications_sent: int = 0
    skipped: int = 0
    errors: int = 0
    processing_time: float = 0.0
    cancelled: bool = False
    rejected: bool = False

    def add(self, result: ProcessingResult) -> None:
        self.processed += 1
        if not result.success:
            self.errors += 1
            return
        if result.skipped:
            self.skipped += 1
            return
        if not result.passed_filter:
            self.filtered += 1
        if result.analyzed:
            self.analyzed += 1
        self.notifications_created += result.notifications_created
        self.notifications_sent += result.notifications_sent

    def merge(self, other: "BatchStats") -> None:
        self.processed += other.processed
        self.filtered += other.filtered
        self.analyzed += other.analyzed
        self.notifications_created += other.notifications_created
        self.notifications_sent += other.notifications_sent
        self.skipped += other.skipped
        self.errors += other.errors
        self.processing_time += other.processing_time


@dataclass(frozen=True)
class ProcessorSnapshot:
    running: bool
    config: PipelineConfig
    batches: int
    totals: BatchStats = field(default_factory=BatchStats)
    # Filled by report(); snapshot() leaves them unset.
    channel_healthy: Optional[bool] = None
    delivery: Optional[NotificationStats] = None


@dataclass(frozen=True)
class _Stages:
    """Configuration plus the components built from it, swapped as one value."""

    config: PipelineConfig
    content_filter: ContentFilter
    scorer: ImportanceScorer
    classifier: CriticalityClassifier
    decider: EligibilityDecider


class MessageProcessor:
    """Orchestrates filtering, scoring, criticality, eligibility and delivery."""

    def __init__(
        self,
        store: StorePort,
        assessor: ImportanceAssessor,
        *,
        content_filter: Optional[ContentFilter] = None,
        scorer: Optional[ImportanceScorer] = None,
        classifier: Optional[CriticalityClassifier] = None,
        decider: Optional[EligibilityDecider] = None,
        dispatcher: Optional[Dispatcher] = None,
        config: Optional[PipelineConfig] = None,
        now: Callable[[], datetime] = _local_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        config = config or PipelineConfig()
        self._store = store
        self._assessor = assessor
        self._dispatcher = dispatcher
        self._now = now
        self._sleep = sleep
        self._stages = _Stages(
            config=config,
            content_filter=content_filter or ContentFilter(),
            scorer=scorer or ImportanceScorer(config.weights),
            classifier=classifier or CriticalityClassifier(config.criticality),
            decider=decider or EligibilityDecider(config.eligibility),
        )
        self._processing = False
        self._batches = 0
        self._totals = BatchStats()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def config(self) -> PipelineConfig:
        return self._stages.config

    def reconfigure(
        self,
        weights: Optional[ScoringWeights] = None,
        criticality: Optional[CriticalityConfig] = None,
        eligibility: Optional[EligibilityPolicy] = None,
    ) -> PipelineConfig:
        """Swap in new knobs; a batch already running keeps the old ones."""

        current = self._stages
        config = current.config
        scorer, classifier, decider = current.scorer, current.classifier, current.decider
        if weights is not None:
            config = replace(config, weights=weights)
            scorer = scorer.with_weights(weights)
        if criticality is not None:
            config = replace(config, criticality=criticality)
            classifier = classifier.with_config(criticality)
        if eligibility is not None:
            config = replace(config, eligibility=eligibility)
            decider = EligibilityDecider(eligibility)
        self._stages = replace(current, config=config, scorer=scorer, classifier=classifier, decider=decider)
        LOGGER.info("Pipeline reconfigured: %s", config)
        return config

    def snapshot(self) -> ProcessorSnapshot:
        totals = replace(self._totals)
        return ProcessorSnapshot(
            running=self._processing,
            config=self._stages.config,
            batches=self._batches,
            totals=totals,
        )

    async def process_message(self, message: Message, source: Optional[SourceInfo] = None) -> ProcessingResult:
        """Run one message through every enabled stage."""

        return await self._process(message, source, self._stages)

    async def process_batch(
        self,
        messages: Sequence[Message],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchStats:
        """Process messages one at a time; refuses to overlap another batch."""

        if self._processing:
            LOGGER.warning("Pipeline is already processing, skipping batch")
            return BatchStats(rejected=True)
        # Set before the first await so a concurrent caller sees it.
        self._processing = True
        stages = self._stages
        stats = BatchStats()
        started = time.monotonic()
        try:
            LOGGER.info("Processing batch of %s message(s)", len(messages))
            for index, message in enumerate(messages):
                if index and stages.config.processing_delay > 0:
                    await self._sleep(stages.config.processing_delay)
                if cancel_event is not None and cancel_event.is_set():
                    LOGGER.info("Batch cancelled after %s message(s)", index)
                    stats.cancelled = True
                    break
                try:
                    result = await self._process(message, None, stages)
                except Exception:
                    LOGGER.exception("Unexpected error processing message %s", message.id)
                    stats.processed += 1
                    stats.errors += 1
                    continue
                stats.add(result)
        finally:
            stats.processing_time = time.monotonic() - started
            self._batches += 1
            self._totals.merge(stats)
            self._processing = False

        LOGGER.info(
            "Batch done: processed=%s filtered=%s analyzed=%s created=%s sent=%s skipped=%s errors=%s",
            stats.processed,
            stats.filtered,
            stats.analyzed,
            stats.notifications_created,
            stats.notifications_sent,
            stats.skipped,
            stats.errors,
        )
        return stats

    async def process_pending(
        self,
        limit: Optional[int] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchStats:
        """Process stored messages that have not been through the pipeline yet."""

        limit = limit or self._stages.config.batch_size
        try:
            messages = self._store.list_pending_messages(limit)
        except StoreError as exc:
            LOGGER.error("Could not list pending messages: %s", exc)
            return BatchStats(errors=1)
        return await self.process_batch(messages, cancel_event)

    async def process_all_pending(self, cancel_event: Optional[asyncio.Event] = None) -> BatchStats:
        """Repeat process_pending until the backlog is empty or a pass makes no progress.

        A pass makes no progress when every message in it failed or was
        skipped; those messages would be listed again on the next pass.
        """

        total = BatchStats()
        while True:
            stats = await self.process_pending(cancel_event=cancel_event)
            if stats.rejected:
                total.rejected = True
                break
            total.merge(stats)
            if stats.cancelled:
                total.cancelled = True
                break
            if stats.processed - stats.errors - stats.skipped <= 0:
                break
        return total

    async def report(self, recipient_id: Optional[int] = None) -> ProcessorSnapshot:
        """Snapshot plus channel health and notification counts."""

        snapshot = self.snapshot()
        if self._dispatcher is not None:
            healthy = await self._dispatcher.health()
            delivery = self._dispatcher.delivery_stats(recipient_id)
        else:
            healthy = False
            try:
                delivery = self._store.notification_stats(recipient_id)
            except StoreError as exc:
                LOGGER.error("Could not read delivery stats: %s", exc)
                delivery = NotificationStats()
        return replace(snapshot, channel_healthy=healthy, delivery=delivery)

    async def send_pending_notifications(self, recipient_id: Optional[int] = None) -> BulkDeliveryResult:
        if self._dispatcher is None:
            LOGGER.warning("No delivery channel configured; pending notifications left unsent")
            return BulkDeliveryResult()
        return await self._dispatcher.send_pending(recipient_id)

    async def _process(self, message: Message, source: Optional[SourceInfo], stages: _Stages) -> ProcessingResult:
        config = stages.config
        try:
            # Stage 1: content filter.
            if config.enable_filtering:
                verdict = stages.content_filter.evaluate(message.text, message.media_kind)
            else:
                verdict = FilterResult(blocked=False, reasons=[], confidence=0.0)
            if not self._store.record_filter_result(message.id, verdict.passed, verdict.reasons):
                LOGGER.debug("Message %s already processed, skipping", message.id)
                return ProcessingResult(message.id, skipped=True)
            if verdict.blocked:
                LOGGER.info("Message %s blocked: %s", message.id, "; ".join(verdict.reasons))
                return ProcessingResult(message.id, passed_filter=False)

            # Stage 2: assessment and scoring.
            analyzed = False
            score: Optional[int] = None
            category: Optional[str] = None
            reasoning: Optional[str] = None
            if config.enable_assessment:
                if source is None:
                    source = self._store.get_source(message.source_id)
                assessment = await self._assessor.assess(
                    message.text,
                    source.display_name if source else None,
                    message.media_kind,
                )
                breakdown = stages.scorer.score(
                    message.text,
                    assessment,
                    source=source,
                    media_kind=message.media_kind,
                    now=self._now(),
                )
                score, category = breakdown.final_score, assessment.category.category
                if not self._store.record_assessment(message.id, score, category):
                    LOGGER.debug("Message %s assessed elsewhere, skipping", message.id)
                    return ProcessingResult(message.id, passed_filter=True, skipped=True)
                analyzed = True
                if not assessment.fallback:
                    reasoning = assessment.importance.reasoning
                LOGGER.info(
                    "Message %s scored %s (%s, %s)",
                    message.id,
                    score,
                    breakdown.tier.value,
                    category,
                )
            elif not self._store.mark_processed(message.id):
                # Assessment off: close the message out on its stored score.
                LOGGER.debug("Message %s processed elsewhere, skipping", message.id)
                return ProcessingResult(message.id, passed_filter=True, skipped=True)

            # Stage 3: notifications.
            created: List[NotificationRecord] = []
            sent = 0
            if config.enable_notifications:
                created = self._create_notifications(message.id, reasoning, stages)
                if created and config.enable_auto_sending and self._dispatcher is not None:
                    delivery = await self._dispatcher.dispatch(created)
                    sent = delivery.successful
        except StoreError as exc:
            LOGGER.error("Store failure while processing message %s: %s", message.id, exc)
            return ProcessingResult(message.id, success=False, error=str(exc))

        return ProcessingResult(
            message.id,
            passed_filter=True,
            analyzed=analyzed,
            notifications_created=len(created),
            notifications_sent=sent,
            score=score,
            category=category,
        )

    def _create_notifications(
        self,
        message_id: int,
        reasoning: Optional[str],
        stages: _Stages,
    ) -> List[NotificationRecord]:
        # Classify what was persisted, not what this worker computed.
        message = self._store.get_message(message_id)
        if message is None:
            raise StoreError(f"message {message_id} disappeared")
        result = stages.classifier.classify(message, reasoning)
        if not result.is_critical:
            return []

        now = self._now()
        title = notification_title(result, stages.config.criticality)
        body = notification_body(message.text)
        created: List[NotificationRecord] = []
        for recipient in self._store.list_active_recipients():
            decision = stages.decider.decide(recipient, result, now)
            if not decision.eligible:
                LOGGER.debug("Recipient %s not notified about %s: %s", recipient.id, message_id, decision.reason)
                continue
            if self._store.notification_exists(message_id, recipient.id, NotificationKind.IMMEDIATE):
                continue
            draft = NotificationDraft(
                recipient_id=recipient.id,
                body=body,
                kind=NotificationKind.IMMEDIATE,
                message_id=message_id,
                title=title,
            )
            try:
                created.append(self._store.create_notification(draft))
            except DuplicateNotificationError:
                LOGGER.debug("Notification for %s/%s created concurrently", message_id, recipient.id)
        if created:
            LOGGER.info(
                "Created %s notification(s) for message %s (criticality %s)",
                len(created),
                message_id,
                result.criticality_score,
            )
        return created
