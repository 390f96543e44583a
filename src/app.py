"""Application entry point for the newsbeacon harvester and notifier."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events
import settings
from adapters.openai_assessment import OpenAIAssessmentService
from adapters.sqlite_storage import SQLiteStore
from adapters.telegram_bot_notifier import TelegramBotDeliveryChannel
from adapters.telegram_mapper import SourceResolver, build_harvested
from adapters.telegram_notifier import TelethonDeliveryChannel
from client import build_client
from core.assessment import ImportanceAssessor
from core.dispatcher import Dispatcher
from core.ports import DeliveryChannelPort
from core.processor import MessageProcessor

NAME = "NEWSBEACON"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    # Longest first so a secret containing another is masked whole.
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/newsbeacon.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_store() -> SQLiteStore:
    store = SQLiteStore(settings.DB_PATH)
    store.init_db()
    for source in settings.SOURCES.values():
        store.upsert_source(source)
    # Recipients listed in config.json are synced on every start.
    for address, preferences in settings.RECIPIENTS:
        store.add_recipient(address, preferences)
    return store


def _build_assessor() -> ImportanceAssessor:
    if not settings.ASSESSMENT_ENABLED:
        LOGGER.info("Assessment service disabled; using heuristic scoring")
        return ImportanceAssessor(None)
    if not settings.OPENAI_API_KEY:
        LOGGER.warning("OPENAI_API_KEY not set; using heuristic scoring")
        return ImportanceAssessor(None)
    service = OpenAIAssessmentService(
        api_key=settings.OPENAI_API_KEY,
        model=settings.ASSESSMENT_MODEL,
        max_tokens=settings.ASSESSMENT_MAX_TOKENS,
        temperature=settings.ASSESSMENT_TEMPERATURE,
    )
    return ImportanceAssessor(service, timeout=settings.ASSESSMENT_TIMEOUT)


def _build_channel(client) -> DeliveryChannelPort:
    if settings.DELIVERY_METHOD == "bot":
        if not settings.BOT_TOKEN:
            raise RuntimeError("Missing BOT_API in environment for bot delivery")
        return TelegramBotDeliveryChannel(settings.BOT_TOKEN)
    return TelethonDeliveryChannel(client)


def _build_processor(store: SQLiteStore, channel: DeliveryChannelPort) -> MessageProcessor:
    config = settings.PIPELINE_CONFIG
    dispatcher = Dispatcher(store, channel, config.pacing)
    return MessageProcessor(store, _build_assessor(), dispatcher=dispatcher, config=config)


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    client = build_client()
    store = _build_store()
    processor = _build_processor(store, _build_channel(client))
    resolver = SourceResolver(client)

    # Single handler keeps Telethon integration minimal: harvest, persist,
    # then hand the stored message to the core pipeline.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            # When using bot notifications, ignore bot-sent messages to avoid
            # loops or accidental processing of our own alerts.
            if settings.DELIVERY_METHOD == "bot":
                sender = await event.get_sender()
                if event.is_private and sender and getattr(sender, "bot", False):
                    return
            harvested = build_harvested(event.message)
            if settings.SOURCES and harvested.source_key not in settings.SOURCES:
                return
            message = store.save_harvested(harvested)
            if message is None:
                return
            source = settings.SOURCES.get(harvested.source_key)
            if source is None:
                source = await resolver.resolve(event.message)
                store.upsert_source(source)
            result = await processor.process_message(message, source)
            if not result.success:
                logger.warning("Message %s left for a later pass: %s", message.id, result.error)
        except Exception:
            logger.exception("Error while processing message")

    # Explicit lifecycle management makes start/shutdown behavior obvious.
    client.start()
    logger.info("Client connected. Listening for incoming messages...")
    client.run_until_disconnected()


async def _drain_pending(processor: MessageProcessor) -> None:
    stats = await processor.process_all_pending()
    LOGGER.info("Drained backlog: processed=%s skipped=%s errors=%s", stats.processed, stats.skipped, stats.errors)
    delivery = await processor.send_pending_notifications()
    LOGGER.info("Pending notifications: sent=%s failed=%s", delivery.successful, delivery.failed)
    for error in delivery.errors:
        LOGGER.warning("Delivery error: %s", error)


def _drain() -> None:
    """Process stored messages left over from earlier runs, then resend unsent notifications."""

    _print_banner()
    _configure_logging()
    store = _build_store()
    if settings.DELIVERY_METHOD == "bot":
        processor = _build_processor(store, _build_channel(None))
        asyncio.run(_drain_pending(processor))
        return

    client = build_client()
    processor = _build_processor(store, _build_channel(client))
    client.start()
    try:
        client.loop.run_until_complete(_drain_pending(processor))
    finally:
        client.disconnect()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="newsbeacon")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Harvest feeds and notify in real time")
    subparsers.add_parser(
        "drain",
        help="Process pending stored messages and resend unsent notifications.",
    )

    args = parser.parse_args(argv)
    if args.command == "drain":
        _drain()
        return
    _run()


if __name__ == "__main__":
    main()
