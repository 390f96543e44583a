"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline.
"""

from __future__ import annotations

import logging
from typing import Optional

from telethon.tl.custom import Message

from core.models import HarvestedMessage, MediaKind, SourceInfo

LOGGER = logging.getLogger(__name__)

# Checked in order: a GIF is also a document, a voice note is also audio.
_MEDIA_ATTRIBUTES = (
    ("photo", MediaKind.PHOTO),
    ("sticker", MediaKind.STICKER),
    ("gif", MediaKind.ANIMATION),
    ("voice", MediaKind.VOICE),
    ("video", MediaKind.VIDEO),
    ("audio", MediaKind.AUDIO),
    ("document", MediaKind.DOCUMENT),
)


class SourceResolver:
    """Resolve feed metadata for a chat, with a chat_id cache."""

    def __init__(self, client) -> None:
        self._client = client
        self._cache: dict[int, SourceInfo] = {}

    async def resolve(self, message: Message) -> SourceInfo:
        chat_id = message.chat_id
        if chat_id in self._cache:
            return self._cache[chat_id]
        source_key = source_key_from_message(message)
        try:
            entity = await self._client.get_entity(chat_id)
        except Exception:
            LOGGER.warning("Could not resolve chat %s, using bare source info", chat_id)
            return SourceInfo(source_id=source_key)
        info = SourceInfo(
            source_id=source_key,
            display_name=getattr(entity, "title", None) or getattr(entity, "username", None),
            subscriber_count=getattr(entity, "participants_count", None),
            verified=bool(getattr(entity, "verified", False)),
        )
        self._cache[chat_id] = info
        return info


def source_key_from_message(message: Message) -> str:
    """Normalize a source key using a single rule enforced across the app."""

    chat = getattr(message, "chat", None)
    username = getattr(chat, "username", None)

    if isinstance(username, str) and username:
        return f"@{username.lower()}"

    # Fallback: always stable and universal
    return f"chat_id:{message.chat_id}"


def media_kind_from_message(message: Message) -> MediaKind:
    for attribute, kind in _MEDIA_ATTRIBUTES:
        if getattr(message, attribute, None):
            return kind
    return MediaKind.TEXT


def build_harvested(message: Message) -> HarvestedMessage:
    """Build a core HarvestedMessage from a Telethon Message."""

    return HarvestedMessage(
        source_key=source_key_from_message(message),
        external_id=message.id,
        text=message.raw_text or "",
        media_kind=media_kind_from_message(message),
        posted_at=message.date,
    )
