from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.telegram_mapper import (
    SourceResolver,
    build_harvested,
    media_kind_from_message,
    source_key_from_message,
)
from core.models import MediaKind, SourceInfo


class DummyChat:
    def __init__(self, username: "str | None" = None) -> None:
        self.username = username


class DummyMessage:
    def __init__(self, *, chat_id: int = -100123, text: "str | None" = "hello", username=None, **media) -> None:
        self.chat_id = chat_id
        self.id = 10
        self.raw_text = text
        self.chat = DummyChat(username)
        self.date = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for attribute in ("photo", "sticker", "gif", "voice", "video", "audio", "document"):
            setattr(self, attribute, media.get(attribute))


class DummyEntity:
    title = "City News"
    username = "citynews"
    participants_count = 12000
    verified = True


class DummyClient:
    def __init__(self, fail: bool = False) -> None:
        self._fail = fail
        self.lookups: list[int] = []

    async def get_entity(self, chat_id: int):
        self.lookups.append(chat_id)
        if self._fail:
            raise ValueError("Cannot find any entity")
        return DummyEntity()


def test_source_key_prefers_lowercased_username() -> None:
    assert source_key_from_message(DummyMessage(username="CityNews")) == "@citynews"


def test_source_key_falls_back_to_chat_id() -> None:
    assert source_key_from_message(DummyMessage(username=None)) == "chat_id:-100123"


def test_media_kind_order() -> None:
    assert media_kind_from_message(DummyMessage()) == MediaKind.TEXT
    assert media_kind_from_message(DummyMessage(photo=object())) == MediaKind.PHOTO
    # A GIF is also a document.
    assert media_kind_from_message(DummyMessage(gif=object(), document=object())) == MediaKind.ANIMATION
    assert media_kind_from_message(DummyMessage(voice=object(), audio=object())) == MediaKind.VOICE
    assert media_kind_from_message(DummyMessage(document=object())) == MediaKind.DOCUMENT


def test_build_harvested() -> None:
    harvested = build_harvested(DummyMessage(username="citynews", text=None, photo=object()))
    assert harvested.source_key == "@citynews"
    assert harvested.external_id == 10
    assert harvested.text == ""
    assert harvested.media_kind == MediaKind.PHOTO
    assert harvested.posted_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_resolver_caches_entities() -> None:
    client = DummyClient()
    resolver = SourceResolver(client)
    message = DummyMessage(username="citynews")

    async def scenario():
        return await resolver.resolve(message), await resolver.resolve(message)

    first, second = asyncio.run(scenario())
    assert first == SourceInfo("@citynews", "City News", 12000, True)
    assert second is first
    assert client.lookups == [-100123]


def test_resolver_failure_returns_bare_info_and_retries() -> None:
    client = DummyClient(fail=True)
    resolver = SourceResolver(client)
    message = DummyMessage(username=None)

    async def scenario():
        return await resolver.resolve(message), await resolver.resolve(message)

    first, _ = asyncio.run(scenario())
    assert first == SourceInfo("chat_id:-100123")
    assert len(client.lookups) == 2
