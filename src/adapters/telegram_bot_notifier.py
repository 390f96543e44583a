"""Telegram Bot API delivery channel.

Uses the Bot API for delivery so notifications can be routed via a bot chat.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict
import urllib.error
import urllib.request

from adapters.notification_formatting import format_delivery_text
from core.errors import DeliveryError
from core.models import DeliveryReceipt, DeliveryRequest

LOGGER = logging.getLogger(__name__)


class BotApiError(DeliveryError):
    """The Bot API answered with a non-2xx status."""

    def __init__(self, code: int, description: str) -> None:
        super().__init__(f"Bot API error {code}: {description}")
        self.code = code
        self.description = description


class TelegramBotDeliveryChannel:
    """Delivery channel adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, timeout: float = 10.0) -> None:
        self._bot_token = bot_token
        self._timeout = timeout

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"https://api.telegram.org/bot{self._bot_token}/{method}"

    def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(method), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            try:
                description = json.loads(body).get("description", body)
            except ValueError:
                description = body
            raise BotApiError(e.code, description) from e
        except (urllib.error.URLError, TimeoutError, ValueError) as e:
            raise DeliveryError(f"Bot API request failed: {e}") from e

    async def _request(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        # urllib blocks; run it off the event loop.
        return await asyncio.to_thread(self._call, method, payload)

    async def can_reach(self, address: str) -> bool:
        """Probe the chat with getChat; 4xx means the bot cannot write there."""

        try:
            answer = await self._request("getChat", {"chat_id": address})
        except BotApiError as exc:
            LOGGER.info("Address %s unreachable: %s", address, exc.description)
            return False
        return bool(answer.get("ok"))

    async def health(self) -> bool:
        """Probe the token with getMe."""

        try:
            answer = await self._request("getMe", {})
        except DeliveryError as exc:
            LOGGER.warning("Bot API health check failed: %s", exc)
            return False
        return bool(answer.get("ok"))

    async def deliver(self, request: DeliveryRequest) -> DeliveryReceipt:
        options = request.options
        payload: Dict[str, Any] = {
            "chat_id": request.address,
            "text": format_delivery_text(request, mode="html"),
            "disable_web_page_preview": not options.link_preview,
            "disable_notification": options.silent,
        }
        if options.rich_text:
            payload["parse_mode"] = "HTML"
        try:
            answer = await self._request("sendMessage", payload)
        except BotApiError as exc:
            return DeliveryReceipt(accepted=False, reason=str(exc))
        if not answer.get("ok"):
            return DeliveryReceipt(accepted=False, reason=answer.get("description") or "rejected")
        message_id = (answer.get("result") or {}).get("message_id")
        return DeliveryReceipt(accepted=True, message_id=message_id)
