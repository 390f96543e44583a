"""Telethon delivery channel.

Sends notifications from the user account itself; address "me" delivers to
Saved Messages.
"""

from __future__ import annotations

import logging

from telethon.errors import RPCError

from adapters.notification_formatting import format_delivery_text
from core.models import DeliveryReceipt, DeliveryRequest

LOGGER = logging.getLogger(__name__)


class TelethonDeliveryChannel:
    """Delivery channel adapter backed by a connected Telethon client."""

    def __init__(self, client) -> None:
        self._client = client

    async def can_reach(self, address: str) -> bool:
        try:
            await self._client.get_input_entity(address)
        except (ValueError, TypeError, RPCError) as exc:
            LOGGER.info("Address %s unreachable: %s", address, exc)
            return False
        return True

    async def health(self) -> bool:
        """Connected and authorized: get_me answers only for a logged-in session."""

        if not self._client.is_connected():
            return False
        try:
            me = await self._client.get_me()
        except (RPCError, ConnectionError) as exc:
            LOGGER.warning("Telethon health check failed: %s", exc)
            return False
        return me is not None

    async def deliver(self, request: DeliveryRequest) -> DeliveryReceipt:
        options = request.options
        text = format_delivery_text(request, mode="markdown")
        try:
            sent = await self._client.send_message(
                request.address,
                text,
                parse_mode="Markdown" if options.rich_text else None,
                link_preview=options.link_preview,
                silent=options.silent,
            )
        except RPCError as exc:
            return DeliveryReceipt(accepted=False, reason=str(exc))
        return DeliveryReceipt(accepted=True, message_id=getattr(sent, "id", None))
