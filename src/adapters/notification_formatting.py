"""Shared notification formatting helpers.

Keeping formatting here prevents drift between delivery channels and keeps
notifications consistent regardless of how they are sent.
"""

from __future__ import annotations

import html

from core.models import DeliveryRequest

DIVIDER = "──────────────"


def escape_markdown(value: str) -> str:
    for ch in r"*[`":
        value = value.replace(ch, f"\\{ch}")
    return value


def _format_markdown(request: DeliveryRequest) -> str:
    """Create the Markdown body used by the Telethon channel."""

    lines = []
    if request.title:
        lines.extend([f"**{escape_markdown(request.title)}**", DIVIDER, ""])
    lines.append(escape_markdown(request.body))
    return "\n".join(lines)


def _format_html(request: DeliveryRequest) -> str:
    """Create the HTML body used by the Bot API channel."""

    parts = []
    if request.title:
        parts.extend([f"<b>{html.escape(request.title)}</b>", DIVIDER, ""])
    parts.append(html.escape(request.body))
    return "\n".join(parts)


def _format_plain(request: DeliveryRequest) -> str:
    if request.title:
        return f"{request.title}\n\n{request.body}"
    return request.body


def format_delivery_text(request: DeliveryRequest, mode: str) -> str:
    """Return the notification text for the requested mode.

    Plain text is used whenever the request disables rich text.
    """

    if not request.options.rich_text:
        return _format_plain(request)
    if mode == "markdown":
        return _format_markdown(request)
    if mode == "html":
        return _format_html(request)
    raise ValueError(f"Unsupported notification format: {mode}")
