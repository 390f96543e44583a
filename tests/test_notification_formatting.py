from __future__ import annotations

import pytest

from adapters.notification_formatting import DIVIDER, escape_markdown, format_delivery_text
from core.models import DeliveryRequest, DisplayOptions


def _request(body: str, title: "str | None" = "🚨 Critical news", rich_text: bool = True) -> DeliveryRequest:
    return DeliveryRequest(address="me", body=body, title=title, options=DisplayOptions(rich_text=rich_text))


def test_html_escapes_body_and_bolds_title() -> None:
    text = format_delivery_text(_request("Prices <up> & rising"), "html")
    assert text.splitlines()[0] == "<b>🚨 Critical news</b>"
    assert DIVIDER in text
    assert text.endswith("Prices &lt;up&gt; &amp; rising")


def test_markdown_escapes_control_characters() -> None:
    text = format_delivery_text(_request("Rate *up* see [link] `x`"), "markdown")
    assert text.startswith("**🚨 Critical news**")
    assert text.endswith(r"Rate \*up\* see \[link] \`x\`")


def test_escape_markdown_leaves_plain_text() -> None:
    assert escape_markdown("Flood in the north") == "Flood in the north"


def test_body_only_without_title() -> None:
    assert format_delivery_text(_request("Flood", title=None), "html") == "Flood"
    assert format_delivery_text(_request("Flood", title=None), "markdown") == "Flood"


def test_plain_text_when_rich_text_disabled() -> None:
    text = format_delivery_text(_request("Prices <up>", rich_text=False), "html")
    assert text == "🚨 Critical news\n\nPrices <up>"


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        format_delivery_text(_request("Flood"), "bbcode")
