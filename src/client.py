"""Telegram client factory for newsbeacon.

The same user-account client harvests channel messages and, with the
"saved_messages" delivery method, sends the notifications too. Login is not
handled here: the session file must already be authorized.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient

LOGGER = logging.getLogger(__name__)

# FloodWait errors shorter than this are slept through by Telethon itself;
# longer ones surface as delivery failures and are retried on the next pass.
FLOOD_SLEEP_THRESHOLD = 60


@dataclass(frozen=True)
class ClientCredentials:
    api_id: int
    api_hash: str
    session_name: str = "newsbeacon"


def load_credentials() -> ClientCredentials:
    """Read API_ID/API_HASH/SESSION_NAME from the environment (.env)."""

    load_dotenv()
    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    if not api_id.isdigit():
        raise RuntimeError("API_ID must be numeric")
    return ClientCredentials(int(api_id), api_hash, os.getenv("SESSION_NAME", "newsbeacon"))


def build_client(credentials: ClientCredentials | None = None) -> TelegramClient:
    credentials = credentials or load_credentials()
    LOGGER.info("Initializing Telegram client (session %s)", credentials.session_name)
    return TelegramClient(
        credentials.session_name,
        credentials.api_id,
        credentials.api_hash,
        flood_sleep_threshold=FLOOD_SLEEP_THRESHOLD,
    )
