"""SQLite storage adapter.

Implements the core StorePort using a simple SQLite database. Pipeline flag
updates are conditional UPDATEs, so two workers racing on one message cannot
both move it forward.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import json
import sqlite3
from typing import Iterator, List, Optional, Sequence

from core.errors import DuplicateNotificationError, StoreError
from core.models import (
    HarvestedMessage,
    MediaKind,
    Message,
    NotificationDraft,
    NotificationKind,
    NotificationRecord,
    NotificationStats,
    QuietHours,
    Recipient,
    RecipientPreferences,
    SourceInfo,
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def preferences_to_json(preferences: RecipientPreferences) -> str:
    quiet = preferences.quiet_hours
    return json.dumps(
        {
            "notifications_enabled": preferences.notifications_enabled,
            "score_threshold": preferences.score_threshold,
            "categories": list(preferences.categories),
            "keywords": list(preferences.keywords),
            "quiet_hours": {"start": quiet.start, "end": quiet.end} if quiet else None,
        },
        ensure_ascii=False,
    )


def preferences_from_json(raw: Optional[str]) -> RecipientPreferences:
    data = json.loads(raw) if raw else {}
    quiet = data.get("quiet_hours")
    return RecipientPreferences(
        notifications_enabled=bool(data.get("notifications_enabled", True)),
        score_threshold=int(data.get("score_threshold", 50)),
        categories=tuple(data.get("categories") or ()),
        keywords=tuple(data.get("keywords") or ()),
        quiet_hours=QuietHours(quiet["start"], quiet["end"]) if quiet else None,
    )


class SQLiteStore:
    """Thin SQLite wrapper that satisfies the StorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on error, always close.

        Driver errors surface as StoreError so the core never sees sqlite3.
        """

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StoreError(f"cannot open {self._db_path}: {exc}") from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - sources: feed metadata used for source-reliability signals
        - messages: harvested messages and their pipeline flags
        - recipients: delivery addresses with JSON preferences
        - notifications: notification records and their delivery state
        """

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sources (
                    source_id TEXT PRIMARY KEY,
                    display_name TEXT,
                    subscriber_count INTEGER,
                    verified INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # filter_checked_at stays NULL until the filter has run, which is
            # how a fresh message differs from a blocked one.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT NOT NULL,
                    external_id INTEGER NOT NULL,
                    text TEXT NOT NULL,
                    media_kind TEXT NOT NULL DEFAULT 'text',
                    pass_filter INTEGER NOT NULL DEFAULT 0,
                    processed INTEGER NOT NULL DEFAULT 0,
                    importance_score INTEGER NOT NULL DEFAULT 0,
                    category TEXT,
                    filter_reasons TEXT NOT NULL DEFAULT '[]',
                    filter_checked_at TIMESTAMP,
                    posted_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    UNIQUE (source_id, external_id)
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS recipients (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    address TEXT NOT NULL UNIQUE,
                    active INTEGER NOT NULL DEFAULT 1,
                    preferences TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    recipient_id INTEGER NOT NULL,
                    message_id INTEGER,
                    kind TEXT NOT NULL,
                    title TEXT,
                    body TEXT NOT NULL,
                    sent INTEGER NOT NULL DEFAULT 0,
                    sent_at TIMESTAMP,
                    created_at TIMESTAMP NOT NULL
                )
                """
            )
            # At most one immediate notification per (recipient, message).
            conn.execute(
                """
                CREATE UNIQUE INDEX IF NOT EXISTS ux_notifications_immediate
                ON notifications (recipient_id, message_id)
                WHERE kind = 'immediate' AND message_id IS NOT NULL
                """
            )

    # Sources -----------------------------------------------------------

    def upsert_source(self, source: SourceInfo) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sources (source_id, display_name, subscriber_count, verified)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    subscriber_count = excluded.subscriber_count,
                    verified = excluded.verified
                """,
                (source.source_id, source.display_name, source.subscriber_count, int(source.verified)),
            )

    def get_source(self, source_id: str) -> Optional[SourceInfo]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM sources WHERE source_id = ?", (source_id,)).fetchone()
        if row is None:
            return None
        return SourceInfo(
            source_id=row["source_id"],
            display_name=row["display_name"],
            subscriber_count=row["subscriber_count"],
            verified=bool(row["verified"]),
        )

    # Messages ----------------------------------------------------------

    def save_harvested(self, harvested: HarvestedMessage) -> Optional[Message]:
        """Persist a harvested message; returns None if it was already stored."""

        now = _now_iso()
        with self._transaction() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO messages (
                    source_id, external_id, text, media_kind, posted_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    harvested.source_key,
                    harvested.external_id,
                    harvested.text,
                    harvested.media_kind.value,
                    harvested.posted_at.isoformat() if harvested.posted_at else None,
                    now,
                    now,
                ),
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (cur.lastrowid,)).fetchone()
        return self._row_to_message(row)

    def get_message(self, message_id: int) -> Optional[Message]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return self._row_to_message(row) if row else None

    def list_pending_messages(self, limit: int) -> List[Message]:
        """Unprocessed messages that are new or passed the filter, oldest first."""

        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE processed = 0 AND (filter_checked_at IS NULL OR pass_filter = 1)
                ORDER BY id
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def record_filter_result(self, message_id: int, passed: bool, reasons: Sequence[str]) -> bool:
        now = _now_iso()
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE messages
                SET pass_filter = ?, filter_reasons = ?, filter_checked_at = ?, updated_at = ?
                WHERE id = ? AND processed = 0
                """,
                (int(passed), json.dumps(list(reasons), ensure_ascii=False), now, now, message_id),
            )
            return cur.rowcount == 1

    def record_assessment(self, message_id: int, score: int, category: Optional[str]) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE messages
                SET processed = 1, importance_score = ?, category = ?, updated_at = ?
                WHERE id = ? AND pass_filter = 1 AND processed = 0
                """,
                (score, category, _now_iso(), message_id),
            )
            return cur.rowcount == 1

    def mark_processed(self, message_id: int) -> bool:
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE messages
                SET processed = 1, updated_at = ?
                WHERE id = ? AND pass_filter = 1 AND processed = 0
                """,
                (_now_iso(), message_id),
            )
            return cur.rowcount == 1

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            source_id=row["source_id"],
            text=row["text"],
            media_kind=MediaKind(row["media_kind"]),
            pass_filter=bool(row["pass_filter"]),
            processed=bool(row["processed"]),
            importance_score=row["importance_score"],
            category=row["category"],
            filter_reasons=tuple(json.loads(row["filter_reasons"] or "[]")),
            filter_checked_at=_parse_ts(row["filter_checked_at"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    # Recipients --------------------------------------------------------

    def add_recipient(
        self,
        address: str,
        preferences: Optional[RecipientPreferences] = None,
        active: bool = True,
    ) -> Recipient:
        preferences = preferences or RecipientPreferences()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO recipients (address, active, preferences, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    active = excluded.active,
                    preferences = excluded.preferences
                """,
                (address, int(active), preferences_to_json(preferences), _now_iso()),
            )
            row = conn.execute("SELECT * FROM recipients WHERE address = ?", (address,)).fetchone()
        return self._row_to_recipient(row)

    def get_recipient(self, recipient_id: int) -> Optional[Recipient]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM recipients WHERE id = ?", (recipient_id,)).fetchone()
        return self._row_to_recipient(row) if row else None

    def list_active_recipients(self) -> List[Recipient]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM recipients WHERE active = 1 ORDER BY id").fetchall()
        return [self._row_to_recipient(row) for row in rows]

    @staticmethod
    def _row_to_recipient(row: sqlite3.Row) -> Recipient:
        try:
            preferences = preferences_from_json(row["preferences"])
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise StoreError(f"recipient {row['id']} has invalid preferences: {exc}") from exc
        return Recipient(
            id=row["id"],
            address=row["address"],
            active=bool(row["active"]),
            preferences=preferences,
        )

    # Notifications -----------------------------------------------------

    def notification_exists(self, message_id: int, recipient_id: int, kind: NotificationKind) -> bool:
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM notifications
                WHERE message_id = ? AND recipient_id = ? AND kind = ?
                """,
                (message_id, recipient_id, kind.value),
            ).fetchone()
        return row is not None

    def create_notification(self, draft: NotificationDraft) -> NotificationRecord:
        with self._transaction() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO notifications (recipient_id, message_id, kind, title, body, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        draft.recipient_id,
                        draft.message_id,
                        draft.kind.value,
                        draft.title,
                        draft.body,
                        _now_iso(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateNotificationError(
                    f"notification for message {draft.message_id} and recipient {draft.recipient_id} exists"
                ) from exc
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (cur.lastrowid,)).fetchone()
        return self._row_to_notification(row)

    def mark_notification_sent(self, notification_id: int, sent_at: datetime) -> None:
        # sent never goes back to 0, and a second mark keeps the first sent_at.
        with self._transaction() as conn:
            conn.execute(
                "UPDATE notifications SET sent = 1, sent_at = ? WHERE id = ? AND sent = 0",
                (sent_at.isoformat(), notification_id),
            )

    def list_unsent_notifications(self, recipient_id: Optional[int] = None) -> List[NotificationRecord]:
        query = "SELECT * FROM notifications WHERE sent = 0"
        params: tuple = ()
        if recipient_id is not None:
            query += " AND recipient_id = ?"
            params = (recipient_id,)
        with self._transaction() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [self._row_to_notification(row) for row in rows]

    def notification_stats(self, recipient_id: Optional[int] = None) -> NotificationStats:
        query = "SELECT sent, COUNT(*) AS n FROM notifications"
        params: tuple = ()
        if recipient_id is not None:
            query += " WHERE recipient_id = ?"
            params = (recipient_id,)
        with self._transaction() as conn:
            rows = conn.execute(query + " GROUP BY sent", params).fetchall()
        counts = {bool(row["sent"]): row["n"] for row in rows}
        sent, pending = counts.get(True, 0), counts.get(False, 0)
        return NotificationStats(total=sent + pending, sent=sent, pending=pending)

    def get_notification(self, notification_id: int) -> Optional[NotificationRecord]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        return self._row_to_notification(row) if row else None

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            recipient_id=row["recipient_id"],
            body=row["body"],
            kind=NotificationKind(row["kind"]),
            message_id=row["message_id"],
            title=row["title"],
            sent=bool(row["sent"]),
            sent_at=_parse_ts(row["sent_at"]),
            created_at=_parse_ts(row["created_at"]),
        )
