"""
Message Store Reader — read-only queries against ~/Library/Messages/chat.db.

Rows come back newest first. Each row is decoded on its own: a plain-text
body is scanned for a link, a legacy attributed body goes through the
decoder, attachments are resolved through the join table. A row that fails
any of these degrades to a safe default instead of failing the query.

Opening the store needs Full Disk Access for the host process; that
precondition is checked (and retried) before any query runs.
"""

from __future__ import annotations

import asyncio
import os
import re
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from macbridge.config import get_settings
from macbridge.errors import MessageStoreAccessError
from macbridge.messages.decoder import decode_legacy_body
from macbridge.messages.phone import normalize_phone_number
from macbridge.models import BySender, DecodedMessage, MessageFilter, Unread
from macbridge.observability import metrics as obs_metrics

logger = structlog.get_logger()

NO_TEXT_CONTENT = "[No text content]"

_URL_RE = re.compile(r"(https?://\S+)")

# content_type discriminator for a hex-encoded attributedBody
_LEGACY_BODY = 1

_FDA_HINT = (
    "Cannot access the Messages database. Grant Full Disk Access to the "
    "terminal running this process (System Settings > Privacy & Security > "
    "Full Disk Access) and restart it."
)

# Message date is nanoseconds since 2001-01-01 (Apple epoch)
_SELECT = """
    SELECT
        m.ROWID AS message_id,
        CASE
            WHEN m.text IS NOT NULL AND m.text != '' THEN m.text
            WHEN m.attributedBody IS NOT NULL THEN hex(m.attributedBody)
            ELSE NULL
        END AS content,
        datetime(m.date / 1000000000 + strftime('%s', '2001-01-01'), 'unixepoch') AS date,
        h.id AS sender,
        m.is_from_me,
        m.cache_has_attachments,
        m.subject,
        CASE
            WHEN m.text IS NOT NULL AND m.text != '' THEN 0
            WHEN m.attributedBody IS NOT NULL THEN 1
            ELSE 2
        END AS content_type
    FROM message m
    INNER JOIN handle h ON h.ROWID = m.handle_id
    WHERE {criteria}
        AND (m.text IS NOT NULL OR m.attributedBody IS NOT NULL OR m.cache_has_attachments = 1)
        AND m.item_type = 0
        AND m.is_audio_message = 0
    ORDER BY m.date DESC
    LIMIT ?
"""

_ATTACHMENTS = """
    SELECT attachment.filename
    FROM attachment
    INNER JOIN message_attachment_join
        ON attachment.ROWID = message_attachment_join.attachment_id
    WHERE message_attachment_join.message_id = ?
"""


def _iso_date(raw: Optional[str]) -> str:
    if not raw:
        return ""
    try:
        return datetime.strptime(raw, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc).isoformat()
    except ValueError:
        return raw


class MessageStoreReader:
    """Async facade over the local Messages SQLite store."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        access_retries: Optional[int] = None,
        access_retry_delay: Optional[float] = None,
    ) -> None:
        settings = get_settings().messages
        self.db_path = os.path.expanduser(db_path or settings.db_path)
        self.access_retries = access_retries if access_retries is not None else settings.access_retries
        self.access_retry_delay = (
            access_retry_delay if access_retry_delay is not None else settings.access_retry_delay
        )
        self.default_limit = settings.default_limit

    # ── connection / precondition ───────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        """Read-only connection; the store is owned by Messages.app."""
        uri = Path(self.db_path).resolve().as_uri() + "?mode=ro"
        conn = sqlite3.connect(uri, uri=True, timeout=5)
        conn.row_factory = sqlite3.Row
        return conn

    def _check_access_sync(self) -> None:
        if not os.path.exists(self.db_path):
            raise MessageStoreAccessError(f"Messages database not found at {self.db_path}")
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise MessageStoreAccessError(str(e)) from e

    async def check_access(self) -> bool:
        """True once the store opens and answers a trivial query; retried with a fixed delay."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(self.access_retries, 1)),
            wait=wait_fixed(self.access_retry_delay),
            retry=retry_if_exception_type(MessageStoreAccessError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    n = attempt.retry_state.attempt_number
                    if n > 1:
                        logger.debug("message_store_access_retry", attempt=n)
                    await asyncio.to_thread(self._check_access_sync)
        except MessageStoreAccessError as e:
            logger.error("message_store_unavailable", db_path=self.db_path, error=str(e), hint=_FDA_HINT)
            return False
        return True

    # ── queries ─────────────────────────────────────────────────

    def _fetch_rows_sync(self, criteria: str, params: list[Any]) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.execute(_SELECT.format(criteria=criteria), params)
            return [dict(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def _fetch_attachments_sync(self, message_id: int) -> list[str]:
        conn = self._connect()
        try:
            rows = conn.execute(_ATTACHMENTS, (message_id,)).fetchall()
        finally:
            conn.close()
        return [row["filename"] for row in rows if row["filename"]]

    async def resolve_attachments(self, message_id: int) -> list[str]:
        """Attachment filenames for one message; empty on any failure."""
        try:
            return await asyncio.to_thread(self._fetch_attachments_sync, message_id)
        except Exception as e:
            logger.warning("attachment_lookup_failed", message_id=message_id, error=str(e))
            return []

    async def query_messages(self, message_filter: MessageFilter, limit: Optional[int] = None) -> list[DecodedMessage]:
        """
        Newest-first messages matching ``message_filter``, at most ``limit``.

        Returns an empty list when the store is unreachable; per-row decode or
        attachment failures only affect that row.
        """
        limit = limit if limit is not None else self.default_limit
        if isinstance(message_filter, BySender):
            placeholders = ", ".join("?" for _ in message_filter.handles)
            criteria = f"h.id IN ({placeholders})"
            params: list[Any] = [*message_filter.handles, limit]
        elif isinstance(message_filter, Unread):
            criteria = "m.is_from_me = 0 AND m.is_read = 0"
            params = [limit]
        else:
            raise TypeError(f"Unsupported message filter: {type(message_filter).__name__}")

        if not await self.check_access():
            return []

        async with obs_metrics.track_message_query(message_filter.kind) as tracker:
            try:
                rows = await asyncio.to_thread(self._fetch_rows_sync, criteria, params)
            except sqlite3.Error as e:
                logger.error("message_query_failed", filter=message_filter.kind, error=str(e))
                return []

            kept = [r for r in rows if r["content"] is not None or r["cache_has_attachments"]]
            messages = await asyncio.gather(*(self._build_message(r) for r in kept))
            tracker.set_rows(len(messages))

        logger.info(
            "messages_read",
            filter=message_filter.kind,
            rows=len(rows),
            returned=len(messages),
        )
        return list(messages)

    async def _build_message(self, row: dict[str, Any]) -> DecodedMessage:
        content = row["content"] or ""
        url: Optional[str] = None
        try:
            if row["content_type"] == _LEGACY_BODY:
                decoded = decode_legacy_body(content)
                content, url = decoded.text, decoded.url
            else:
                match = _URL_RE.search(content)
                if match:
                    url = match.group(1)
        except Exception as e:
            logger.debug("message_row_decode_failed", message_id=row["message_id"], error=str(e))
            content, url = "", None

        attachments: list[str] = []
        if row["cache_has_attachments"]:
            attachments = await self.resolve_attachments(row["message_id"])

        if row["subject"]:
            content = f"Subject: {row['subject']}\n{content}"
        content = content or NO_TEXT_CONTENT

        if attachments:
            content += f"\n[Attachments: {len(attachments)}]"
        if url:
            content += f"\n[URL: {url}]"

        return DecodedMessage(
            content=content,
            date=_iso_date(row["date"]),
            sender=row["sender"] or "",
            is_from_me=bool(row["is_from_me"]),
            attachments=attachments or None,
            url=url,
        )

    # ── convenience ─────────────────────────────────────────────

    async def read_messages(self, phone_number: str, limit: Optional[int] = None) -> list[DecodedMessage]:
        """Conversation history with ``phone_number`` across its handle variants."""
        handles = normalize_phone_number(phone_number)
        logger.debug("phone_formats", raw=phone_number, formats=handles)
        return await self.query_messages(BySender(handles=handles), limit)

    async def get_unread_messages(self, limit: Optional[int] = None) -> list[DecodedMessage]:
        return await self.query_messages(Unread(), limit)


async def query_messages(message_filter: MessageFilter, limit: Optional[int] = None) -> list[DecodedMessage]:
    """Single entry point for the tool layer."""
    return await MessageStoreReader().query_messages(message_filter, limit)
