"""Shared pytest fixtures for macbridge tests."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import pytest

# 2024-01-01T00:00:00Z expressed in Apple-epoch nanoseconds
APPLE_EPOCH_2024 = (1704067200 - 978307200) * 1_000_000_000

_SCHEMA = """
CREATE TABLE handle (ROWID INTEGER PRIMARY KEY, id TEXT);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY,
    text TEXT,
    attributedBody BLOB,
    date INTEGER,
    handle_id INTEGER,
    is_from_me INTEGER DEFAULT 0,
    is_read INTEGER DEFAULT 1,
    is_audio_message INTEGER DEFAULT 0,
    cache_has_attachments INTEGER DEFAULT 0,
    subject TEXT,
    item_type INTEGER DEFAULT 0
);
CREATE TABLE attachment (ROWID INTEGER PRIMARY KEY, filename TEXT);
CREATE TABLE message_attachment_join (message_id INTEGER, attachment_id INTEGER);
"""


class ChatDB:
    """Minimal chat.db stand-in for store tests."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn = sqlite3.connect(path)
        self._conn.executescript(_SCHEMA)
        self._handles: dict[str, int] = {}
        self._next_date = APPLE_EPOCH_2024

    def handle(self, identifier: str) -> int:
        if identifier not in self._handles:
            cur = self._conn.execute("INSERT INTO handle (id) VALUES (?)", (identifier,))
            self._handles[identifier] = cur.lastrowid
        return self._handles[identifier]

    def add_message(
        self,
        sender: str,
        text: Optional[str] = None,
        attributed_body: Optional[bytes] = None,
        minutes: Optional[int] = None,
        attachments: Optional[list[Optional[str]]] = None,
        **columns: Any,
    ) -> int:
        if minutes is None:
            self._next_date += 60 * 1_000_000_000
            date = self._next_date
        else:
            date = APPLE_EPOCH_2024 + minutes * 60 * 1_000_000_000
        values = {
            "text": text,
            "attributedBody": attributed_body,
            "date": date,
            "handle_id": self.handle(sender),
            "cache_has_attachments": 1 if attachments else 0,
            **columns,
        }
        names = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        cur = self._conn.execute(f"INSERT INTO message ({names}) VALUES ({marks})", list(values.values()))
        message_id = cur.lastrowid
        for filename in attachments or []:
            att = self._conn.execute("INSERT INTO attachment (filename) VALUES (?)", (filename,))
            self._conn.execute(
                "INSERT INTO message_attachment_join (message_id, attachment_id) VALUES (?, ?)",
                (message_id, att.lastrowid),
            )
        self._conn.commit()
        return message_id

    def close(self) -> None:
        self._conn.close()


@pytest.fixture
def chat_db(tmp_path: Path) -> ChatDB:
    db = ChatDB(tmp_path / "chat.db")
    yield db
    db.close()


def typedstream_body(text: str) -> bytes:
    """attributedBody bytes laid out the way Messages writes short strings."""
    raw = text.encode("utf-8")
    assert len(raw) < 0x81
    return (
        b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00"
        b"\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+"
        + bytes([len(raw)])
        + raw
        + b"\x86\x84\x02iI\x01\x05\x92\x84\x84\x84\x0cNSDictionary\x00"
    )


@pytest.fixture
def make_typedstream() -> Callable[[str], bytes]:
    return typedstream_body
