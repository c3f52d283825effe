"""
Core data models for macbridge.

These Pydantic models are the typed results that cross the boundary between
the core pipelines and the tool invocation layer. Every entity here is
transient: built per request, never cached or persisted.

Design principles:
  - Search results are immutable and keep source ranking order
  - A ContentResult carries either content or an error, never both
  - Decoded messages always carry a non-empty content string
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ═══════════════════════════════════════════════════════════
# Web research
# ═══════════════════════════════════════════════════════════


class ExtractionStrategy(str, Enum):
    """Which search-page parser produced the results."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
    NONE = "none"


class SearchResult(BaseModel):
    """A single hit parsed out of a search results page."""

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    display_url: str = ""
    snippet: str = ""

    @model_validator(mode="before")
    @classmethod
    def _default_display_url(cls, data: object) -> object:
        if isinstance(data, dict) and not data.get("display_url") and data.get("url"):
            data = {**data, "display_url": urlparse(data["url"]).hostname or ""}
        return data


class ContentResult(SearchResult):
    """A SearchResult enriched with the extracted page text (or why it failed)."""

    content: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _content_xor_error(self) -> "ContentResult":
        if self.content is None and not self.error:
            raise ValueError("ContentResult without content must carry an error")
        if self.content is not None and self.error:
            raise ValueError("ContentResult with content must not carry an error")
        return self

    @classmethod
    def success(cls, result: SearchResult, content: str) -> "ContentResult":
        return cls(**result.model_dump(), content=content)

    @classmethod
    def failure(cls, result: SearchResult, error: str) -> "ContentResult":
        return cls(**result.model_dump(), content=None, error=error or "Unknown error")

    @property
    def ok(self) -> bool:
        return self.content is not None


class SearchResponse(BaseModel):
    """Parsed search page for one query."""

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    strategy: ExtractionStrategy = ExtractionStrategy.NONE
    error: Optional[str] = None


class ResearchResponse(BaseModel):
    """Web research outcome: one ContentResult per processed search hit."""

    query: str
    results: list[ContentResult] = Field(default_factory=list)
    error: Optional[str] = None


class PageContent(BaseModel):
    """Outcome of fetching and extracting a single page."""

    url: str
    content: Optional[str] = None
    error: Optional[str] = None


# ═══════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════


class DecodedBody(BaseModel):
    """Readable text (and any link) recovered from a legacy attributed body."""

    text: str
    url: Optional[str] = None


class DecodedMessage(BaseModel):
    """One message row from the local store, decoded and annotated."""

    content: str
    date: str  # ISO-8601
    sender: str = ""
    is_from_me: bool = False
    attachments: Optional[list[str]] = None
    url: Optional[str] = None


class BySender(BaseModel):
    """Messages whose handle matches any of the candidate identifiers."""

    kind: Literal["by_sender"] = "by_sender"
    handles: list[str]

    @model_validator(mode="after")
    def _require_handles(self) -> "BySender":
        if not self.handles:
            raise ValueError("BySender needs at least one handle identifier")
        return self


class Unread(BaseModel):
    """Unread messages not authored by the local user."""

    kind: Literal["unread"] = "unread"


MessageFilter = Union[BySender, Unread]


class ScheduledMessage(BaseModel):
    """Handle for a message queued for deferred delivery."""

    id: str
    phone_number: str
    message: str
    scheduled_time: datetime
