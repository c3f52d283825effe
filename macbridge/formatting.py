"""Text bodies returned to the tool invocation layer."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from macbridge.models import DecodedMessage, ResearchResponse


def _display_date(iso: str) -> str:
    try:
        return datetime.fromisoformat(iso).astimezone().strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return iso


def format_research(response: ResearchResponse) -> str:
    if not response.results:
        return f'No results found for "{response.query}".'
    lines = [
        f"[{r.display_url}] {r.title} - {r.snippet} \n content: {r.content if r.ok else '[' + (r.error or '') + ']'}"
        for r in response.results
    ]
    return f'Found {len(response.results)} results for "{response.query}". ' + "\n".join(lines)


def format_messages(messages: list[DecodedMessage]) -> str:
    if not messages:
        return "No messages found"
    return "\n".join(
        f"[{_display_date(m.date)}] {'Me' if m.is_from_me else m.sender}: {m.content}"
        for m in messages
    )


def format_unread(messages: list[DecodedMessage], names: Optional[dict[str, str]] = None) -> str:
    """Unread listing; ``names`` maps handle identifiers to contact names when known."""
    if not messages:
        return "No unread messages found"
    names = names or {}
    blocks = []
    for m in messages:
        who = "Me" if m.is_from_me else names.get(m.sender, m.sender)
        blocks.append(f"[{_display_date(m.date)}] From {who}:\n{m.content}")
    return f"Found {len(messages)} unread message(s):\n" + "\n\n".join(blocks)
