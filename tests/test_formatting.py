"""Tests for tool-layer text rendering and settings defaults."""

from __future__ import annotations

from macbridge.config import MessagesConfig, SearchConfig, Settings
from macbridge.formatting import format_messages, format_research, format_unread
from macbridge.models import ContentResult, DecodedMessage, ResearchResponse, SearchResult


def _hit(n: int) -> SearchResult:
    return SearchResult(title=f"Title {n}", url=f"https://site{n}.example.com/", snippet=f"snippet {n}")


class TestResearch:
    def test_no_results(self) -> None:
        assert format_research(ResearchResponse(query="lima")) == 'No results found for "lima".'

    def test_success_and_failure_lines(self) -> None:
        response = ResearchResponse(
            query="lima",
            results=[
                ContentResult.success(_hit(0), "Lima is the capital."),
                ContentResult.failure(_hit(1), "Request failed with status code 500"),
            ],
        )
        text = format_research(response)
        assert text.startswith('Found 2 results for "lima". ')
        assert "[site0.example.com] Title 0 - snippet 0 \n content: Lima is the capital." in text
        assert "content: [Request failed with status code 500]" in text


class TestMessages:
    def test_empty(self) -> None:
        assert format_messages([]) == "No messages found"
        assert format_unread([]) == "No unread messages found"

    def test_me_versus_sender(self) -> None:
        messages = [
            DecodedMessage(content="on my way", date="not a date", sender="+15551234567", is_from_me=True),
            DecodedMessage(content="ok", date="not a date", sender="+15551234567"),
        ]
        assert format_messages(messages) == "[not a date] Me: on my way\n[not a date] +15551234567: ok"

    def test_unread_uses_contact_names(self) -> None:
        messages = [DecodedMessage(content="ping", date="x", sender="+15551234567")]
        text = format_unread(messages, names={"+15551234567": "Alice"})
        assert text == "Found 1 unread message(s):\n[x] From Alice:\nping"


def test_settings_defaults(monkeypatch) -> None:
    for name in (
        "MACBRIDGE_SEARCH_ENDPOINT",
        "MACBRIDGE_SEARCH_RETRIES",
        "MACBRIDGE_CONTENT_RETRIES",
        "MACBRIDGE_MESSAGES_DB",
    ):
        monkeypatch.delenv(name, raising=False)
    search = SearchConfig()
    assert search.search_endpoint == "https://html.duckduckgo.com/html/"
    assert (search.search_timeout, search.search_retries) == (10.0, 2)
    assert (search.content_timeout, search.content_retries) == (15.0, 1)
    assert search.max_content_results == 5
    assert MessagesConfig().db_path.endswith("Library/Messages/chat.db")
    assert Settings().messages.access_retries == 3


def test_settings_read_environment(monkeypatch) -> None:
    monkeypatch.setenv("MACBRIDGE_SEARCH_RETRIES", "4")
    monkeypatch.setenv("MACBRIDGE_MESSAGES_DB", "/tmp/chat.db")
    assert SearchConfig().search_retries == 4
    assert MessagesConfig().db_path == "/tmp/chat.db"
