"""
Main-content extraction for arbitrary HTML pages.

Noise (scripts, styles, chrome, forms, comments) is removed before looking
for a content region, so navigation or footer text never wins the search.
Candidate regions are tried in priority order and the first one that yields
text is used.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from bs4 import BeautifulSoup
from bs4.element import Comment, Tag

from macbridge.tools.text import collapse_whitespace

logger = structlog.get_logger()

EXTRACTION_FAILED = "Failed to extract content"

NOISE_TAGS = ("script", "style", "header", "footer", "nav", "aside", "form")

CONTENT_NAMES = (
    "content",
    "post-content",
    "entry-content",
    "article-content",
    "page-content",
    "main-content",
)


def _has_content_class(value: str | None) -> bool:
    return bool(value) and value.startswith(CONTENT_NAMES)


def _has_content_id(value: str | None) -> bool:
    return value in CONTENT_NAMES


_REGION_FINDERS: tuple[tuple[str, Callable[[BeautifulSoup], list[Tag]]], ...] = (
    ("main", lambda soup: soup.find_all("main")),
    ("article", lambda soup: soup.find_all("article")),
    ("content_class", lambda soup: soup.find_all("div", class_=_has_content_class)),
    ("content_id", lambda soup: soup.find_all("div", id=_has_content_id)),
    ("body", lambda soup: soup.find_all("body")),
)


def _outermost(nodes: list[Tag]) -> list[Tag]:
    """Drop matches nested inside another match so text is not repeated."""
    ids = {id(n) for n in nodes}
    return [n for n in nodes if not any(id(p) in ids for p in n.parents)]


def _text_of(nodes: list[Tag]) -> str:
    return collapse_whitespace(" ".join(n.get_text(" ") for n in nodes).replace("\xa0", " "))


def _strip_noise(soup: BeautifulSoup) -> None:
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup(list(NOISE_TAGS)):
        tag.decompose()


def extract_main_content(html: str) -> str:
    """Plain text of the most probable main-content region. Never raises."""
    if not html:
        return ""
    try:
        soup = BeautifulSoup(html, "html.parser")
        _strip_noise(soup)
        for region, finder in _REGION_FINDERS:
            nodes = _outermost(finder(soup))
            if not nodes:
                continue
            text = _text_of(nodes)
            if text:
                logger.debug("content_region_selected", region=region, matches=len(nodes))
                return text
        return collapse_whitespace(soup.get_text(" ").replace("\xa0", " "))
    except Exception as e:
        logger.warning("content_extraction_error", error=str(e))
        return EXTRACTION_FAILED


def extract_title(html: str) -> str:
    """Text of the document <title>, or an empty string."""
    if not html:
        return ""
    try:
        soup = BeautifulSoup(html, "html.parser")
        title = soup.find("title")
        return collapse_whitespace(title.get_text(" ")) if title else ""
    except Exception:
        return ""
