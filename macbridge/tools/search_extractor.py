"""
Search results page parser.

Turns the HTML returned by the DuckDuckGo HTML endpoint into SearchResult
records. The markup belongs to a third party and changes without notice, so
parsing runs as a two-step chain:

  1. Primary: DOM parse (BeautifulSoup). Find the results container, walk
     the result blocks, read title / link / display URL / snippet per block.
  2. Fallback: a looser regex over the raw page looking for the same fields.

Neither step raises; a block that fails to parse is skipped on its own.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import unquote, urlparse

import structlog
from bs4 import BeautifulSoup
from bs4.element import Tag

from macbridge.models import ExtractionStrategy, SearchResult
from macbridge.observability import metrics as obs_metrics
from macbridge.tools.text import clean_html, collapse_whitespace

logger = structlog.get_logger()

MAX_RESULT_BLOCKS = 10

_CONTAINER_SELECTORS = ("div.serp__results", "div#links", "div.results")
_BLOCK_SELECTOR = "div.result.web-result"
# Raw redirect target; unquote keeps a literal "+" where form decoding would not
_UDDG_RE = re.compile(r"[?&]uddg=([^&#]*)")

_FALLBACK_RE = re.compile(
    r'<h2 class="result__title">.*?<a rel="nofollow" class="result__a".*?'
    r'href=".*?uddg=(.*?)(?:&|").*?>(.*?)</a>.*?'
    r'<a class="result__snippet".*?>(.*?)</a>',
    re.S,
)


def _hostname(url: str) -> str:
    return urlparse(url).hostname or ""


def _is_absolute(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _destination_url(href: str) -> Optional[str]:
    """Unwrap the /l/?uddg= redirect; accept direct absolute links as-is."""
    if not href:
        return None
    match = _UDDG_RE.search(href)
    if match and match.group(1):
        target = unquote(match.group(1)).strip()
        return target if _is_absolute(target) else None
    return href if _is_absolute(href) else None


def _node_text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return collapse_whitespace(node.get_text("").replace("\xa0", " "))


def _parse_block(block: Tag) -> Optional[SearchResult]:
    title_node = block.select_one("a.result__a")
    if title_node is None:
        return None
    title = _node_text(title_node)
    url = _destination_url(title_node.get("href", ""))
    if not title or not url:
        return None
    display_url = _node_text(block.select_one("a.result__url")) or _hostname(url)
    snippet = _node_text(block.select_one(".result__snippet"))
    return SearchResult(title=title, url=url, display_url=display_url, snippet=snippet)


def extract_primary(html: str) -> list[SearchResult]:
    """Container → blocks → fields, capped at 10 blocks."""
    results: list[SearchResult] = []
    if not html:
        return results
    try:
        soup = BeautifulSoup(html, "html.parser")
        container = None
        for selector in _CONTAINER_SELECTORS:
            container = soup.select_one(selector)
            if container is not None:
                break
        if container is None:
            # Blocks outside any known wrapper are still read
            container = soup
        blocks = container.select(_BLOCK_SELECTOR)
    except Exception as e:
        logger.warning("search_primary_parse_error", error=str(e))
        return results

    for index, block in enumerate(blocks[:MAX_RESULT_BLOCKS]):
        try:
            result = _parse_block(block)
        except Exception as e:
            logger.debug("search_block_parse_error", block=index, error=str(e))
            continue
        if result is not None:
            results.append(result)
    return results


def extract_fallback(html: str) -> list[SearchResult]:
    """Looser single-pattern scan for title/link/snippet triples."""
    results: list[SearchResult] = []
    if not html:
        return results
    try:
        matches = list(_FALLBACK_RE.finditer(html))
    except Exception as e:
        logger.warning("search_fallback_parse_error", error=str(e))
        return results

    for match in matches[:MAX_RESULT_BLOCKS]:
        try:
            raw_url, raw_title, raw_snippet = match.groups()
            url = unquote(raw_url).strip()
            title = clean_html(raw_title)
            if not title or not _is_absolute(url):
                continue
            results.append(
                SearchResult(
                    title=title,
                    url=url,
                    display_url=_hostname(url),
                    snippet=clean_html(raw_snippet),
                )
            )
        except Exception as e:
            logger.debug("search_fallback_match_error", error=str(e))
    return results


def extract_with_strategy(html: str) -> tuple[list[SearchResult], ExtractionStrategy]:
    """Run primary, then fallback when primary finds nothing."""
    with obs_metrics.track_search() as tracker:
        results = extract_primary(html)
        strategy = ExtractionStrategy.PRIMARY
        if not results:
            results = extract_fallback(html)
            strategy = ExtractionStrategy.FALLBACK if results else ExtractionStrategy.NONE
            if results:
                logger.info("search_fallback_used", num_results=len(results))
        tracker.set_results(strategy.value, len(results))
    return results, strategy


def extract_results(html: str) -> list[SearchResult]:
    results, _ = extract_with_strategy(html)
    return results
