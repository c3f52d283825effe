"""
Web Research Pipeline — search, then read the top hits.

Runs a query against the DuckDuckGo HTML endpoint, parses the hits, and
fetches + extracts page text for the first few of them concurrently.
Each page is isolated: one slow or failing fetch never cancels or fails its
siblings, and results keep the search ranking order regardless of which
fetch finishes first.
"""

from __future__ import annotations

import asyncio
from typing import Optional
from urllib.parse import quote

import structlog

from macbridge.config import get_settings
from macbridge.errors import FetchError
from macbridge.models import (
    ContentResult,
    ExtractionStrategy,
    PageContent,
    ResearchResponse,
    SearchResponse,
    SearchResult,
)
from macbridge.observability import metrics as obs_metrics
from macbridge.tools.content import extract_main_content, extract_title
from macbridge.tools.http import HttpFetcher
from macbridge.tools.search_extractor import extract_with_strategy

logger = structlog.get_logger()

NO_RESULTS_ERROR = "No results found or couldn't parse results"

_CONTENT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class WebResearchPipeline:
    """Composes the HTTP fetcher, search extractor and content extractor."""

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        search_endpoint: Optional[str] = None,
        max_content_results: Optional[int] = None,
    ) -> None:
        settings = get_settings().search
        self.fetcher = fetcher or HttpFetcher()
        self.search_endpoint = search_endpoint or settings.search_endpoint
        self.max_content_results = (
            max_content_results if max_content_results is not None else settings.max_content_results
        )
        self.max_search_results = settings.max_search_results
        self.search_timeout = settings.search_timeout
        self.search_retries = settings.search_retries
        self.content_timeout = settings.content_timeout
        self.content_retries = settings.content_retries

    def search_url(self, query: str) -> str:
        return f"{self.search_endpoint}?q={quote(query, safe='')}"

    async def search(self, query: str) -> SearchResponse:
        """
        Fetch and parse the search page for ``query``.

        Network failures propagate as FetchError. The search request is the
        one step of a research run that is allowed to fail the whole run.
        """
        html = await self.fetcher.fetch(
            self.search_url(query),
            timeout=self.search_timeout,
            retries=self.search_retries,
        )
        results, strategy = extract_with_strategy(html)
        results = results[: self.max_search_results]
        if not results:
            logger.warning("search_no_results", query=query)
            return SearchResponse(
                query=query,
                strategy=ExtractionStrategy.NONE,
                error=NO_RESULTS_ERROR,
            )
        logger.info(
            "search_complete",
            query=query,
            num_results=len(results),
            strategy=strategy.value,
        )
        return SearchResponse(query=query, results=results, strategy=strategy)

    async def fetch_page_content(self, url: str) -> PageContent:
        """Fetch one page and extract its main text. Never raises."""
        try:
            html = await self.fetcher.fetch(
                url,
                timeout=self.content_timeout,
                retries=self.content_retries,
                headers=_CONTENT_HEADERS,
            )
        except Exception as e:
            logger.warning("content_fetch_failed", url=url, error=str(e))
            return PageContent(url=url, error=str(e) or type(e).__name__)

        # CPU-bound parse runs off the event loop
        content = await asyncio.to_thread(extract_main_content, html)
        if not content:
            title = await asyncio.to_thread(extract_title, html)
            content = f"[No content extracted. Page title: {title}]"
        return PageContent(url=url, content=content)

    async def research(self, query: str) -> ResearchResponse:
        """Search, then fetch content for the top results. Returns a structured response."""
        async with obs_metrics.track_research():
            try:
                search = await self.search(query)
            except FetchError as e:
                logger.error("research_search_failed", query=query, error=str(e))
                return ResearchResponse(query=query, error=str(e))

            if not search.results:
                return ResearchResponse(query=query, error=search.error or NO_RESULTS_ERROR)

            to_process = search.results[: self.max_content_results]
            settled = await asyncio.gather(
                *(self.fetch_page_content(r.url) for r in to_process),
                return_exceptions=True,
            )
            results = [_merge(result, outcome) for result, outcome in zip(to_process, settled)]

        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "research_complete",
            query=query,
            num_results=len(results),
            failed=failed,
        )
        return ResearchResponse(query=query, results=results)


def _merge(result: SearchResult, outcome: PageContent | BaseException) -> ContentResult:
    if isinstance(outcome, BaseException):
        obs_metrics.record_content_fetch(ok=False)
        return ContentResult.failure(result, f"Failed to fetch content: {outcome}")
    if outcome.content is None:
        obs_metrics.record_content_fetch(ok=False)
        return ContentResult.failure(result, outcome.error or "Unknown error")
    obs_metrics.record_content_fetch(ok=True)
    return ContentResult.success(result, outcome.content)


async def research(query: str) -> ResearchResponse:
    """Single entry point for the tool layer."""
    return await WebResearchPipeline().research(query)
