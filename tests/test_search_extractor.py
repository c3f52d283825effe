"""Tests for search results page parsing."""

from __future__ import annotations

import pytest

from macbridge.models import ExtractionStrategy
from macbridge.tools.search_extractor import (
    MAX_RESULT_BLOCKS,
    _destination_url,
    extract_fallback,
    extract_primary,
    extract_results,
    extract_with_strategy,
)
from html_fixtures import PERU_RESULTS, ddg_block, ddg_loose_page, ddg_page


class TestDestinationUrl:
    def test_unwraps_redirect(self) -> None:
        href = "//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fa%3Fb%3D1&rut=x"
        assert _destination_url(href) == "https://example.com/a?b=1"

    def test_direct_absolute_link_kept(self) -> None:
        assert _destination_url("https://example.com/page") == "https://example.com/page"

    def test_literal_plus_in_target_kept(self) -> None:
        href = "//duckduckgo.com/l/?uddg=https://example.com/a+b&rut=x"
        assert _destination_url(href) == "https://example.com/a+b"

    def test_primary_and_fallback_agree_on_plus(self) -> None:
        href = "//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fc%2B%2B+tips&amp;rut=x"
        block = (
            '<div class="result results_links_deep web-result">'
            '<h2 class="result__title">'
            f'<a rel="nofollow" class="result__a" href="{href}">C++ tips</a></h2>'
            f'<a class="result__snippet" href="{href}">Pointers.</a></div>'
        )
        [primary] = extract_primary(ddg_page(block))
        [fallback] = extract_fallback(block)
        assert primary.url == fallback.url == "https://example.com/c+++tips"

    @pytest.mark.parametrize("href", ["", "/relative/path", "//duckduckgo.com/l/?uddg=not-a-url"])
    def test_rejects_non_absolute(self, href: str) -> None:
        assert _destination_url(href) is None


class TestPrimary:
    def test_single_block(self) -> None:
        html = ddg_page(
            ddg_block(
                "https://en.wikipedia.org/wiki/Lima",
                "Lima - Wikipedia",
                "Lima is the <b>capital</b> of Peru.",
                display="en.wikipedia.org/wiki/Lima",
            )
        )
        results = extract_primary(html)
        assert len(results) == 1
        r = results[0]
        assert r.title == "Lima - Wikipedia"
        assert r.url == "https://en.wikipedia.org/wiki/Lima"
        assert r.display_url == "en.wikipedia.org/wiki/Lima"
        assert r.snippet == "Lima is the capital of Peru."

    def test_display_url_defaults_to_hostname(self) -> None:
        html = ddg_page(ddg_block("https://www.britannica.com/place/Lima", "Lima", "Capital."))
        assert extract_primary(html)[0].display_url == "www.britannica.com"

    def test_entities_decoded(self) -> None:
        html = ddg_page(ddg_block(*PERU_RESULTS[1]))
        assert extract_primary(html)[0].title == "Lima | History & Facts"

    def test_keeps_page_order(self) -> None:
        html = ddg_page(*(ddg_block(*r) for r in PERU_RESULTS))
        assert [r.url for r in extract_primary(html)] == [u for u, _, _ in PERU_RESULTS]

    def test_caps_at_ten_blocks(self) -> None:
        blocks = [ddg_block(f"https://site{i}.example.com/", f"Result {i}", "s") for i in range(15)]
        results = extract_primary(ddg_page(*blocks))
        assert len(results) == MAX_RESULT_BLOCKS
        assert results[-1].title == "Result 9"

    def test_block_without_title_is_skipped(self) -> None:
        broken = '<div class="result web-result"><a class="result__snippet">orphan</a></div>'
        html = ddg_page(broken, ddg_block("https://example.com/", "Kept", "snippet"))
        results = extract_primary(html)
        assert [r.title for r in results] == ["Kept"]

    def test_blocks_outside_known_container(self) -> None:
        block = (
            '<div class="result results_links_deep web-result">'
            '<h2 class="result__title"><a rel="nofollow" class="result__a" '
            'href="//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2F&amp;rut=x">Title</a></h2>'
            "</div>"
        )
        html = f"<html><body><section>{block}</section></body></html>"

        results, strategy = extract_with_strategy(html)

        assert strategy is ExtractionStrategy.PRIMARY
        assert [(r.title, r.url, r.snippet) for r in results] == [("Title", "https://example.com/", "")]

    def test_no_container_yields_nothing(self) -> None:
        assert extract_primary("<html><body><p>Nothing here</p></body></html>") == []


class TestFallback:
    def test_reads_loose_markup(self) -> None:
        html = ddg_loose_page(*PERU_RESULTS)
        results = extract_fallback(html)
        assert [r.url for r in results] == [u for u, _, _ in PERU_RESULTS]
        assert results[0].snippet == "Lima is the capital of Peru."
        assert results[1].title == "Lima | History & Facts"
        assert results[2].display_url == "www.peru.travel"

    def test_strategy_switches_to_fallback(self) -> None:
        results, strategy = extract_with_strategy(ddg_loose_page(*PERU_RESULTS))
        assert strategy is ExtractionStrategy.FALLBACK
        assert len(results) == 3

    def test_primary_preferred_when_it_finds_results(self) -> None:
        _, strategy = extract_with_strategy(ddg_page(ddg_block(*PERU_RESULTS[0])))
        assert strategy is ExtractionStrategy.PRIMARY


@pytest.mark.parametrize(
    "html",
    [
        "",
        "not html at all",
        "<div class='serp__results'><div class='result web-result'><a class='result__a'",
        "<<<>>></h2 class=\"result__title\">",
        "\x00\x01\x02",
    ],
)
def test_malformed_input_never_raises(html: str) -> None:
    results, strategy = extract_with_strategy(html)
    assert results == []
    assert strategy is ExtractionStrategy.NONE
    assert extract_results(html) == []
