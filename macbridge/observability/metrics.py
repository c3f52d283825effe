"""
Prometheus metrics for macbridge.

All metrics are no-op when observability.metrics_enabled is False.
Exposes record_fetch, track_search, track_research, record_content_fetch,
track_message_query, record_decode, start_server.
"""

from __future__ import annotations

import contextlib
import threading
import time
from typing import Any

from prometheus_client import (
    Counter,
    Histogram,
    start_http_server as prometheus_start_http_server,
)


def _enabled() -> bool:
    try:
        from macbridge.config import get_settings
        return bool(get_settings().observability.metrics_enabled)
    except Exception:
        return False


# Lazy registry: only create metrics when enabled and first used
_metrics_created = False


def _ensure_metrics() -> bool:
    global _metrics_created
    if _metrics_created or not _enabled():
        return _metrics_created
    _create_metrics()
    _metrics_created = True
    return True


def _create_metrics() -> None:
    """Create all Prometheus metrics (called once when enabled)."""
    # Fetch
    _fetch_attempts = Counter(
        "fetch_attempts_total",
        "HTTP fetch attempts by outcome",
        ["domain", "outcome"],
    )
    _fetch_duration = Histogram(
        "fetch_duration_seconds",
        "HTTP fetch attempt latency",
        ["domain"],
        buckets=[0.25, 0.5, 1, 2, 5, 10, 15],
    )

    # Search
    _search_queries = Counter(
        "search_queries_total",
        "Search pages parsed",
        ["strategy"],
    )
    _search_results = Counter(
        "search_results_total",
        "Search results extracted",
        ["strategy"],
    )

    # Research
    _research_duration = Histogram(
        "research_duration_seconds",
        "End-to-end web research latency",
        ["status"],
        buckets=[1, 2, 5, 10, 20, 40],
    )
    _content_fetches = Counter(
        "content_fetches_total",
        "Per-result content fetch outcomes",
        ["outcome"],
    )

    # Messages
    _message_queries = Counter(
        "message_queries_total",
        "Message store queries",
        ["filter_kind", "status"],
    )
    _message_rows = Counter(
        "message_rows_total",
        "Decoded message rows returned",
        ["filter_kind"],
    )
    _message_query_duration = Histogram(
        "message_query_duration_seconds",
        "Message store query latency",
        ["filter_kind"],
        buckets=[0.05, 0.1, 0.5, 1, 2, 5],
    )
    _legacy_decodes = Counter(
        "legacy_body_decodes_total",
        "Legacy attributed-body decodes by outcome",
        ["outcome"],
    )

    # Store on module for access from MetricsCollector
    _registry = {
        "fetch_attempts": _fetch_attempts,
        "fetch_duration": _fetch_duration,
        "search_queries": _search_queries,
        "search_results": _search_results,
        "research_duration": _research_duration,
        "content_fetches": _content_fetches,
        "message_queries": _message_queries,
        "message_rows": _message_rows,
        "message_query_duration": _message_query_duration,
        "legacy_decodes": _legacy_decodes,
    }
    setattr(_MetricsCollector, "_registry", _registry)


class _MetricsCollector:
    """Collector that delegates to Prometheus when enabled, no-op otherwise."""

    _registry: dict[str, Any] = {}

    def _get(self, name: str) -> Any:
        _ensure_metrics()
        return self._registry.get(name)

    # --- Fetch ---
    def record_fetch(self, domain: str, outcome: str, duration: float) -> None:
        domain = (domain or "unknown")[:64]
        req = self._get("fetch_attempts")
        dur = self._get("fetch_duration")
        if req:
            req.labels(domain=domain, outcome=(outcome or "unknown")[:32]).inc()
        if dur:
            dur.labels(domain=domain).observe(duration)

    # --- Search ---
    @contextlib.contextmanager
    def track_search(self):
        class Tracker:
            def __init__(self, parent: _MetricsCollector):
                self._parent = parent
                self._strategy = "none"
                self._results = 0

            def set_results(self, strategy: str, n: int) -> None:
                self._strategy = strategy or "none"
                self._results = n

            def _finish(self) -> None:
                q = self._parent._get("search_queries")
                r = self._parent._get("search_results")
                if q:
                    q.labels(strategy=self._strategy).inc()
                if r:
                    r.labels(strategy=self._strategy).inc(self._results)

        tracker = Tracker(self)
        try:
            yield tracker
        finally:
            tracker._finish()

    # --- Research ---
    @contextlib.asynccontextmanager
    async def track_research(self):
        h = self._get("research_duration")
        start = time.perf_counter()
        status = "ok"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            if h:
                h.labels(status=status).observe(time.perf_counter() - start)

    def record_content_fetch(self, ok: bool) -> None:
        c = self._get("content_fetches")
        if c:
            c.labels(outcome="ok" if ok else "error").inc()

    # --- Messages ---
    @contextlib.asynccontextmanager
    async def track_message_query(self, filter_kind: str = ""):
        class Tracker:
            def __init__(self) -> None:
                self.rows = 0

            def set_rows(self, n: int) -> None:
                self.rows = n

        tracker = Tracker()
        kind = filter_kind or "unknown"
        h = self._get("message_query_duration")
        start = time.perf_counter()
        status = "ok"
        try:
            yield tracker
        except Exception:
            status = "error"
            raise
        finally:
            q = self._get("message_queries")
            r = self._get("message_rows")
            if q:
                q.labels(filter_kind=kind, status=status).inc()
            if r:
                r.labels(filter_kind=kind).inc(tracker.rows)
            if h:
                h.labels(filter_kind=kind).observe(time.perf_counter() - start)

    def record_decode(self, outcome: str) -> None:
        """Increment legacy-body decode counter. outcome: typedstream/pattern/cleanup/url/unreadable/error."""
        c = self._get("legacy_decodes")
        if c:
            c.labels(outcome=(outcome or "unknown")[:32]).inc()

    def start_server(self, port: int = 8000) -> None:
        if not _enabled():
            return
        _ensure_metrics()

        def run() -> None:
            try:
                prometheus_start_http_server(port, addr="0.0.0.0")
            except Exception:
                pass

        t = threading.Thread(target=run, daemon=True)
        t.start()


metrics = _MetricsCollector()
