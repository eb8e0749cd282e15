"""Prometheus metrics for discovery, sync and rewrite observability."""
from __future__ import annotations

from prometheus_client import Counter, Histogram


PAGES_CRAWLED_TOTAL = Counter(
    "cdn_pages_crawled_total",
    "Storefront pages fetched during analysis by outcome",
    ["outcome"],
)

PAGE_FETCH_SECONDS = Histogram(
    "cdn_page_fetch_seconds",
    "Storefront page fetch latency",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 20, 30),
)

ASSETS_DISCOVERED_TOTAL = Counter(
    "cdn_assets_discovered_total",
    "Unique assets returned by analysis runs",
    ["mode"],
)

EXTRACT_PATTERN_ERRORS_TOTAL = Counter(
    "cdn_extract_pattern_errors_total",
    "Extraction patterns skipped because they failed to compile or run",
    ["matcher"],
)

REMOTE_REQUESTS_TOTAL = Counter(
    "cdn_remote_requests_total",
    "Remote repository API calls by operation and status class",
    ["operation", "status_class"],
)

SYNC_ITEMS_TOTAL = Counter(
    "cdn_sync_items_total",
    "Sync outcomes per asset",
    ["mode", "status"],
)

FONT_CORRECTIONS_TOTAL = Counter(
    "cdn_font_corrections_total",
    "Missing fonts recovered through sibling alternatives",
)

REWRITE_URLS_TOTAL = Counter(
    "cdn_rewrite_urls_total",
    "URLs handled by the HTML rewriter",
    ["result"],
)

PURGE_ATTEMPTS_TOTAL = Counter(
    "cdn_purge_attempts_total",
    "CDN purge calls by outcome",
    ["outcome"],
)


def status_class(status_code: int) -> str:
    return (
        "2xx" if 200 <= status_code < 300 else
        "3xx" if 300 <= status_code < 400 else
        "4xx" if 400 <= status_code < 500 else
        "5xx" if 500 <= status_code < 600 else
        "error"
    )
