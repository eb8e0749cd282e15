"""Bounded storefront crawler feeding pages to the asset extractor.

Two traversal modes:
- ``crawl``: depth-first with priority (category → product → other) under a
  page budget; category pages grant their own subtree a small bonus.
- ``crawl_levels``: level-by-level up to a fixed depth, 10 pages per level.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

import httpx

from cdnmirror.config import Settings, settings as default_settings
from cdnmirror.core.assets import AssetExtractor
from cdnmirror.core.urls import ROOT_PREFIXES, has_static_extension, resolve_reference, site_host
from cdnmirror.errors import TransportError
from cdnmirror.metrics import PAGE_FETCH_SECONDS, PAGES_CRAWLED_TOTAL

logger = logging.getLogger(__name__)

DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)
PAGE_HEADERS = {
    "User-Agent": DESKTOP_UA,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}
MAX_REDIRECTS = 5
CATEGORY_BONUS = 2
MAX_LINKS_PER_LEVEL = 10

CATEGORY_PATTERNS = (
    re.compile(r"/catalog/category/view"),
    re.compile(r"\.html$"),
    re.compile(r"/category/"),
    re.compile(r"[?&]cat="),
)
PRODUCT_PATTERNS = (
    re.compile(r"/catalog/product/view"),
    re.compile(r"\.html$"),
    re.compile(r"/product/"),
)
STATIC_ASSET_RE = re.compile(r"\.(?:js|css|jpe?g|png|gif|svg|woff2?|ttf|eot)$", re.I)
LINK_RE = re.compile(r"""<a[^>]*\shref=['"]([^'"]*)['"][^>]*>""", re.I)
SKIPPED_LINK_SCHEMES = ("javascript:", "mailto:", "tel:")


def _matches_any(url: str, patterns: tuple[re.Pattern[str], ...]) -> bool:
    url = url.split("#", 1)[0]
    if STATIC_ASSET_RE.search(url):
        return False
    return any(p.search(url) for p in patterns)


def is_category_page(url: str) -> bool:
    return _matches_any(url, CATEGORY_PATTERNS)


def is_product_page(url: str) -> bool:
    return _matches_any(url, PRODUCT_PATTERNS)


def prioritize_links(links: list[str]) -> list[str]:
    """Category links first, then product links, then the rest; stable within each bucket."""
    categories: list[str] = []
    products: list[str] = []
    others: list[str] = []
    for link in links:
        if is_category_page(link):
            categories.append(link)
        elif is_product_page(link):
            products.append(link)
        else:
            others.append(link)
    return categories + products + others


def _with_root_path(url: str) -> str:
    parts = urlsplit(url)
    if parts.path:
        return url
    return urlunsplit((parts.scheme, parts.netloc, "/", parts.query, parts.fragment))


def extract_page_links(html: str, page_url: str, host: str) -> list[str]:
    """Same-host page links in document order, resolved against ``page_url``."""
    links: list[str] = []
    seen: set[str] = set()
    for match in LINK_RE.finditer(html or ""):
        href = match.group(1).strip()
        if not href or href.startswith("#") or href.lower().startswith(SKIPPED_LINK_SCHEMES):
            continue
        absolute = resolve_reference(href, page_url).split("#", 1)[0]
        if not absolute:
            continue
        try:
            parsed = urlsplit(absolute)
            link_host = (parsed.hostname or "").lower()
        except ValueError:
            logger.debug("Skipping malformed link %s on %s", href, page_url)
            continue
        if parsed.scheme not in {"http", "https"} or link_host != host:
            continue
        if parsed.path.startswith(ROOT_PREFIXES) or has_static_extension(parsed.path):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


@dataclass(slots=True)
class FetchResult:
    url: str
    ok: bool
    status_code: int = 0
    body: str = ""
    error: TransportError | None = None


@dataclass
class CrawlState:
    """Transient per-run state; never shared between calls."""

    visited: set[str] = field(default_factory=set)
    queued: set[str] = field(default_factory=set)
    discovered: set[str] = field(default_factory=set)
    bonuses: int = 0
    expired: bool = False


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


class PageCrawler:
    """Fetches storefront pages and aggregates the assets they reference."""

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self._transport = transport

    def _open_client(self) -> httpx.Client:
        # Certificate checks are off so staging and self-signed storefronts can be analyzed.
        return httpx.Client(
            headers=PAGE_HEADERS,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            verify=False,
            timeout=httpx.Timeout(self.cfg.HTTP_TIMEOUT_S, connect=self.cfg.HTTP_CONNECT_TIMEOUT_S),
            transport=self._transport,
        )

    def fetch(self, client: httpx.Client, url: str) -> FetchResult:
        started = time.perf_counter()
        try:
            resp = client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Exception fetching URL %s: %s", url, exc)
            PAGES_CRAWLED_TOTAL.labels(outcome="error").inc()
            return FetchResult(url=url, ok=False, error=TransportError(str(exc)))
        finally:
            PAGE_FETCH_SECONDS.observe(time.perf_counter() - started)

        if not 200 <= resp.status_code < 300:
            logger.warning("Error fetching URL %s: HTTP status %s", url, resp.status_code)
            PAGES_CRAWLED_TOTAL.labels(outcome="http_error").inc()
            return FetchResult(
                url=url,
                ok=False,
                status_code=resp.status_code,
                error=TransportError(f"HTTP {resp.status_code}", status_code=resp.status_code),
            )

        PAGES_CRAWLED_TOTAL.labels(outcome="ok").inc()
        return FetchResult(url=str(resp.url), ok=True, status_code=resp.status_code, body=resp.text)

    def fetch_page(self, url: str) -> FetchResult:
        with self._open_client() as client:
            return self.fetch(client, url)

    # ── Budgeted depth-first crawl ──

    def crawl(self, start_url: str, max_pages: int = 5, *, deadline: float | None = None) -> list[str]:
        """Sorted asset paths discovered within ``max_pages`` fetches (plus category bonuses)."""
        start_url = _with_root_path(start_url)
        host = site_host(start_url)
        extractor = AssetExtractor(base_url=start_url)
        state = CrawlState()
        state.queued.add(start_url)

        logger.info("Starting advanced URL analysis from: %s", start_url)
        with self._open_client() as client:
            self._visit(client, extractor, state, start_url, max(0, int(max_pages)), host, deadline)

        if state.expired:
            logger.warning("Crawl deadline reached; returning partial results for %s", start_url)
        logger.info(
            "Analysis complete. Visited %s pages, found %s unique static/media assets.",
            len(state.visited),
            len(state.discovered),
        )
        return sorted(state.discovered)

    def _visit(
        self,
        client: httpx.Client,
        extractor: AssetExtractor,
        state: CrawlState,
        url: str,
        budget: int,
        host: str,
        deadline: float | None,
    ) -> None:
        if url in state.visited or len(state.visited) >= budget:
            return
        if _expired(deadline):
            state.expired = True
            return

        logger.debug("Crawling page: %s", url)
        state.visited.add(url)

        child_budget = budget
        if is_category_page(url):
            logger.debug("Found category page: %s, increasing depth", url)
            child_budget = budget + CATEGORY_BONUS
            state.bonuses += 1

        result = self.fetch(client, url)
        if not result.ok:
            return

        state.discovered.update(extractor.extract(result.body))

        fresh = [
            link
            for link in extract_page_links(result.body, result.url, host)
            if link not in state.visited and link not in state.queued
        ]
        children = prioritize_links(fresh)[:MAX_LINKS_PER_LEVEL]
        state.queued.update(children)

        for link in children:
            if state.expired or len(state.visited) >= child_budget:
                break
            self._visit(client, extractor, state, link, child_budget, host, deadline)

    # ── Level-by-level crawl ──

    def crawl_levels(self, start_url: str, max_depth: int = 1, *, deadline: float | None = None) -> list[str]:
        """Sorted asset paths from pages up to ``max_depth`` link levels deep."""
        start_url = _with_root_path(start_url)
        host = site_host(start_url)
        extractor = AssetExtractor(base_url=start_url)
        state = CrawlState()
        to_visit = [start_url]
        depth = 0

        with self._open_client() as client:
            while depth < max_depth and to_visit:
                depth += 1
                logger.info("Processing pages at depth %s", depth)
                next_level: list[str] = []
                for page_url in to_visit:
                    if page_url in state.visited:
                        continue
                    if _expired(deadline):
                        state.expired = True
                        break
                    state.visited.add(page_url)
                    logger.info("Analyzing page: %s", page_url)
                    result = self.fetch(client, page_url)
                    if not result.ok:
                        continue
                    state.discovered.update(extractor.extract(result.body))
                    if depth < max_depth:
                        next_level.extend(extract_page_links(result.body, result.url, host))

                if state.expired:
                    logger.warning("Crawl deadline reached; returning partial results for %s", start_url)
                    break

                to_visit = []
                for link in next_level:
                    if link not in state.visited and link not in to_visit:
                        to_visit.append(link)
                if len(to_visit) > MAX_LINKS_PER_LEVEL:
                    to_visit = to_visit[:MAX_LINKS_PER_LEVEL]
                    logger.info("Limited pages to visit to %s for performance reasons", MAX_LINKS_PER_LEVEL)

        return sorted(state.discovered)
