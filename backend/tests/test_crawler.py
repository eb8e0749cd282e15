from __future__ import annotations

import time

import httpx

from cdnmirror.config import Settings
from cdnmirror.core.crawler import (
    PAGE_HEADERS,
    PageCrawler,
    extract_page_links,
    is_category_page,
    is_product_page,
    prioritize_links,
)
from cdnmirror.errors import TransportError

HOST = "https://shop.example"


def _settings() -> Settings:
    return Settings(_env_file=None, STORE_BASE_URL=HOST + "/")


def _page(assets: list[str], links: list[str]) -> str:
    body = "".join(f'<script src="{a}"></script>' for a in assets)
    body += "".join(f'<a href="{link}">x</a>' for link in links)
    return f"<html><body>{body}</body></html>"


def _transport(site: dict[str, str], hits: list[str]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        hits.append(str(request.url))
        body = site.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, text=body, headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)


def test_page_heuristics() -> None:
    assert is_category_page(f"{HOST}/catalog/category/view/id/4")
    assert is_category_page(f"{HOST}/women.html")
    assert is_category_page(f"{HOST}/shop?cat=12")
    assert not is_category_page(f"{HOST}/static/theme.css")
    assert is_product_page(f"{HOST}/product/blue-shirt")
    assert not is_product_page(f"{HOST}/about")


def test_prioritize_links_keeps_bucket_order() -> None:
    links = [f"{HOST}/about", f"{HOST}/product/a", f"{HOST}/category/shoes", f"{HOST}/contact", f"{HOST}/product/b"]
    assert prioritize_links(links) == [
        f"{HOST}/category/shoes",
        f"{HOST}/product/a",
        f"{HOST}/product/b",
        f"{HOST}/about",
        f"{HOST}/contact",
    ]


def test_extract_page_links_filters_schemes_hosts_and_files() -> None:
    html = (
        '<a href="/about">a</a><a href="mailto:x@shop.example">m</a>'
        '<a href="javascript:void(0)">j</a><a href="tel:123">t</a>'
        '<a href="https://other.example/page">o</a><a href="/static/a.css">s</a>'
        '<a href="/media/manual.pdf">p</a><a href="docs/faq#top">f</a><a href="#top">h</a>'
        '<a href="/about">dup</a>'
    )
    links = extract_page_links(html, f"{HOST}/help/", "shop.example")
    assert links == [f"{HOST}/about", f"{HOST}/help/docs/faq"]


def test_crawl_collects_assets_within_budget() -> None:
    site = {
        f"{HOST}/": _page(["/static/home.js"], ["/about", "/product/p1"]),
        f"{HOST}/product/p1": _page(["/static/product.js"], []),
        f"{HOST}/about": _page(["/static/about.js"], []),
    }
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport(site, hits))

    assets = crawler.crawl(HOST, max_pages=2)

    # Product pages outrank plain pages, so /about is never reached.
    assert assets == ["/static/home.js", "/static/product.js"]
    assert hits == [f"{HOST}/", f"{HOST}/product/p1"]


def test_crawl_category_bonus_bounds_total_fetches() -> None:
    site = {f"{HOST}/": _page([], [f"/cat{i}.html" for i in range(5)])}
    for i in range(5):
        site[f"{HOST}/cat{i}.html"] = _page([f"/static/c{i}.js"], [f"/cat{i}/p{j}" for j in range(4)])
        for j in range(4):
            site[f"{HOST}/cat{i}/p{j}"] = _page([f"/static/c{i}p{j}.js"], [])
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport(site, hits))

    crawler.crawl(HOST, max_pages=2)

    categories = sum(1 for h in hits if h.endswith(".html"))
    assert len(hits) == len(set(hits))
    assert 2 < len(hits) <= 2 + 2 * categories


def test_crawl_survives_failed_pages_and_terminates_on_cycles() -> None:
    site = {
        f"{HOST}/": _page(["/static/a.js"], ["/loop", "/broken"]),
        f"{HOST}/loop": _page(["/static/b.js"], ["/", "/loop"]),
    }
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport(site, hits))

    assets = crawler.crawl(HOST, max_pages=10)

    assert assets == ["/static/a.js", "/static/b.js"]
    assert sorted(hits) == sorted({f"{HOST}/", f"{HOST}/loop", f"{HOST}/broken"})


def test_crawl_expired_deadline_returns_partial_result() -> None:
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport({f"{HOST}/": _page(["/static/a.js"], [])}, hits))
    assert crawler.crawl(HOST, max_pages=5, deadline=time.monotonic() - 1) == []
    assert hits == []


def test_crawl_levels_limits_depth() -> None:
    site = {
        f"{HOST}/": _page(["/static/root.js"], ["/l1"]),
        f"{HOST}/l1": _page(["/static/l1.js"], ["/l2"]),
        f"{HOST}/l2": _page(["/static/l2.js"], []),
    }
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport(site, hits))

    assert crawler.crawl_levels(HOST, 2) == ["/static/l1.js", "/static/root.js"]
    assert f"{HOST}/l2" not in hits


def test_fetch_sends_browser_headers_and_reports_transport_errors() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/down":
            raise httpx.ConnectError("refused", request=request)
        seen.update(request.headers)
        return httpx.Response(200, text="ok")

    crawler = PageCrawler(_settings(), transport=httpx.MockTransport(handler))
    assert crawler.fetch_page(f"{HOST}/").ok
    assert seen["user-agent"] == PAGE_HEADERS["User-Agent"]
    assert seen["accept-language"] == "en-US,en;q=0.5"

    failed = crawler.fetch_page(f"{HOST}/down")
    assert not failed.ok
    assert isinstance(failed.error, TransportError)
    assert "refused" in str(failed.error)


def test_malformed_link_is_skipped_not_fatal() -> None:
    page = _page(["/static/home.js"], ["http://[oops/", "/product/p1"])
    assert extract_page_links(page, f"{HOST}/", "shop.example") == [f"{HOST}/product/p1"]

    site = {
        f"{HOST}/": page + '<img src="http://[broken.png">',
        f"{HOST}/product/p1": _page(["/static/product.js"], []),
    }
    hits: list[str] = []
    crawler = PageCrawler(_settings(), transport=_transport(site, hits))

    assert crawler.crawl(HOST, max_pages=5) == ["/static/home.js", "/static/product.js"]
