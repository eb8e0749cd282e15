"""Request/response entry points for the CDN mirror.

Every public method returns a plain ``{success, message, ...}`` dict. Failures
are logged with their technical detail and translated into a readable
message; nothing escapes untyped to the transport layer.
"""
from __future__ import annotations

import functools
import html as html_lib
import logging
import time
from collections import deque
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx

from cdnmirror.clients.github import GithubRepository
from cdnmirror.clients.jsdelivr import JsdelivrPurger
from cdnmirror.config import Settings, settings as default_settings
from cdnmirror.core.crawler import PageCrawler
from cdnmirror.core.assets import AssetExtractor
from cdnmirror.core.rewriter import HtmlRewriter, RewriteCache, RewriteReport
from cdnmirror.core.local_files import LocalTree
from cdnmirror.core.sync import SyncEngine, is_path_optimal_for_cdn
from cdnmirror.core.urls import normalize_asset_url, site_host
from cdnmirror.errors import ConfigurationError, MirrorError, NotFoundError
from cdnmirror.metrics import ASSETS_DISCOVERED_TOTAL

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "CDN integration is disabled."
LOG_TAIL_LINES = 1000
ADMIN_PATH_MARKER = "/admin/"

# Framework bootstrap files never proposed for mirroring.
ANALYZE_CORE_EXCLUSIONS = (
    "requirejs-config.js",
    "require.js",
    "mixins.js",
    "jquery.js",
    "jquery.min.js",
    "mage/requirejs/mixins.js",
    "mage/polyfill.js",
    "mage/translate.js",
    "mage/common.js",
    "mage/mage.js",
    "mage/bootstrap.js",
)


def _failure(message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "message": message, **extra}


def entry_point(action: str, *, requires_enabled: bool = True) -> Callable:
    """Wrap a service method with the enabled check and the error boundary."""

    def decorator(func: Callable[..., dict[str, Any]]) -> Callable[..., dict[str, Any]]:
        @functools.wraps(func)
        def wrapper(self: "CdnService", *args: Any, **kwargs: Any) -> dict[str, Any]:
            if requires_enabled and not self.cfg.CDN_ENABLED:
                return _failure(DISABLED_MESSAGE)
            try:
                return func(self, *args, **kwargs)
            except ConfigurationError as exc:
                logger.error("Configuration error while %s: %s", action, exc)
                return _failure(str(exc))
            except NotFoundError as exc:
                logger.info("Nothing to do while %s: %s", action, exc)
                return _failure(str(exc))
            except MirrorError as exc:
                logger.error("Error while %s: %s", action, exc)
                return _failure(str(exc))
            except Exception:
                logger.exception("Unexpected error while %s", action)
                return _failure(f"An error occurred while {action}. Check the logs for details.")

        return wrapper

    return decorator


def _deadline(timeout_s: float | None) -> float | None:
    return time.monotonic() + timeout_s if timeout_s else None


class CdnService:
    """Wires configuration, crawler, sync engine, clients and rewriter together."""

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        page_transport: httpx.BaseTransport | None = None,
        github_transport: httpx.BaseTransport | None = None,
        purge_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self._page_transport = page_transport
        self._github_transport = github_transport
        self._purge_transport = purge_transport

    # ── Wiring ──

    def _crawler(self) -> PageCrawler:
        return PageCrawler(self.cfg, transport=self._page_transport)

    def _repository(self) -> GithubRepository:
        return GithubRepository(self.cfg, transport=self._github_transport)

    def _store_url(self, store_url: str | None = None) -> str:
        return (store_url or self.cfg.STORE_BASE_URL or "").strip()

    def _is_excluded(self, url: str) -> bool:
        return any(p in url for p in ANALYZE_CORE_EXCLUSIONS) or any(
            p in url for p in self.cfg.excluded_paths()
        )

    # ── Discovery ──

    @entry_point("analyzing URLs")
    def analyze(
        self,
        store_url: str,
        specific_url: str | None = None,
        scan_linked_pages: bool = False,
        scan_depth: int = 1,
        existing_urls: Iterable[str] | None = None,
        timeout_s: float | None = None,
    ) -> dict[str, Any]:
        store_url = self._store_url(store_url)
        if not store_url:
            return _failure("Store URL is required.")

        target = store_url
        specific_url = (specific_url or self.cfg.CDN_SPECIFIC_URL or "").strip()
        if specific_url:
            if site_host(specific_url) == site_host(store_url):
                target = specific_url
                logger.info("Using specific URL for analysis: %s", specific_url)
            else:
                logger.warning("Specific URL domain doesn't match store domain. Using store URL instead.")

        crawler = self._crawler()
        if scan_linked_pages:
            urls = crawler.crawl_levels(target, max(1, int(scan_depth)), deadline=_deadline(timeout_s))
        else:
            page = crawler.fetch_page(target)
            if not page.ok:
                return _failure("Failed to fetch page content. Please check the URL.")
            urls = AssetExtractor(base_url=store_url).extract(page.body)

        if not urls:
            return _failure("No suitable URLs found to analyze.")

        existing = set(existing_urls or ())
        urls = [u for u in urls if not self._is_excluded(u) and u not in existing]
        ASSETS_DISCOVERED_TOTAL.labels(mode="analyze").inc(len(urls))
        if not urls:
            return {
                "success": True,
                "urls": [],
                "message": (
                    "No new URLs found. The files might already be in your custom URL list "
                    "or they are core files that should not be served via CDN."
                ),
            }
        tree = LocalTree.from_settings(self.cfg)
        recommended = [u for u in urls if is_path_optimal_for_cdn(u, tree)]
        return {
            "success": True,
            "urls": urls,
            "recommended": recommended,
            "message": f"Found {len(urls)} URLs to analyze ({len(recommended)} recommended for CDN).",
        }

    @entry_point("running advanced URL analysis")
    def advanced_analyze(self, store_url: str, max_pages: int = 5, timeout_s: float | None = None) -> dict[str, Any]:
        store_url = self._store_url(store_url)
        if not store_url:
            return _failure("Store URL is required.")

        logger.info("Starting advanced URL analysis for: %s", store_url)
        urls = self._crawler().crawl(store_url, max_pages, deadline=_deadline(timeout_s))
        if not urls:
            logger.warning("No URLs found in advanced analysis")
            return _failure("No suitable URLs found to analyze.")

        ASSETS_DISCOVERED_TOTAL.labels(mode="advanced").inc(len(urls))
        logger.info("Advanced analysis complete, found %s URLs", len(urls))
        return {
            "success": True,
            "urls": urls,
            "message": f"URL analysis completed with {len(urls)} URLs found.",
        }

    @entry_point("analyzing pasted URLs")
    def direct_analyze(self, pasted_urls: str) -> dict[str, Any]:
        base_url = self._store_url()
        found: set[str] = set()
        for line in (pasted_urls or "").splitlines():
            path = normalize_asset_url(line, base_url or None)
            if path:
                found.add(path)
            elif line.strip():
                logger.debug("Skipping pasted URL: %s", line.strip())

        urls = sorted(found)
        if not urls:
            logger.warning("No suitable URLs found after processing paste input")
            return _failure(
                "No suitable URLs found to analyze. Please make sure you pasted valid static or media URLs."
            )
        ASSETS_DISCOVERED_TOTAL.labels(mode="direct").inc(len(urls))
        logger.info("Processed %s pasted URLs successfully", len(urls))
        return {"success": True, "urls": urls, "message": f"Found {len(urls)} valid URLs from your input."}

    # ── Synchronization ──

    @entry_point("uploading files to GitHub")
    def upload_batch(self, urls: list[str]) -> dict[str, Any]:
        if not self.cfg.has_github_credentials():
            return _failure(
                "GitHub credentials are not properly configured. "
                "Please check your settings and test the connection first."
            )
        if not urls:
            return _failure("No URLs provided for upload.")

        with self._repository() as repository:
            result = SyncEngine(repository, self.cfg).upload_batch(urls)
        payload = result.to_dict()
        payload["success"] = True
        payload["message"] = f"Uploaded {result.uploaded} of {result.total} files to GitHub."
        return payload

    @entry_point("validating URLs")
    def validate_custom_urls(self, timeout_s: float | None = None) -> dict[str, Any]:
        urls = self.cfg.custom_urls()
        if not urls:
            return {"success": True, "message": "No custom URLs defined.", "details": []}

        logger.info("Starting validation of custom URLs")
        with self._repository() as repository:
            result = SyncEngine(repository, self.cfg).reconcile(urls, deadline=_deadline(timeout_s))
        return {"success": True, "results": result.to_dict(), "message": result.summary()}

    @entry_point("validating URLs")
    def validate_batch(self, urls: list[str], batch_index: int = 0, total_batches: int = 1) -> dict[str, Any]:
        logger.info("Processing batch %s of %s", batch_index, total_batches)
        with self._repository() as repository:
            result = SyncEngine(repository, self.cfg).validate_batch(urls)
        return {
            "success": True,
            "batch_index": batch_index,
            "total_batches": total_batches,
            "batch_results": result.to_dict(),
            "message": result.summary(),
        }

    # ── Remote services ──

    @entry_point("testing the GitHub connection")
    def test_remote_connection(self) -> dict[str, Any]:
        if not self.cfg.GITHUB_USERNAME.strip():
            return _failure("GitHub Username is required.")
        if not self.cfg.GITHUB_REPOSITORY.strip():
            return _failure("GitHub Repository is required.")
        if not self.cfg.GITHUB_TOKEN.strip():
            return _failure("GitHub Personal Access Token is required.")

        with self._repository() as repository:
            access = repository.test_access()
        if access.ok:
            return {
                "success": True,
                "message": (
                    "GitHub connection test successful. Your credentials are correct "
                    "and you have proper access to the repository."
                ),
            }
        return _failure(f"GitHub connection test failed: {access.message}")

    @entry_point("collecting debug information", requires_enabled=False)
    def debug_info(self) -> dict[str, Any]:
        info = {
            "github_settings": {
                "username": self.cfg.GITHUB_USERNAME,
                "repository": self.cfg.GITHUB_REPOSITORY,
                "branch": self.cfg.github_branch(),
                "token_configured": bool(self.cfg.GITHUB_TOKEN.strip()),
            },
            "cdn_base_url": self.cfg.cdn_base_url(),
            "module_enabled": self.cfg.CDN_ENABLED,
            "debug_enabled": self.cfg.CDN_DEBUG,
            "custom_url_count": len(self.cfg.custom_urls()),
        }
        test_result: dict[str, Any] = {"connection_success": False, "message": "Not tested"}
        if self.cfg.CDN_ENABLED and self.cfg.has_github_credentials():
            with self._repository() as repository:
                access = repository.test_access()
            test_result = {"connection_success": access.ok, "message": access.message}
        return {"success": True, "debug_info": info, "test_result": test_result}

    @entry_point("purging the jsDelivr CDN cache")
    def purge_all(self) -> dict[str, Any]:
        result = JsdelivrPurger(self.cfg, transport=self._purge_transport).purge_all()
        if result.ok:
            return {"success": True, "message": "jsDelivr CDN cache has been purged successfully."}
        return _failure("Failed to purge jsDelivr CDN cache. Please check the logs for details.")

    @entry_point("reading the log file", requires_enabled=False)
    def view_log(self) -> dict[str, Any]:
        log_file = self.cfg.APP_LOG_FILE.strip()
        if not log_file or not Path(log_file).is_file():
            raise NotFoundError("Log file does not exist.")
        with open(log_file, encoding="utf-8", errors="replace") as fh:
            lines = deque(fh, maxlen=LOG_TAIL_LINES)
        content = "".join(lines).rstrip("\n")
        return {"success": True, "content": html_lib.escape(content)}

    # ── Rewriting ──

    @entry_point("rewriting HTML")
    def rewrite_html(self, html: str, request_path: str = "/") -> dict[str, Any]:
        if ADMIN_PATH_MARKER in (request_path or ""):
            logger.debug("Skipping admin path: %s", request_path)
            return {"success": True, "html": html, "replacements": 0, "message": "Admin pages are not rewritten."}

        custom_urls = self.cfg.custom_urls()
        if not custom_urls:
            logger.debug("No custom URLs defined. Skipping replacement.")
            return {"success": True, "html": html, "replacements": 0, "message": "No custom URLs defined."}

        cdn_base_url = self.cfg.cdn_base_url()
        if not cdn_base_url:
            logger.warning("CDN base URL is empty")
            return _failure("CDN base URL is not configured.", html=html, replacements=0)

        rewriter = HtmlRewriter(
            cdn_base_url,
            self.cfg.STORE_BASE_URL,
            self.cfg.STORE_SECURE_BASE_URL,
            file_types=self.cfg.file_types(),
            excluded_paths=self.cfg.excluded_paths(),
        )
        report = RewriteReport()
        rewritten = rewriter.rewrite(html, custom_urls, RewriteCache(), report)
        return {
            "success": True,
            "html": rewritten,
            "replacements": report.replacements,
            "message": f"Replaced {report.replacements} URLs with CDN URLs.",
        }
