"""In-place rewriting of outgoing HTML so asset references point at the mirror.

All edits are textual: markup that does not reference a mirrored asset is
left byte-for-byte untouched. Passes run in a fixed order and share one
``RewriteCache``, which makes a second run over the output a no-op.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable

from cdnmirror.core.urls import (
    cdn_url_for,
    fingerprint,
    is_merged_bundle,
    normalize_asset_url,
    path_extension,
)
from cdnmirror.metrics import REWRITE_URLS_TOTAL

logger = logging.getLogger(__name__)

# Bootstrap scripts whose load order and origin must not change.
CRITICAL_FILES = (
    "requirejs/require.js",
    "requirejs-config.js",
    "mage/requirejs/mixins.js",
    "mage/polyfill.js",
    "mage/bootstrap.js",
    "jquery.js",
    "jquery.min.js",
    "jquery-migrate.js",
    "jquery-migrate.min.js",
    "jquery-ui.js",
    "jquery-ui.min.js",
    "require.js",
    "underscore.js",
    "knockout.js",
    "mage/translate.js",
    "mage/common.js",
    "mage/mage.js",
    "Magento_Ui/js/core/app.js",
    "Magento_Customer/js/customer-data.js",
    "Magento_Customer/js/section-config.js",
    "Magento_Checkout/js/sidebar.js",
)

# Scripts that can run after first paint (case-insensitive substring match).
DEFER_CANDIDATES = (
    "Magento_Ui/js/grid/",
    "Magento_Ui/js/form/",
    "js/theme",
    "Magento_Swatches/js/",
    "Magento_Catalog/js/price-box.js",
    "Magento_Catalog/js/catalog-add-to-cart",
    "Magento_Review/js/",
    "Magento_Theme/js/view/breadcrumbs",
    "Magento_Theme/js/responsive",
    "Magento_Search/js/form-mini",
)

SAFE_FILE_TYPES = frozenset(
    {"css", "png", "jpg", "jpeg", "gif", "svg", "webp", "js", "woff", "woff2", "ttf", "eot"}
)

_QUERY = r"""(?:\?[^'"]*)?"""
# Absolute URLs end at a quote, bracket, whitespace, query or fragment.
_URL_END = r"""(?=[?#'")\s<>]|$)"""
BLANKET_RE = re.compile(
    rf"""(?P<attr>href|src)=(?P<q>['"])(?P<url>/(?:static|media)/[^'"?]+\.(?:js|css)){_QUERY}(?P=q)"""
)
QUOTED_SCRIPT_OR_STYLE_RE = re.compile(rf"""(['"])(/[^'"?]+\.(?:js|css)){_QUERY}\1""")
_DEFER_OR_ASYNC_RE = re.compile(r"\s(?:defer|async)\b", re.I)


def is_critical(path: str) -> bool:
    return any(name in path for name in CRITICAL_FILES)


def is_deferrable(path: str) -> bool:
    lowered = path.lower()
    return path_extension(path) == "js" and any(c.lower() in lowered for c in DEFER_CANDIDATES)


def _needs_defer(html: str, start: int, end: int) -> bool:
    """True when the attribute at ``[start, end)`` sits in a ``<script>`` tag lacking defer/async."""
    tag_start = html.rfind("<", 0, start)
    tag_end = html.find(">", end)
    if tag_start < 0:
        return False
    tag = html[tag_start:tag_end + 1 if tag_end >= 0 else len(html)]
    return tag[:7].lower() == "<script" and not _DEFER_OR_ASYNC_RE.search(tag)


@dataclass
class RewriteCache:
    """Per-response record of handled asset paths, keyed by path fingerprint.

    Create one per outgoing response and pass it to every rewrite call for
    that response; never share one across responses.
    """

    replaced: set[str] = field(default_factory=set)
    skipped: set[str] = field(default_factory=set)

    def is_handled(self, key: str) -> bool:
        return key in self.replaced or key in self.skipped

    def mark_replaced(self, key: str) -> None:
        self.replaced.add(key)

    def mark_skipped(self, key: str) -> None:
        self.skipped.add(key)


@dataclass(slots=True)
class RewriteReport:
    replacements: int = 0
    replaced_urls: dict[str, str] = field(default_factory=dict)
    skipped_urls: list[str] = field(default_factory=list)


class HtmlRewriter:
    def __init__(
        self,
        cdn_base_url: str,
        origin_base_url: str = "",
        secure_origin_base_url: str = "",
        *,
        file_types: Iterable[str] | None = None,
        excluded_paths: Iterable[str] = (),
    ) -> None:
        self.cdn_base_url = cdn_base_url
        self.origin_base_url = (origin_base_url or "").rstrip("/")
        self.secure_origin_base_url = (secure_origin_base_url or "").rstrip("/")
        self.file_types = frozenset(t.lower() for t in file_types) if file_types is not None else SAFE_FILE_TYPES
        self.excluded_paths = tuple(p for p in excluded_paths if p)

    def _is_excluded(self, path: str) -> bool:
        return is_critical(path) or any(p in path for p in self.excluded_paths)

    def rewrite(
        self,
        html: str,
        asset_urls: Iterable[str],
        cache: RewriteCache | None = None,
        report: RewriteReport | None = None,
    ) -> str:
        """Return ``html`` with mirrored asset references pointing at the CDN."""
        if not html or not self.cdn_base_url:
            return html
        cache = cache if cache is not None else RewriteCache()
        report = report if report is not None else RewriteReport()

        html = self._blanket_pass(html, cache, report)

        for url in asset_urls:
            html = self._substitute(html, url, cache, report)

        pending: list[str] = []
        for match in QUOTED_SCRIPT_OR_STYLE_RE.finditer(html):
            if match.group(2) not in pending:
                pending.append(match.group(2))
        for url in pending:
            html = self._substitute(html, url, cache, report)

        if report.replacements:
            logger.info("Replaced %s URLs with CDN URLs", report.replacements)
            logger.debug("Replaced URLs: %s", report.replaced_urls)
        return html

    # ── Pass 1: every static/media script and stylesheet attribute ──

    def _blanket_pass(self, html: str, cache: RewriteCache, report: RewriteReport) -> str:
        this_pass: set[str] = set()

        def _replace(match: re.Match[str]) -> str:
            path = match.group("url")
            key = fingerprint(path)
            if key in cache.skipped or (key in cache.replaced and key not in this_pass):
                return match.group(0)
            if self._is_excluded(path):
                self._skip(path, key, cache, report)
                return match.group(0)
            cdn_url = cdn_url_for(path, self.cdn_base_url)
            if not cdn_url:
                self._skip(path, key, cache, report)
                return match.group(0)

            quote = match.group("q")
            replacement = f"{match.group('attr')}={quote}{cdn_url}{quote}"
            if (
                match.group("attr") == "src"
                and is_deferrable(path)
                and _needs_defer(match.string, match.start(), match.end())
            ):
                replacement += " defer"

            cache.mark_replaced(key)
            this_pass.add(key)
            report.replacements += 1
            report.replaced_urls[path] = cdn_url
            REWRITE_URLS_TOTAL.labels(result="replaced").inc()
            return replacement

        return BLANKET_RE.sub(_replace, html)

    # ── Passes 2 and 3: one URL across every syntactic context ──

    def _substitute(self, html: str, url: str, cache: RewriteCache, report: RewriteReport) -> str:
        path = normalize_asset_url(url, self.origin_base_url or None)
        if not path:
            return html
        key = fingerprint(path)
        if cache.is_handled(key):
            return html

        if self._is_excluded(path):
            self._skip(path, key, cache, report)
            return html
        if not is_merged_bundle(path) and path_extension(path) not in self.file_types:
            self._skip(path, key, cache, report)
            return html
        cdn_url = cdn_url_for(path, self.cdn_base_url)
        if not cdn_url:
            self._skip(path, key, cache, report)
            return html

        original = html
        count = 0

        for origin in (self.origin_base_url, self.secure_origin_base_url):
            if origin:
                html, n = re.subn(re.escape(origin + path) + _URL_END, lambda m: cdn_url, html)
                count += n

        escaped = re.escape(path)
        html, n = re.subn(
            rf"""(\shref=)(['"]){escaped}{_QUERY}\2""",
            lambda m: f"{m.group(1)}{m.group(2)}{cdn_url}{m.group(2)}",
            html,
        )
        count += n

        defer = is_deferrable(path)

        def _src(match: re.Match[str]) -> str:
            replacement = f"{match.group(1)}{match.group(2)}{cdn_url}{match.group(2)}"
            if defer and _needs_defer(match.string, match.start(), match.end()):
                replacement += " defer"
            return replacement

        html, n = re.subn(rf"""(\ssrc=)(['"]){escaped}{_QUERY}\2""", _src, html)
        count += n

        html, n = re.subn(
            rf"""url\(\s*(['"]?){escaped}(?:\?[^'")]*)?\1\s*\)""",
            lambda m: f"url({m.group(1)}{cdn_url}{m.group(1)})",
            html,
        )
        count += n

        html, n = re.subn(rf"""(['"]){escaped}{_QUERY}\1""", lambda m: f"{m.group(1)}{cdn_url}{m.group(1)}", html)
        count += n

        if html != original:
            logger.debug("Replaced URL: %s with %s", path, cdn_url)
            cache.mark_replaced(key)
            report.replacements += count
            report.replaced_urls[path] = cdn_url
            REWRITE_URLS_TOTAL.labels(result="replaced").inc()
        return html

    def _skip(self, path: str, key: str, cache: RewriteCache, report: RewriteReport) -> None:
        cache.mark_skipped(key)
        report.skipped_urls.append(path)
        REWRITE_URLS_TOTAL.labels(result="skipped").inc()


def rewrite_html(
    html: str,
    asset_urls: Iterable[str],
    cdn_base_url: str,
    origin_base_url: str = "",
    secure_origin_base_url: str = "",
    *,
    cache: RewriteCache | None = None,
    excluded_paths: Iterable[str] = (),
) -> str:
    rewriter = HtmlRewriter(
        cdn_base_url,
        origin_base_url,
        secure_origin_base_url,
        excluded_paths=excluded_paths,
    )
    return rewriter.rewrite(html, asset_urls, cache)
