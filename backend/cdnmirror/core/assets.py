"""Pattern-based asset extraction from storefront HTML and CSS.

Each matcher is an independent pure function ``(document) -> [raw match]``
targeting one syntactic context. Matchers run in order; a matcher that fails
(bad pattern) is skipped and logged while the rest keep going.
"""
from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, List

from cdnmirror.core.urls import normalize_asset_url
from cdnmirror.metrics import EXTRACT_PATTERN_ERRORS_TOTAL

logger = logging.getLogger(__name__)

Matcher = Callable[[str], List[str]]

_Q = r"""['"]"""
_NOT_Q = r"""[^'"]"""
_QUERY = r"""(?:\?[^'"]*)?"""
_IMG_EXT = r"(?:png|jpe?g|gif|svg|webp)"

# (name, pattern, flags, group); order only affects log readability,
# results are merged into one set.
DOCUMENT_PATTERNS: list[tuple[str, str, int, int]] = [
    ("module_script", rf"<script[^>]*src={_Q}({_NOT_Q}+/Magento_[^/]+/js/{_NOT_Q}+\.js{_QUERY}){_Q}[^>]*>", re.I, 1),
    ("module_stylesheet", rf"<link[^>]*href={_Q}({_NOT_Q}+/Magento_[^/]+/css/{_NOT_Q}+\.css{_QUERY}){_Q}[^>]*>", re.I, 1),
    ("stylesheet", rf"<link[^>]*href={_Q}({_NOT_Q}+\.css{_QUERY}){_Q}[^>]*>", re.I, 1),
    ("script", rf"<script[^>]*src={_Q}({_NOT_Q}+\.js{_QUERY}){_Q}[^>]*>", re.I, 1),
    ("image", rf"<img[^>]*src={_Q}({_NOT_Q}+\.{_IMG_EXT}{_QUERY}){_Q}[^>]*>", re.I, 1),
    (
        "product_image",
        rf"<img[^>]*(?:class|id)={_Q}{_NOT_Q}*(?:product-image|category-image|gallery-placeholder"
        rf"|product-collection-image|catalog-image){_NOT_Q}*{_Q}[^>]*\ssrc={_Q}({_NOT_Q}+\.{_IMG_EXT}{_QUERY}){_Q}",
        re.I,
        1,
    ),
    ("lazy_image", rf"<img[^>]*data-src={_Q}({_NOT_Q}+\.{_IMG_EXT}{_QUERY}){_Q}[^>]*>", re.I, 1),
    ("inline_background", rf"style={_Q}{_NOT_Q}*background(?:-image)?:\s*url\({_Q}?([^'\")\s]+){_Q}?\)", re.I, 1),
    ("css_url", rf"url\(\s*{_Q}?([^'\")\s]+){_Q}?\s*\)", re.I, 1),
    ("media_source", rf"<(?:video|audio)[^>]*>.*?<source[^>]*src={_Q}({_NOT_Q}+){_Q}.*?</(?:video|audio)>", re.I | re.S, 1),
    ("object_embed", rf"<(?:object|embed)[^>]*(?:data|src)={_Q}({_NOT_Q}+){_Q}[^>]*>", re.I, 1),
    ("data_attribute", rf"\sdata-[\w-]*={_Q}({_NOT_Q}+\.(?:js|css|png|jpe?g|gif|svg|webp|woff2?){_QUERY}){_Q}", re.I, 1),
    ("svg_reference", rf"<[^>]*?(?:href|src)={_Q}({_NOT_Q}+\.svg(?:[?#]{_NOT_Q}*)?){_Q}[^>]*>", re.I, 1),
    ("preload", rf"<link[^>]*rel={_Q}preload{_Q}[^>]*href={_Q}({_NOT_Q}+){_Q}[^>]*>", re.I, 1),
    ("css_import", rf"@import\s+(?:url\()?{_Q}({_NOT_Q}+){_Q}", re.I, 1),
    # Bundler artifacts
    ("merged_bucket", r"/static/_cache/merged/[^\"'\s)<>]+", re.I, 0),
    ("minified_bucket", r"/static/_cache/minified/[^\"'\s)<>]+", re.I, 0),
    ("requirejs_text", r"text!(/static/[^!'\"\s]+)", re.I, 1),
    ("quoted_static", r'"(/static/[^"]+)"', re.I, 1),
    (
        "quoted_resource",
        rf"{_Q}((?:/static|/media)/{_NOT_Q}+\.(?:js|css|svg|png|jpe?g|gif|woff2?|ttf|eot){_QUERY}){_Q}",
        0,
        1,
    ),
]

JSON_BLOCK_RE = re.compile(r"\{[^{}]+\}")
JSON_IMAGE_RE = re.compile(
    r'"(?:thumbnail|small_image|image|img_url|src|full)"\s*:\s*"([^"]+\.(?:jpe?g|png|gif|webp))"'
)
JSON_ASSET_RE = re.compile(r'"(/(?:static|media)/[^"]+)"', re.I)


def regex_matcher(name: str, pattern: str, flags: int = 0, group: int = 1) -> Matcher:
    """Build a matcher for one pattern; compilation happens on first use."""

    def _match(document: str) -> List[str]:
        return [m.group(group) for m in re.finditer(pattern, document, flags)]

    _match.__name__ = name
    return _match


def json_block_matcher(document: str) -> List[str]:
    """Image-bearing keys and quoted asset paths inside inline ``{...}`` blobs."""
    found: list[str] = []
    for block_match in JSON_BLOCK_RE.finditer(document):
        block = block_match.group(0).replace("\\/", "/")
        if "image" in block or "img" in block or "photo" in block:
            found.extend(JSON_IMAGE_RE.findall(block))
        found.extend(JSON_ASSET_RE.findall(block))
    return found


def default_matchers() -> list[Matcher]:
    matchers: list[Matcher] = [regex_matcher(*entry) for entry in DOCUMENT_PATTERNS]
    matchers.append(json_block_matcher)
    return matchers


class AssetExtractor:
    """Runs the matcher list over a document and returns normalized asset paths."""

    def __init__(self, base_url: str = "", matchers: Iterable[Matcher] | None = None) -> None:
        self.base_url = base_url
        self.matchers = list(matchers) if matchers is not None else default_matchers()

    def raw_matches(self, document: str) -> list[str]:
        raw: list[str] = []
        for matcher in self.matchers:
            name = getattr(matcher, "__name__", "matcher")
            try:
                raw.extend(matcher(document))
            except re.error as exc:
                logger.error("Extraction pattern %s failed: %s", name, exc)
                EXTRACT_PATTERN_ERRORS_TOTAL.labels(matcher=name).inc()
        return raw

    def extract(self, document: str) -> list[str]:
        """Deduplicated, lexicographically sorted asset paths found in ``document``."""
        if not document:
            return []
        assets: set[str] = set()
        for raw in self.raw_matches(document):
            asset = normalize_asset_url(raw, self.base_url)
            # Quoted directory prefixes (RequireJS baseUrl etc.) are not files.
            if asset and not asset.endswith("/"):
                assets.add(asset)
        return sorted(assets)


def extract_assets(document: str, base_url: str = "") -> list[str]:
    return AssetExtractor(base_url).extract(document)
