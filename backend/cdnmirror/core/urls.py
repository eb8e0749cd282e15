"""URL normalization shared by the extractor, the sync engine and the rewriter.

Every raw reference goes through ``normalize_asset_url`` so the same input
always lands on the same canonical key.
"""
from __future__ import annotations

import hashlib
import posixpath
from urllib.parse import urljoin, urlsplit

ROOT_PREFIXES = ("/static/", "/media/")
MERGED_BUCKETS = ("/_cache/merged/", "/_cache/minified/")
FONT_EXTENSIONS = frozenset({"woff", "woff2", "ttf", "eot", "otf"})
IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg"})
STATIC_FILE_EXTENSIONS = frozenset(
    {"css", "js", "jpg", "jpeg", "png", "gif", "svg", "webp", "woff", "woff2", "ttf", "eot"}
)


def site_host(base_url: str | None) -> str:
    if not base_url:
        return ""
    try:
        return (urlsplit(base_url).hostname or "").lower()
    except ValueError:
        return ""


def normalize_asset_url(raw: str | None, base_url: str | None = None) -> str:
    """Return the canonical ``/static/…`` or ``/media/…`` path, or ``""`` to reject.

    Absolute URLs on a host other than ``base_url``'s are rejected. Without a
    base URL any host is accepted.
    """
    value = str(raw or "").strip()
    if not value or value.startswith("data:"):
        return ""

    if value.startswith("//"):
        value = "http:" + value
    if value.lower().startswith(("http://", "https://")):
        try:
            parsed = urlsplit(value)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return ""
        own_host = site_host(base_url)
        if own_host and host != own_host:
            return ""
        value = parsed.path

    value = value.split("?", 1)[0]
    value = value.split("#", 1)[0]
    if not value.startswith("/"):
        value = "/" + value
    if not value.startswith(ROOT_PREFIXES):
        return ""
    return value


def is_asset_path(path: str) -> bool:
    return bool(path) and path.startswith(ROOT_PREFIXES)


def split_root(path: str) -> tuple[str, str]:
    """Split ``/static/a/b.css`` into ``("static", "a/b.css")``."""
    for prefix in ROOT_PREFIXES:
        if path.startswith(prefix):
            return prefix.strip("/"), path[len(prefix):]
    return "", ""


def strip_root_prefix(path: str) -> str:
    return split_root(path)[1]


def cdn_url_for(path: str, cdn_base_url: str) -> str:
    """Mirror URL for an asset path; no double slashes at the join."""
    relative = strip_root_prefix(path)
    if not relative or not cdn_base_url:
        return ""
    return cdn_base_url.rstrip("/") + "/" + relative.lstrip("/")


def fingerprint(path: str) -> str:
    return hashlib.md5(path.encode("utf-8")).hexdigest()


def path_extension(url: str) -> str:
    path = url.split("?", 1)[0].split("#", 1)[0]
    if "://" in path:
        path = "/" + path.split("://", 1)[1].partition("/")[2]
    ext = posixpath.splitext(path)[1]
    return ext[1:].lower() if ext else ""


def has_static_extension(url: str) -> bool:
    return path_extension(url) in STATIC_FILE_EXTENSIONS


def is_merged_bundle(path: str) -> bool:
    return any(bucket in path for bucket in MERGED_BUCKETS)


def resolve_reference(ref: str, document_url: str) -> str:
    """Resolve a reference found inside a document (page or stylesheet) against its URL.

    Malformed references resolve to ``""``.
    """
    try:
        return urljoin(document_url, ref.strip())
    except ValueError:
        return ""
