"""Font reference validation with fuzzy recovery of rebuilt (re-hashed) files."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from pathlib import Path

from cdnmirror.core.local_files import LocalTree
from cdnmirror.core.urls import FONT_EXTENSIONS, normalize_asset_url, path_extension, resolve_reference

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.7
LARGE_FONT_BYTES = 1024 * 1024

_FONT_SUFFIX_RE = re.compile(r"\.(?:woff2?|ttf|eot|otf)$", re.I)
_VERSION_HASH_RE = re.compile(r"[.-][a-f0-9]{8,}|-v\d+|-\d+", re.I)

CSS_FONT_URL_RE = re.compile(
    r"""url\(\s*['"]?([^'"\)\s]+?\.(?:woff2?|eot|ttf|otf))(?:[?#][^'"\)\s]*)?['"]?\s*\)""",
    re.I,
)


def plain_font_name(file_name: str) -> str:
    """``icon-abc12345.woff2`` → ``icon``; ``roboto-v20.ttf`` → ``roboto``."""
    return _VERSION_HASH_RE.sub("", _FONT_SUFFIX_RE.sub("", file_name))


def name_similarity(a: str, b: str) -> float:
    return SequenceMatcher(None, a, b).ratio()


@dataclass(slots=True)
class FontResolution:
    url: str
    status: str
    alternatives: list[Path] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)


@dataclass(slots=True)
class FontReference:
    """One font referenced by a stylesheet, as seen on disk."""

    url: str
    exists: bool
    alternatives: list[Path] = field(default_factory=list)


class FontResolver:
    def __init__(self, tree: LocalTree, base_url: str = "") -> None:
        self.tree = tree
        self.base_url = base_url

    def resolve(self, url: str) -> FontResolution:
        """Classify one font reference.

        Status is one of ``skipped``, ``error``, ``corrected``, ``healthy``,
        ``warning_large_file`` or ``error_empty_file``.
        """
        path = normalize_asset_url(url, self.base_url) or url.split("?", 1)[0]
        if path_extension(path) not in FONT_EXTENSIONS:
            return FontResolution(url=url, status="skipped", issues=["Not a font file"])

        local = self.tree.local_path(path)
        if local is None:
            return FontResolution(url=url, status="error", issues=["Could not determine local path"])

        if not local.is_file():
            alternatives = self.find_alternatives(local)
            if alternatives:
                return FontResolution(
                    url=url,
                    status="corrected",
                    alternatives=alternatives,
                    issues=["Original file not found, alternatives suggested"],
                )
            return FontResolution(
                url=url,
                status="error",
                issues=["File not found and no alternatives available"],
            )

        return FontResolution(url=url, status=self.health_check(local))

    @staticmethod
    def health_check(local: Path) -> str:
        size = local.stat().st_size
        if size == 0:
            return "error_empty_file"
        if size > LARGE_FONT_BYTES:
            return "warning_large_file"
        return "healthy"

    @staticmethod
    def find_alternatives(missing: Path) -> list[Path]:
        """Font files next to ``missing`` whose plain names are more than 70% similar."""
        directory = missing.parent
        if not directory.is_dir():
            return []

        wanted = plain_font_name(missing.name)
        alternatives: list[Path] = []
        try:
            siblings = sorted(directory.iterdir())
        except OSError as exc:
            logger.error("Error finding font alternatives: %s", exc)
            return []

        for sibling in siblings:
            if not sibling.is_file() or path_extension(sibling.name) not in FONT_EXTENSIONS:
                continue
            if name_similarity(wanted, plain_font_name(sibling.name)) > SIMILARITY_THRESHOLD:
                alternatives.append(sibling)
        return alternatives

    def scan_css(self, css_text: str, css_url: str) -> list[str]:
        """Normalized font paths referenced by a stylesheet, first-seen order.

        Relative references resolve against the stylesheet's own URL.
        """
        fonts: list[str] = []
        for match in CSS_FONT_URL_RE.finditer(css_text or ""):
            ref = match.group(1)
            if ref.startswith("data:"):
                continue
            if not ref.startswith("/") and "://" not in ref:
                ref = resolve_reference(ref, css_url)
            path = normalize_asset_url(ref, self.base_url)
            if path and path not in fonts:
                fonts.append(path)
        return fonts

    def check_stylesheet(self, css_url: str) -> list[FontReference]:
        """Every font the local copy of ``css_url`` references, with alternatives for missing ones."""
        css_path = normalize_asset_url(css_url, self.base_url)
        local_css = self.tree.local_path(css_path) if css_path else None
        if local_css is None or not local_css.is_file():
            return []

        try:
            css_text = local_css.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.error("Error scanning CSS for fonts: %s", exc)
            return []

        references: list[FontReference] = []
        for font_url in self.scan_css(css_text, css_path):
            local_font = self.tree.local_path(font_url)
            if local_font is not None and local_font.is_file():
                references.append(FontReference(url=font_url, exists=True))
                continue
            alternatives = self.find_alternatives(local_font) if local_font is not None else []
            references.append(FontReference(url=font_url, exists=False, alternatives=alternatives))

        missing = sum(1 for ref in references if not ref.exists)
        if missing:
            logger.info("Stylesheet %s references %s missing font(s)", css_path, missing)
        return references
