"""One-way reconcile of local static/media files into the mirror repository.

Presence-based: a path that already exists remotely is never re-uploaded,
whatever its content. Every input URL lands in exactly one of uploaded,
exists, failed or skipped; font corrections are tallied on the side.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Protocol

from cdnmirror.config import Settings, settings as default_settings
from cdnmirror.core.fonts import FontResolver
from cdnmirror.core.local_files import LocalTree
from cdnmirror.core.urls import (
    IMAGE_EXTENSIONS,
    is_merged_bundle,
    normalize_asset_url,
    path_extension,
    strip_root_prefix,
)
from cdnmirror.metrics import FONT_CORRECTIONS_TOTAL, SYNC_ITEMS_TOTAL

logger = logging.getLogger(__name__)

SMALL_FILE_BYTES = 50 * 1024
LARGE_FILE_BYTES = 2 * 1024 * 1024
OPTIMAL_PATH_PATTERNS = (
    "/static/frontend/*/css/",
    "/static/frontend/*/js/",
    "/static/frontend/*/fonts/",
    "/static/frontend/*/images/",
    "/media/catalog/",
    "/media/wysiwyg/",
    "/static/_cache/merged/",
    "/static/_cache/minified/",
)
_OPTIMAL_PATH_RES = tuple(
    re.compile("^" + re.escape(p).replace(r"\*", ".*")) for p in OPTIMAL_PATH_PATTERNS
)


class SyncStatus(str, Enum):
    UPLOADED = "uploaded"
    EXISTS = "exists"
    FAILED = "failed"
    SKIPPED = "skipped"
    FONT_CORRECTED = "font_corrected"


class RemoteStore(Protocol):
    def get_metadata(self, path: str) -> Any: ...

    def put(self, path: str, content: bytes, message: str, prior_hash: str | None = None) -> Any: ...

    def upload_file(self, local_path: str | Path, remote_path: str) -> Any: ...


@dataclass(slots=True)
class SyncItem:
    url: str
    status: SyncStatus
    message: str
    alternatives: list[str] = field(default_factory=list)


@dataclass
class SyncResult:
    total: int = 0
    uploaded: int = 0
    failed: int = 0
    exists: int = 0
    skipped: int = 0
    font_corrections: int = 0
    partial: bool = False
    details: list[SyncItem] = field(default_factory=list)

    def record(self, url: str, status: SyncStatus, message: str, *, mode: str = "reconcile") -> None:
        """Record the single main outcome for one input URL."""
        self.total += 1
        if status is SyncStatus.UPLOADED:
            self.uploaded += 1
        elif status is SyncStatus.EXISTS:
            self.exists += 1
        elif status is SyncStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
        self.details.append(SyncItem(url=url, status=status, message=message))
        SYNC_ITEMS_TOTAL.labels(mode=mode, status=status.value).inc()

    def record_font_correction(self, url: str, message: str, alternatives: Iterable[str] = ()) -> None:
        self.font_corrections += 1
        self.details.append(
            SyncItem(url=url, status=SyncStatus.FONT_CORRECTED, message=message, alternatives=list(alternatives))
        )
        FONT_CORRECTIONS_TOTAL.inc()

    @property
    def processed(self) -> int:
        return self.total

    def summary(self) -> str:
        text = (
            f"Processed {self.total} URLs: {self.uploaded} uploaded, {self.exists} already on GitHub, "
            f"{self.failed} failed, {self.skipped} skipped, {self.font_corrections} font corrections"
        )
        if self.partial:
            text += " (stopped early: deadline reached)"
        return text

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["processed"] = self.total
        data["already_on_github"] = self.exists
        data["details"] = [
            {**asdict(item), "status": item.status.value} for item in self.details
        ]
        data["message"] = self.summary()
        return data


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


class SyncEngine:
    def __init__(
        self,
        remote: RemoteStore,
        cfg: Settings | None = None,
        *,
        tree: LocalTree | None = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self.remote = remote
        self.tree = tree or LocalTree.from_settings(self.cfg)
        self.base_url = self.cfg.STORE_BASE_URL
        self.fonts = FontResolver(self.tree, self.base_url)

    # ── Reconcile (presence-based) ──

    def reconcile(self, urls: Iterable[str], *, deadline: float | None = None) -> SyncResult:
        """Upload each local asset the remote lacks, in input order."""
        result = SyncResult()
        for url in urls:
            if _expired(deadline):
                result.partial = True
                logger.warning("Sync deadline reached after %s items; returning partial results", result.total)
                break
            self._reconcile_one(url, result)
        logger.info("URL validation completed: %s", result.summary())
        return result

    def _reconcile_one(self, url: str, result: SyncResult) -> None:
        path = normalize_asset_url(url, self.base_url)
        if not path:
            result.record(url, SyncStatus.SKIPPED, "Not a static or media URL")
            return

        local = self.tree.local_path(path)
        if local is None:
            result.record(url, SyncStatus.FAILED, "Could not determine local path for URL")
            return

        if path_extension(path) == "css":
            self._upload_font_alternatives(path, result)

        if not local.is_file():
            result.record(url, SyncStatus.FAILED, f"File not found locally: {local}")
            return

        remote_path = strip_root_prefix(path)
        current = self.remote.get_metadata(remote_path)
        if not current.ok:
            result.record(url, SyncStatus.FAILED, f"Could not check GitHub: {current.error}")
            return
        if current.exists:
            result.record(url, SyncStatus.EXISTS, "File already exists on GitHub")
            return

        try:
            content = local.read_bytes()
        except OSError as exc:
            logger.error("Failed to read local file %s: %s", local, exc)
            result.record(url, SyncStatus.FAILED, f"Could not read local file: {local}")
            return

        put = self.remote.put(remote_path, content, f"Add {local.name} via CDN mirror")
        if put.ok:
            result.record(url, SyncStatus.UPLOADED, "Successfully uploaded to GitHub")
        else:
            result.record(url, SyncStatus.FAILED, f"Failed to upload to GitHub: {put.error}")

    def _upload_font_alternatives(self, css_path: str, result: SyncResult) -> None:
        for ref in self.fonts.check_stylesheet(css_path):
            if ref.exists or not ref.alternatives:
                continue
            for alternative in ref.alternatives:
                remote_path = self.tree.remote_path(alternative)
                current = self.remote.get_metadata(remote_path)
                if not current.ok or current.exists:
                    continue
                try:
                    content = alternative.read_bytes()
                except OSError as exc:
                    logger.error("Failed to read font alternative %s: %s", alternative, exc)
                    continue
                put = self.remote.put(remote_path, content, f"Add {alternative.name} via CDN mirror")
                if put.ok:
                    result.record_font_correction(
                        ref.url, f"Font alternative uploaded: {alternative.name}", [remote_path]
                    )
                else:
                    logger.error("Failed to upload font alternative %s for %s", alternative.name, ref.url)

    # ── Explicit batches ──

    def upload_batch(self, urls: Iterable[str]) -> SyncResult:
        """Create-or-update every listed asset, whether or not it is already remote."""
        result = SyncResult()
        max_bytes = self.cfg.MAX_UPLOAD_BYTES
        for url in urls:
            path = normalize_asset_url(url, self.base_url)
            local = self.tree.local_path(path) if path else None
            if local is None:
                logger.warning("Unsupported URL format: %s", url)
                result.record(url, SyncStatus.SKIPPED, "Unsupported URL format.", mode="upload")
                continue
            if not local.is_file():
                logger.error("File not found: %s", local)
                result.record(url, SyncStatus.FAILED, f"File not found: {local}", mode="upload")
                continue

            size = local.stat().st_size
            if size > max_bytes:
                logger.warning("File too large: %s (%s bytes)", local, size)
                result.record(
                    url,
                    SyncStatus.FAILED,
                    f"File too large: {local} (max size: {max_bytes // (1024 * 1024)}MB)",
                    mode="upload",
                )
                continue
            if size == 0:
                logger.warning("File is empty: %s", local)
                result.record(url, SyncStatus.FAILED, f"File is empty: {local}", mode="upload")
                continue

            put = self.remote.upload_file(local, strip_root_prefix(path))
            if put.ok:
                logger.info("Successfully uploaded %s to GitHub", url)
                result.record(url, SyncStatus.UPLOADED, "Successfully uploaded to GitHub", mode="upload")
            else:
                logger.error("Failed to upload %s to GitHub", url)
                result.record(
                    url,
                    SyncStatus.FAILED,
                    "Failed to upload to GitHub. Check logs for details.",
                    mode="upload",
                )
        return result

    def validate_batch(self, urls: Iterable[str]) -> SyncResult:
        """Remote check, then font recovery, then upload; paced for the remote's rate limits."""
        result = SyncResult()
        for url in urls:
            self._validate_one(url, result)
            time.sleep(self.cfg.VALIDATE_DELAY_S)
        return result

    def _validate_one(self, url: str, result: SyncResult) -> None:
        path = normalize_asset_url(url, self.base_url)
        if not path:
            result.record(url, SyncStatus.SKIPPED, "Not a static or media URL", mode="validate")
            return

        remote_path = strip_root_prefix(path)
        current = self.remote.get_metadata(remote_path)
        if not current.ok:
            result.record(url, SyncStatus.FAILED, f"Could not check GitHub: {current.error}", mode="validate")
            return
        if current.exists:
            result.record(url, SyncStatus.EXISTS, "File already exists on GitHub", mode="validate")
            return

        font = self.fonts.resolve(path)
        if font.status == "corrected":
            local = font.alternatives[0]
            result.record_font_correction(
                url,
                "Font file corrected: " + ", ".join(font.issues),
                [self.tree.remote_path(alt) for alt in font.alternatives],
            )
        elif font.status == "error":
            result.record(
                url,
                SyncStatus.FAILED,
                "Font file validation failed: " + ", ".join(font.issues),
                mode="validate",
            )
            return
        else:
            local = self.tree.local_path(path)

        if local is None:
            result.record(url, SyncStatus.FAILED, "Could not determine local path for URL", mode="validate")
            return
        if not local.is_file():
            result.record(url, SyncStatus.FAILED, f"File not found locally: {local}", mode="validate")
            return

        put = self.remote.upload_file(local, remote_path)
        if put.ok:
            result.record(url, SyncStatus.UPLOADED, "Successfully uploaded to GitHub", mode="validate")
        else:
            result.record(url, SyncStatus.FAILED, "Failed to upload to GitHub", mode="validate")


def is_path_optimal_for_cdn(url_path: str, tree: LocalTree) -> bool:
    """Whether an asset is worth serving from the mirror rather than the origin."""
    if is_merged_bundle(url_path):
        return True

    local = tree.local_path(url_path)
    if local is not None and local.is_file():
        size = local.stat().st_size
        if size < SMALL_FILE_BYTES and path_extension(url_path) not in IMAGE_EXTENSIONS:
            return False
        if size > LARGE_FILE_BYTES:
            return True

    return any(pattern.match(url_path) for pattern in _OPTIMAL_PATH_RES)
