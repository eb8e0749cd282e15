"""Mapping between asset paths and the storefront's local static/media trees."""
from __future__ import annotations

from pathlib import Path

from cdnmirror.config import Settings
from cdnmirror.core.urls import normalize_asset_url, split_root


class LocalTree:
    """Resolves ``/static/…`` and ``/media/…`` paths to files on disk and back."""

    def __init__(self, static_dir: str | Path, media_dir: str | Path) -> None:
        self.roots = {
            "static": Path(static_dir).resolve(),
            "media": Path(media_dir).resolve(),
        }

    @classmethod
    def from_settings(cls, cfg: Settings) -> "LocalTree":
        return cls(cfg.STATIC_DIR, cfg.MEDIA_DIR)

    def local_path(self, url: str) -> Path | None:
        """Local file for an asset URL, or None when it falls outside both trees."""
        path = normalize_asset_url(url)
        root_name, relative = split_root(path)
        if not root_name or not relative:
            return None
        root = self.roots[root_name]
        candidate = (root / relative).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    def remote_path(self, local: str | Path) -> str:
        """Repository path for a local file: relative to its tree, else the bare file name."""
        local = Path(local).resolve()
        for root in self.roots.values():
            if root in local.parents:
                return local.relative_to(root).as_posix()
        return local.name
