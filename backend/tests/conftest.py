from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from cdnmirror.config import Settings


@pytest.fixture()
def site_tree(tmp_path: Path) -> tuple[Path, Path]:
    static_dir = tmp_path / "pub" / "static"
    media_dir = tmp_path / "pub" / "media"
    static_dir.mkdir(parents=True)
    media_dir.mkdir(parents=True)
    return static_dir, media_dir


@pytest.fixture()
def cfg(site_tree: tuple[Path, Path]) -> Settings:
    static_dir, media_dir = site_tree
    return Settings(
        _env_file=None,
        CDN_ENABLED=True,
        GITHUB_USERNAME="acme",
        GITHUB_REPOSITORY="repo",
        GITHUB_TOKEN="ghp_test",
        GITHUB_BRANCH="main",
        STORE_BASE_URL="https://shop.example/",
        STORE_SECURE_BASE_URL="https://shop.example/",
        STATIC_DIR=str(static_dir),
        MEDIA_DIR=str(media_dir),
        VALIDATE_DELAY_S=0.0,
    )


def _write_file(root: Path, relative: str, content: bytes = b"x") -> Path:
    target = root / relative
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(content)
    return target


@pytest.fixture()
def write_file() -> Callable[..., Path]:
    return _write_file
