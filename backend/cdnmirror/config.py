"""Centralised settings. Reads .env / env vars via pydantic-settings."""
from __future__ import annotations

import re

from pydantic_settings import BaseSettings, SettingsConfigDict

_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")

DEFAULT_FILE_TYPES = "css,js,png,jpg,jpeg,gif,svg,webp,woff,woff2,ttf,eot"


class Settings(BaseSettings):
    """All configuration for the CDN mirror, sourced from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── App ──
    APP_ENV: str = "development"
    APP_LOG_LEVEL: str = "INFO"
    APP_LOG_FILE: str = ""
    APP_CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # ── General ──
    CDN_ENABLED: bool = True
    CDN_DEBUG: bool = False

    # ── GitHub repository (the mirror origin) ──
    GITHUB_USERNAME: str = ""
    GITHUB_REPOSITORY: str = ""
    GITHUB_BRANCH: str = "main"
    GITHUB_TOKEN: str = ""
    GITHUB_API_URL: str = "https://api.github.com"

    # ── CDN ──
    CDN_BASE_HOST: str = "https://cdn.jsdelivr.net"
    CDN_PURGE_URL: str = "https://purge.jsdelivr.net"
    CDN_FILE_TYPES: str = DEFAULT_FILE_TYPES
    CDN_EXCLUDED_PATHS: str = ""
    CDN_CUSTOM_URLS: str = ""
    CDN_SPECIFIC_URL: str = ""

    # ── Storefront ──
    STORE_BASE_URL: str = ""
    STORE_SECURE_BASE_URL: str = ""
    STATIC_DIR: str = "pub/static"
    MEDIA_DIR: str = "pub/media"

    # ── HTTP (seconds) ──
    HTTP_TIMEOUT_S: float = 30.0
    HTTP_CONNECT_TIMEOUT_S: float = 10.0

    # ── Sync ──
    VALIDATE_DELAY_S: float = 0.1
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # ── Tracing (empty endpoint disables OpenTelemetry) ──
    OTEL_EXPORTER_OTLP_ENDPOINT: str = ""
    OTEL_SERVICE_NAME: str = "cdn-mirror-api"

    def github_branch(self) -> str:
        return self.GITHUB_BRANCH.strip() or "main"

    def has_github_credentials(self) -> bool:
        return bool(
            self.GITHUB_USERNAME.strip()
            and self.GITHUB_REPOSITORY.strip()
            and self.GITHUB_TOKEN.strip()
        )

    def cdn_base_url(self) -> str:
        """jsDelivr-style base URL for the mirror, empty when not configured."""
        username = self.GITHUB_USERNAME.strip()
        repository = self.GITHUB_REPOSITORY.strip()
        if not username or not repository:
            return ""
        host = self.CDN_BASE_HOST.rstrip("/")
        return f"{host}/gh/{username}/{repository}@{self.github_branch()}/"

    def file_types(self) -> list[str]:
        types = [t.strip().lower().lstrip(".") for t in self.CDN_FILE_TYPES.split(",")]
        types = [t for t in types if t]
        return types or ["css", "js"]

    def excluded_paths(self) -> list[str]:
        return [p.strip() for p in _LINE_SPLIT_RE.split(self.CDN_EXCLUDED_PATHS) if p.strip()]

    def custom_urls(self) -> list[str]:
        """Configured URL list in declared order (blank lines dropped)."""
        return [u.strip() for u in _LINE_SPLIT_RE.split(self.CDN_CUSTOM_URLS) if u.strip()]


settings = Settings()
