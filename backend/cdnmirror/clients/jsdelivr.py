"""jsDelivr purge client: one fire-and-forget call for the whole repository namespace."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from cdnmirror.config import Settings, settings as default_settings
from cdnmirror.errors import ConfigurationError, TransportError
from cdnmirror.metrics import PURGE_ATTEMPTS_TOTAL

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PurgeResult:
    ok: bool
    url: str
    status_code: int = 0
    error: TransportError | None = None


class JsdelivrPurger:
    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self._transport = transport

    def purge_url(self) -> str:
        username = self.cfg.GITHUB_USERNAME.strip()
        repository = self.cfg.GITHUB_REPOSITORY.strip()
        if not username or not repository:
            raise ConfigurationError("GitHub configuration is incomplete")
        base = self.cfg.CDN_PURGE_URL.rstrip("/")
        return f"{base}/gh/{username}/{repository}@{self.cfg.github_branch()}/"

    def purge_all(self) -> PurgeResult:
        url = self.purge_url()
        logger.info("Purging all files from jsDelivr using URL: %s", url)
        timeout = httpx.Timeout(self.cfg.HTTP_TIMEOUT_S, connect=self.cfg.HTTP_CONNECT_TIMEOUT_S)
        try:
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                resp = client.get(url)
        except httpx.HTTPError as exc:
            PURGE_ATTEMPTS_TOTAL.labels(outcome="error").inc()
            logger.error("Error purging jsDelivr cache: %s", exc)
            return PurgeResult(ok=False, url=url, error=TransportError(str(exc)))

        if 200 <= resp.status_code < 300:
            PURGE_ATTEMPTS_TOTAL.labels(outcome="ok").inc()
            logger.info("Successfully purged jsDelivr cache")
            return PurgeResult(ok=True, url=url, status_code=resp.status_code)

        PURGE_ATTEMPTS_TOTAL.labels(outcome="http_error").inc()
        logger.error("jsDelivr purge failed. Status: %s, Response: %s", resp.status_code, resp.text[:2000])
        return PurgeResult(
            ok=False,
            url=url,
            status_code=resp.status_code,
            error=TransportError(f"HTTP {resp.status_code}", status_code=resp.status_code, body=resp.text),
        )
