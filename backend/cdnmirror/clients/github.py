"""GitHub contents API client used as the mirror's origin repository.

Only three operations are consumed: read file metadata by path, create or
update a file by path, and check that the token can push to the repository.
Every call is one-shot; failures come back as result objects for the caller
to count, never retried here.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from cdnmirror.config import Settings, settings as default_settings
from cdnmirror.errors import ConfigurationError, MirrorError, ParseError, TransportError
from cdnmirror.metrics import REMOTE_REQUESTS_TOTAL, status_class

logger = logging.getLogger(__name__)

USER_AGENT = "CdnMirror-Sync"
ACCEPT = "application/vnd.github.v3+json"
MAX_LOGGED_BODY = 2000


@dataclass(slots=True, frozen=True)
class RemoteFileRef:
    path: str
    content_hash: str | None = None


@dataclass(slots=True)
class MetadataResult:
    """``ref`` is None when the path is absent; ``error`` is set only for hard failures."""

    ref: RemoteFileRef | None = None
    status_code: int = 0
    error: MirrorError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exists(self) -> bool:
        return self.ref is not None and bool(self.ref.content_hash)


@dataclass(slots=True)
class PutResult:
    ok: bool
    status_code: int = 0
    content_hash: str | None = None
    error: MirrorError | None = None


@dataclass(slots=True)
class AccessResult:
    ok: bool
    message: str
    status_code: int = 0


def _short(body: str) -> str:
    return body if len(body) <= MAX_LOGGED_BODY else body[:MAX_LOGGED_BODY] + "…"


class GithubRepository:
    """Thin synchronous client over ``/repos/{owner}/{repo}/contents``."""

    def __init__(
        self,
        cfg: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg or default_settings
        self._transport = transport
        self._client: httpx.Client | None = None

    # ── Lifecycle ──

    def _require_credentials(self) -> None:
        if not self.cfg.GITHUB_TOKEN.strip():
            raise ConfigurationError("GitHub token is not configured")
        if not self.cfg.GITHUB_USERNAME.strip() or not self.cfg.GITHUB_REPOSITORY.strip():
            raise ConfigurationError("GitHub username or repository is not configured")

    def _http(self) -> httpx.Client:
        self._require_credentials()
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.cfg.GITHUB_API_URL.rstrip("/"),
                headers={
                    "Authorization": f"token {self.cfg.GITHUB_TOKEN.strip()}",
                    "User-Agent": USER_AGENT,
                    "Accept": ACCEPT,
                },
                timeout=httpx.Timeout(self.cfg.HTTP_TIMEOUT_S, connect=self.cfg.HTTP_CONNECT_TIMEOUT_S),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "GithubRepository":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.cfg.GITHUB_USERNAME.strip()}/{self.cfg.GITHUB_REPOSITORY.strip()}"

    def _contents_url(self, path: str) -> str:
        return f"{self.repo_path}/contents/{quote(path.lstrip('/'), safe='/')}"

    def _record(self, operation: str, status_code: int) -> None:
        REMOTE_REQUESTS_TOTAL.labels(operation=operation, status_class=status_class(status_code)).inc()

    # ── Operations ──

    def get_metadata(self, path: str) -> MetadataResult:
        """Metadata for ``path`` on the configured branch; 404 is a normal "absent" result."""
        client = self._http()
        logger.debug("Getting repository contents for path: %s", path)
        try:
            resp = client.get(self._contents_url(path), params={"ref": self.cfg.github_branch()})
        except httpx.HTTPError as exc:
            self._record("get_metadata", 0)
            logger.error("Error getting contents from GitHub for %s: %s", path, exc)
            return MetadataResult(error=TransportError(f"Transport error: {exc}"))

        self._record("get_metadata", resp.status_code)
        if resp.status_code == 404:
            logger.debug("Path not found on GitHub: %s", path)
            return MetadataResult(status_code=404)
        if resp.status_code != 200:
            logger.error(
                "Failed to get contents. Status: %s, Response: %s",
                resp.status_code,
                _short(resp.text),
            )
            return MetadataResult(
                status_code=resp.status_code,
                error=TransportError(f"HTTP {resp.status_code}", status_code=resp.status_code, body=resp.text),
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            logger.error("Malformed metadata response for %s: %s", path, exc)
            return MetadataResult(status_code=resp.status_code, error=ParseError("Malformed response"))

        # A directory listing (or a payload without a hash) means no file at this path.
        if not isinstance(payload, dict) or not payload.get("sha"):
            return MetadataResult(status_code=resp.status_code)
        return MetadataResult(
            ref=RemoteFileRef(path=path, content_hash=str(payload["sha"])),
            status_code=resp.status_code,
        )

    def put(self, path: str, content: bytes, message: str, prior_hash: str | None = None) -> PutResult:
        """Create ``path`` or, when ``prior_hash`` is given, update it."""
        client = self._http()
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.cfg.github_branch(),
        }
        if prior_hash:
            body["sha"] = prior_hash
            logger.debug("Updating existing file with SHA: %s", prior_hash)
        else:
            logger.debug("Creating new file: %s", path)

        try:
            resp = client.put(self._contents_url(path), json=body)
        except httpx.HTTPError as exc:
            self._record("put", 0)
            logger.error("Error creating/updating file on GitHub %s: %s", path, exc)
            return PutResult(ok=False, error=TransportError(f"Transport error: {exc}"))

        self._record("put", resp.status_code)
        if resp.status_code not in (200, 201):
            logger.error(
                "Failed to create/update file. Status: %s, Response: %s",
                resp.status_code,
                _short(resp.text),
            )
            return PutResult(
                ok=False,
                status_code=resp.status_code,
                error=TransportError(f"HTTP {resp.status_code}", status_code=resp.status_code, body=resp.text),
            )

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        content = payload.get("content") if isinstance(payload, dict) else None
        content_hash = content.get("sha") if isinstance(content, dict) else None
        logger.info("Successfully created/updated file on GitHub: %s", path)
        return PutResult(ok=True, status_code=resp.status_code, content_hash=content_hash)

    def upload_file(self, local_path: str | Path, remote_path: str) -> PutResult:
        """Create-or-update ``remote_path`` from a local file, looking up its current hash first."""
        local_path = Path(local_path)
        remote_path = remote_path.lstrip("/")
        logger.info("Starting upload of file: %s to %s", local_path, remote_path)
        try:
            content = local_path.read_bytes()
        except OSError as exc:
            logger.error("Failed to read local file %s: %s", local_path, exc)
            return PutResult(ok=False, error=MirrorError(f"Read error: {exc}"))

        current = self.get_metadata(remote_path)
        if not current.ok:
            return PutResult(ok=False, status_code=current.status_code, error=current.error)

        prior_hash = current.ref.content_hash if current.ref else None
        verb = "Update" if prior_hash else "Add"
        return self.put(remote_path, content, f"{verb} {local_path.name} via CDN mirror", prior_hash)

    def test_access(self) -> AccessResult:
        """Succeeds only when the token has push permission on the repository."""
        client = self._http()
        logger.info("Testing GitHub connection for %s", self.repo_path)
        try:
            resp = client.get(self.repo_path)
        except httpx.HTTPError as exc:
            self._record("test_access", 0)
            logger.error("GitHub connection test failed: %s", exc)
            return AccessResult(ok=False, message=f"Connection error: {exc}")

        self._record("test_access", resp.status_code)
        if resp.status_code != 200:
            logger.error("GitHub API error: Status %s, Response: %s", resp.status_code, _short(resp.text))
            return AccessResult(
                ok=False,
                message=f"GitHub API returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            permissions = resp.json().get("permissions") or {}
        except (ValueError, AttributeError):
            logger.error("Failed to parse repository response")
            return AccessResult(ok=False, message="Malformed repository response", status_code=resp.status_code)

        if permissions.get("push") is True:
            logger.info("GitHub permissions test successful: read and write access confirmed")
            return AccessResult(ok=True, message="Connection successful with write access", status_code=200)

        logger.error("GitHub permissions test failed: write access not confirmed (%s)", permissions)
        return AccessResult(
            ok=False,
            message="Token can read the repository but has no write access",
            status_code=resp.status_code,
        )
