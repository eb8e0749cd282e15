"""Error taxonomy shared by the crawler, the sync engine and the service layer."""
from __future__ import annotations


class MirrorError(Exception):
    """Base class for all CDN mirror errors."""


class ConfigurationError(MirrorError):
    """Missing credentials or base configuration; raised before any request is made."""


class NotFoundError(MirrorError):
    """A remote path or local file does not exist."""


class TransportError(MirrorError):
    """Timeout, DNS failure or unexpected status from a remote endpoint."""

    def __init__(self, message: str, *, status_code: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ParseError(MirrorError):
    """Malformed JSON payload or pattern; isolated to one item."""
