# ffnews/errors.py
from __future__ import annotations
from typing import Optional


class IngestError(Exception):
    """Base class for pipeline errors."""


class TransientFetchError(IngestError):
    """Timeout, transport failure, 429 or 5xx after the retry budget is spent."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        msg = f"fetch failed for {url}"
        if status is not None:
            msg += f" (HTTP {status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ParseError(IngestError):
    """Feed or markup that stays unreadable after one sanitize pass."""


class ConfigurationError(IngestError):
    """An explicitly requested method lacks the configuration it needs."""


class PersistenceError(IngestError):
    """Unexpected store failure. Aborts the current item only."""
