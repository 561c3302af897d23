from __future__ import annotations

from typing import Optional


class StreamError(Exception):
    """Base class for everything the market-data client can fail with."""


class FetchError(StreamError):
    """REST transport failure or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(StreamError):
    """Payload did not have the expected shape (REST batch or one stream message)."""


class TransportError(StreamError):
    """WebSocket connect or read failure."""


class TransportClosed(StreamError):
    """WebSocket closed, either by us or by the server."""
