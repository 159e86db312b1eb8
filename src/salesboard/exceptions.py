"""Custom exception hierarchy for salesboard."""

from __future__ import annotations


class BoardError(Exception):
    """Base exception for all salesboard errors."""


class BoardConfigError(BoardError):
    """Invalid or missing configuration."""


class BoardStoreError(BoardError):
    """Durable store failure (network, non-2xx, I/O, invalid document).

    Raised by every persistence adapter.  The protocol handler logs it and
    turns it into a boolean success flag; nothing retries automatically.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class BoardProtocolError(BoardError):
    """Inbound frame could not be decoded into a known message."""

    def __init__(self, message: str, *, reason: str) -> None:
        self.reason = reason
        super().__init__(message)
