"""Exception hierarchy for the Hyperliquid SDK."""

import asyncio
from typing import Any, Optional


class HyperliquidError(Exception):
    """Base exception for all SDK errors."""
    pass


class InvalidCredentialError(HyperliquidError):
    """Raised when a signed action is attempted with a missing or malformed key."""
    pass


class TransportError(HyperliquidError):
    """Raised when a request fails at the network level after all retries."""

    def __init__(self, message: str, attempts: int = 0, status: Optional[int] = None):
        super().__init__(message)
        self.attempts = attempts
        self.status = status


class DecodeError(HyperliquidError):
    """Raised when a response body does not match the expected shape."""

    def __init__(self, message: str, body: Any = None):
        super().__init__(message)
        self.body = body


class ExchangeAPIError(HyperliquidError):
    """Raised when the exchange rejects a request (4xx or an error status)."""

    def __init__(self, status: int, message: str, body: Any = None):
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.body = body


class WebSocketError(HyperliquidError):
    """Base exception for WebSocket related errors."""
    pass


class WebSocketConnectionError(WebSocketError):
    """Raised when the WebSocket handshake fails."""
    pass


class StreamClosedError(WebSocketError):
    """Reported when the stream closed and could not be re-established."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class RequestCancelledError(asyncio.CancelledError):
    """Raised when the caller cancels a pending dispatch.

    Subclasses ``asyncio.CancelledError`` so task cancellation keeps its usual
    semantics; it is not a ``HyperliquidError``.
    """
    pass
