"""Internal exception types for reactorai."""

from enum import Enum
from typing import Optional

import httpx


class ErrorCategory(Enum):
    """Broad categories of internal failures."""

    NETWORK = "network"
    AUTH = "authentication"
    LEDGER = "ledger"
    STATE = "state"
    UNKNOWN = "unknown"


class ReactorError(Exception):
    """Base exception for reactorai errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        suggestion: Optional[str] = None,
        original: Optional[Exception] = None,
    ):
        self.message = message
        self.category = category
        self.suggestion = suggestion
        self.original = original
        super().__init__(message)


class LedgerError(ReactorError):
    """A ledger-data lookup failed.

    ``reason`` is the collaborator's failure text and ``step`` names the
    lookup that failed (balance, pair, price, liquidity, token, position).
    """

    def __init__(self, reason: str, step: str, original: Optional[Exception] = None):
        self.reason = reason
        self.step = step
        category = ErrorCategory.NETWORK if isinstance(original, httpx.TransportError) else ErrorCategory.LEDGER
        super().__init__(f"{step} lookup failed: {reason}", category=category, original=original)


class StateError(ReactorError):
    """Conversation state is missing required context or violates its schema."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message, category=ErrorCategory.STATE, suggestion=suggestion)


def classify_error(error: Exception) -> str:
    """Turn an HTTP client exception into a ledger failure reason.

    Args:
        error: The exception raised by httpx

    Returns:
        A short reason string suitable for :class:`LedgerError`
    """
    if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout, ConnectionError)):
        return "connection failed"

    if isinstance(error, httpx.TimeoutException):
        return "request timed out"

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 404:
            return "not found"
        if status in (401, 403):
            return "unauthorized"
        if status == 429:
            return "rate limited"
        if status >= 500:
            return f"server error (HTTP {status})"
        return f"request rejected (HTTP {status})"

    if isinstance(error, httpx.TransportError):
        return "network unreachable"

    return str(error) or error.__class__.__name__
