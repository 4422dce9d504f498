"""Utilities for reactorai."""

from reactorai.utils.errors import (
    ErrorCategory,
    LedgerError,
    ReactorError,
    StateError,
    classify_error,
)

__all__ = ["ErrorCategory", "ReactorError", "LedgerError", "StateError", "classify_error"]
