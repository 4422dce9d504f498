"""Error handling for reactorai.

Maps failed ledger lookups onto a closed set of outcomes with recovery prompts.
"""

from reactorai.errors.translator import (
    OK,
    RECOVERY_MESSAGES,
    OutcomeKind,
    RecoveryAction,
    RecoveryPrompt,
    ValidationOutcome,
    build_outcome,
    classify_failure,
    translate_failure,
)

__all__ = [
    "OK",
    "RECOVERY_MESSAGES",
    "OutcomeKind",
    "RecoveryAction",
    "RecoveryPrompt",
    "ValidationOutcome",
    "build_outcome",
    "classify_failure",
    "translate_failure",
]
