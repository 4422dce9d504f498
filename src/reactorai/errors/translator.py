"""Validation outcome translator - turn ledger failures into recovery prompts.

This module converts a failed ledger-data lookup into:
- One kind from a closed taxonomy
- A tailored user-facing message
- The next actions the user can take

Raw collaborator text never reaches the user; it is kept on the outcome
for logging only.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from reactorai.utils.errors import LedgerError


class OutcomeKind(str, Enum):
    """Result of a validation step."""

    OK = "OK"
    BALANCE_FETCH_FAILED = "BALANCE_FETCH_FAILED"
    PAIR_NOT_FOUND = "PAIR_NOT_FOUND"
    PRICE_FETCH_FAILED = "PRICE_FETCH_FAILED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TOKEN_INVALID = "TOKEN_INVALID"


class RecoveryAction(str, Enum):
    """Next actions offered after a failed validation."""

    RETRY = "retry"
    CHANGE_TOKENS = "change_tokens"
    SWITCH_TASK = "switch_task"
    ASK_QUESTION = "ask_question"


RECOVERY_LABELS = {
    RecoveryAction.RETRY: "Try again",
    RecoveryAction.CHANGE_TOKENS: "Choose different tokens",
    RecoveryAction.SWITCH_TASK: "Switch to another automation",
    RecoveryAction.ASK_QUESTION: "Ask a question",
}


@dataclass
class RecoveryPrompt:
    """User-facing text plus the actions offered."""

    message: str
    actions: list[RecoveryAction] = field(default_factory=list)

    @property
    def options(self) -> list[tuple[str, str]]:
        """(value, label) pairs for the response composer."""
        return [(a.value, RECOVERY_LABELS[a]) for a in self.actions]


@dataclass
class ValidationOutcome:
    """Outcome of the validation pipeline."""

    kind: OutcomeKind
    recovery_prompt: Optional[RecoveryPrompt] = None
    detail: Optional[str] = None  # collaborator reason, for logs only


OK = ValidationOutcome(kind=OutcomeKind.OK)


# Lookup step -> kind used when no pattern matches
STEP_DEFAULTS = {
    "balance": OutcomeKind.BALANCE_FETCH_FAILED,
    "position": OutcomeKind.BALANCE_FETCH_FAILED,
    "pair": OutcomeKind.PAIR_NOT_FOUND,
    "price": OutcomeKind.PRICE_FETCH_FAILED,
    "liquidity": OutcomeKind.PRICE_FETCH_FAILED,
    "token": OutcomeKind.TOKEN_INVALID,
}


# Reason patterns, checked in order. Transport trouble wins over the step default.
ERROR_PATTERNS = [
    {
        "pattern": r"(time(d)?\s?out|connection|network (error|down)|unreachable|\brpc\b|server error|"
        r"http 5\d\d|rate.?limit|econnrefused|service unavailable)",
        "kind": OutcomeKind.NETWORK_ERROR,
    },
    {
        "pattern": r"(pair.*(not found|does not exist)|no (trading )?pair|zero liquidity|no liquidity)",
        "kind": OutcomeKind.PAIR_NOT_FOUND,
    },
    {
        "pattern": r"(not an? (valid )?(erc-?20|token)|invalid token|no contract|no bytecode)",
        "kind": OutcomeKind.TOKEN_INVALID,
    },
]


# One message per kind. Placeholders: sell, buy, network, token.
RECOVERY_MESSAGES = {
    OutcomeKind.BALANCE_FETCH_FAILED: RecoveryPrompt(
        message="I couldn't read your {token} balance on {network}. "
        "Make sure the wallet is connected to the right network, then try again.",
        actions=[RecoveryAction.RETRY, RecoveryAction.CHANGE_TOKENS, RecoveryAction.ASK_QUESTION],
    ),
    OutcomeKind.PAIR_NOT_FOUND: RecoveryPrompt(
        message="There is no {sell}/{buy} trading pair with liquidity on {network}. "
        "Pick a different pair of tokens, or try another automation.",
        actions=[
            RecoveryAction.CHANGE_TOKENS,
            RecoveryAction.SWITCH_TASK,
            RecoveryAction.ASK_QUESTION,
        ],
    ),
    OutcomeKind.PRICE_FETCH_FAILED: RecoveryPrompt(
        message="I found the {sell}/{buy} pair but couldn't read its current market data. "
        "You can try again or pick different tokens.",
        actions=[RecoveryAction.RETRY, RecoveryAction.CHANGE_TOKENS, RecoveryAction.ASK_QUESTION],
    ),
    OutcomeKind.NETWORK_ERROR: RecoveryPrompt(
        message="I'm having trouble reaching {network} right now. "
        "Your answers are saved, so you can simply try again in a moment.",
        actions=[RecoveryAction.RETRY, RecoveryAction.SWITCH_TASK, RecoveryAction.ASK_QUESTION],
    ),
    OutcomeKind.TOKEN_INVALID: RecoveryPrompt(
        message="The address {token} is not a token contract I can use on {network}. "
        "Double-check the address or choose one of the supported tokens.",
        actions=[RecoveryAction.CHANGE_TOKENS, RecoveryAction.ASK_QUESTION],
    ),
}


def classify_failure(reason: str, step: str) -> OutcomeKind:
    """Map a collaborator failure reason onto the closed taxonomy.

    Args:
        reason: Failure text reported by the ledger client
        step: Lookup that failed (balance, pair, price, liquidity, token, position)

    Returns:
        The matching OutcomeKind (never OK)
    """
    for pattern_def in ERROR_PATTERNS:
        if re.search(pattern_def["pattern"], reason or "", re.IGNORECASE):
            return pattern_def["kind"]
    return STEP_DEFAULTS.get(step, OutcomeKind.NETWORK_ERROR)


def build_outcome(
    kind: OutcomeKind,
    sell: Optional[str] = None,
    buy: Optional[str] = None,
    network: Optional[str] = None,
    token: Optional[str] = None,
    detail: Optional[str] = None,
) -> ValidationOutcome:
    """Attach the tailored recovery prompt for a kind."""
    if kind == OutcomeKind.OK:
        return OK

    template = RECOVERY_MESSAGES[kind]
    message = template.message.format(
        sell=sell or "selected",
        buy=buy or "target",
        network=network or "the selected network",
        token=token or sell or "token",
    )
    return ValidationOutcome(
        kind=kind,
        recovery_prompt=RecoveryPrompt(message=message, actions=list(template.actions)),
        detail=detail,
    )


def translate_failure(error: LedgerError, **context: Optional[str]) -> ValidationOutcome:
    """Translate a ledger failure into a ValidationOutcome.

    Args:
        error: The failed lookup
        **context: sell / buy / network / token values for the message

    Returns:
        ValidationOutcome carrying the recovery prompt
    """
    kind = classify_failure(error.reason, error.step)
    return build_outcome(kind, detail=error.message, **context)
