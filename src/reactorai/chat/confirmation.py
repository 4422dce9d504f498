"""Yes/no/cancel detection for confirmation steps."""

import re
from enum import Enum

from reactorai.chat.intents import match_task_creation


class Resolution(str, Enum):
    """Reading of a reply to a yes/no question."""

    CONFIRM = "confirm"
    REJECT = "reject"
    CANCEL = "cancel"
    NONE = "none"


CONFIRM_ANCHOR = (
    r"^\s*(?:yes|yeah|yep|yup|y|sure|ok|okay|confirm(?:ed)?|correct|proceed|go ahead|do it|looks good|sounds good|deploy)\b"
)
REJECT_ANCHOR = r"^\s*(?:no|nope|nah|n)\b"

# Signals anywhere in the reply, used when it doesn't open with yes or no
CONFIRM_PATTERNS = [
    r"\b(?:i confirm|let'?s do it|let'?s go|go for it|that'?s right|i accept|accept the risk)\b",
]

CANCEL_PATTERNS = [
    r"\b(?:cancel|abort|start over|never ?mind|forget it|quit)\b",
]

REJECT_PATTERNS = [
    r"\b(?:don'?t|do not|stop|decline|reject|not now|wrong|incorrect|change it|go back)\b",
]


def _any(patterns: list[str], text: str) -> bool:
    return any(re.search(p, text) for p in patterns)


class ConfirmationResolver:
    """Reads affirmative, negative and cancel signals.

    A leading yes or no decides the reply ("yes, I don't need changes"
    confirms). Without one, a reply carrying both affirmative and negative
    signals is unclear. A message that also reads as a task creation phrase
    ("don't let my ETH drop, set a stop loss") is never negative.
    """

    def resolve(self, text: str) -> Resolution:
        """Classify a reply to a yes/no question.

        Args:
            text: Raw user message

        Returns:
            CONFIRM, REJECT, CANCEL, or NONE when the reply is unclear
        """
        lowered = text.lower().strip()
        if not lowered:
            return Resolution.NONE

        creates_task = match_task_creation(lowered) is not None
        cancel = _any(CANCEL_PATTERNS, lowered) and not creates_task

        if re.search(REJECT_ANCHOR, lowered) and not creates_task:
            return Resolution.CANCEL if cancel else Resolution.REJECT
        if re.search(CONFIRM_ANCHOR, lowered):
            # "yes, cancel it" says both
            return Resolution.NONE if cancel else Resolution.CONFIRM

        negative = cancel or (_any(REJECT_PATTERNS, lowered) and not creates_task)
        positive = _any(CONFIRM_PATTERNS, lowered)
        if positive and negative:
            return Resolution.NONE
        if cancel:
            return Resolution.CANCEL
        if negative:
            return Resolution.REJECT
        if positive:
            return Resolution.CONFIRM
        return Resolution.NONE
