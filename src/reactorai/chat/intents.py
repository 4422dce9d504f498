"""Intent classification for reactorai.

Deterministic, ordered pattern matching; the first rule that matches wins:
1. Declined queries (live balance/price/portfolio lookups we do not answer)
2. Switching to the other task while one is active
3. Starting a stop order, then starting Aave protection
4. Open questions about the platform or concepts
5. Continuing the active task, or unknown
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from reactorai.chat.context import TaskType


class IntentType(str, Enum):
    """What a single user turn is trying to do."""

    DECLINED = "declined"
    SWITCH_TASK = "switch_task"
    START_STOP_ORDER = "start_stop_order"
    START_AAVE_PROTECTION = "start_aave_protection"
    QUESTION = "question"
    CONTINUE = "continue"
    UNKNOWN = "unknown"


START_INTENTS = {
    TaskType.STOP_ORDER: IntentType.START_STOP_ORDER,
    TaskType.AAVE_PROTECTION: IntentType.START_AAVE_PROTECTION,
}


@dataclass
class Intent:
    """A classified user turn."""

    type: IntentType
    raw_input: str
    task: Optional[TaskType] = None  # task to start or switch to
    declined_topic: Optional[str] = None

    def __str__(self) -> str:
        parts = [f"Intent({self.type.value}"]
        if self.task:
            parts.append(f", task={self.task.value}")
        if self.declined_topic:
            parts.append(f", declined={self.declined_topic}")
        parts.append(")")
        return "".join(parts)


# Live-data questions we decline, by topic (ORDER MATTERS within the dict)
DECLINED_PATTERNS = {
    "balance": [
        r"what(?:'?s| is| are) my (?:\w+\s+)?balances?",
        r"(?:check|show|get|tell me)\s+(?:me\s+)?(?:my\s+)?(?:wallet\s+|token\s+|\w+\s+)?balances?",
        r"how much (?:\w+\s+)?(?:do i have|is in my wallet|have i got)",
        r"^balance\??$",
    ],
    "price": [
        r"what(?:'?s| is) the (?:current |live |latest )?price of",
        r"(?:current|live|latest) price of",
        r"how much is (?:\w+\s+)?(?:worth|trading at)",
        r"price of \w+ (?:now|today|right now)",
    ],
    "portfolio": [
        r"(?:show|check|what(?:'?s| is))\s+(?:me\s+)?my\s+(?:portfolio|holdings|positions)",
        r"^portfolio\??$",
    ],
    "position": [
        r"what(?:'?s| is) my (?:current )?health factor",
        r"(?:check|show)\s+(?:me\s+)?my\s+(?:aave\s+)?(?:health factor|position)",
    ],
    "history": [
        r"(?:show|list|get)\s+(?:me\s+)?my\s+(?:recent\s+)?(?:transactions|transaction history|tx history)",
        r"my (?:transaction|tx) history",
    ],
}

# Task creation phrases (ORDER MATTERS: stop orders are checked first)
TASK_PATTERNS = {
    TaskType.STOP_ORDER: [
        r"\b(?:create|make|set(?:\s?up)?|place|open|start|build|new|add|want|need|like|help me)\b.*\bstop[\s-]?(?:order|loss)",
        r"^\s*(?:a\s+)?stop[\s-]?(?:order|loss)\b",
        r"\bprotect\b.*\b(?:from|against)\b.*\b(?:drop|dropping|crash|crashing|fall|falling|decline|dump|price)",
        r"\bsell\b.*\b(?:when|if|once)\b.*\b(?:drops?|dropping|falls?|falling|goes down|declines?|dips?|crash)",
        r"\bswitch\b.*\bstop[\s-]?(?:order|loss)",
    ],
    TaskType.AAVE_PROTECTION: [
        r"\b(?:aave|liquidation)\s+(?:protection|guard|shield|protector)\b",
        r"\bprotect\b.*\b(?:from|against)\b.*\bliquidat",
        r"\bprotect\b.*\baave\b",
        r"\b(?:create|make|set\s?up|enable|start|want|need|like|help me)\b.*\b(?:aave|liquidation)\b",
        r"\b(?:avoid|prevent)\b.*\bliquidat",
        r"\bswitch\b.*\b(?:aave|liquidation)",
    ],
}

# A leading question word turns a task mention into a question about it.
# "how about X" offers an answer, and a bare "do" or "is" needs a subject to ask anything.
QUESTION_PREFIX = (
    r"^\s*(?:(?:what|how)(?!\s+about\b)|why|when|where|who|which|explain|tell me|can you explain"
    r"|(?:is|are|does|do)\s+(?:i|it|this|that|there|they|you|we|my|the|a|an)\b)\b"
)

QUESTION_PATTERNS = [
    QUESTION_PREFIX,
    r"\b(?:learn|understand|difference between|meaning of)\b",
    r"\b(?:reactive network|reactive smart contracts?|rscs?|kopli|react token)\b",
]


def _matches(text: str, patterns: list[str]) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def declined_topic(text: str) -> Optional[str]:
    """Name of the unsupported query class a message falls into, if any."""
    lowered = text.lower().strip()
    for topic, patterns in DECLINED_PATTERNS.items():
        if _matches(lowered, patterns):
            return topic
    return None


def match_task_creation(text: str) -> Optional[TaskType]:
    """Task a message asks to create, or None.

    Questions about a task ("what is a stop order?") are not creation requests.
    """
    lowered = text.lower().strip()
    if re.search(QUESTION_PREFIX, lowered):
        return None
    for task, patterns in TASK_PATTERNS.items():
        if _matches(lowered, patterns):
            return task
    return None


def is_question(text: str) -> bool:
    lowered = text.lower().strip()
    if _matches(lowered, QUESTION_PATTERNS):
        return True
    return lowered.endswith("?") and len(lowered.split()) >= 3


class IntentClassifier:
    """Assigns each turn exactly one intent."""

    def classify(self, text: str, active_task: TaskType = TaskType.NONE) -> Intent:
        """Classify a user message.

        Args:
            text: Raw user message
            active_task: Task currently being configured

        Returns:
            The first matching Intent in precedence order
        """
        topic = declined_topic(text)
        if topic:
            return Intent(type=IntentType.DECLINED, raw_input=text, declined_topic=topic)

        task = match_task_creation(text)
        if task is not None and active_task not in (TaskType.NONE, task):
            return Intent(type=IntentType.SWITCH_TASK, raw_input=text, task=task)
        if task is not None and active_task == TaskType.NONE:
            return Intent(type=START_INTENTS[task], raw_input=text, task=task)

        if is_question(text):
            return Intent(type=IntentType.QUESTION, raw_input=text)

        if active_task != TaskType.NONE:
            return Intent(type=IntentType.CONTINUE, raw_input=text)
        return Intent(type=IntentType.UNKNOWN, raw_input=text)
