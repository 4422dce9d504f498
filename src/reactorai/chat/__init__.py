"""Conversation engine for reactorai - intents, entities, state and answers."""

from reactorai.chat.context import ConversationState, DialogueStep, TaskType
from reactorai.chat.intents import Intent, IntentClassifier, IntentType
from reactorai.chat.llm import LLMClient

__all__ = [
    "ConversationState",
    "DialogueStep",
    "TaskType",
    "Intent",
    "IntentClassifier",
    "IntentType",
    "LLMClient",
]
