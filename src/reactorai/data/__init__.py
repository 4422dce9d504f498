"""Data layer for reactorai - ledger lookups, network reference data, conversation storage."""

from reactorai.data.ledger import LedgerClient
from reactorai.data.store import ConversationReaper, ConversationStore, InMemoryConversationStore

__all__ = ["LedgerClient", "ConversationStore", "InMemoryConversationStore", "ConversationReaper"]
