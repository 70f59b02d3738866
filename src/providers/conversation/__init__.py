"""Conversation store adapters."""

from src.providers.conversation.memory_store import InMemoryConversationStore

__all__ = ["InMemoryConversationStore"]
