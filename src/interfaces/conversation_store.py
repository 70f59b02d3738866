"""Abstract base class for conversation persistence.

The completion service only reads a conversation's settings and history
and appends new messages; how they are stored (SQLite, a desktop app's
own database, memory) is the implementation's business.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.chat import ChatMessage, Conversation


# Concrete implementations:
#   InMemoryConversationStore -- process-local dict, used by the API and CLI
# Located in: src/providers/conversation/
class IConversationStore(ABC):
    """Contract for reading conversations and recording new messages."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Return preset id, sampling parameters and linked datasets.

        Raises
        ------
        src.utils.errors.NotFoundError
            If the conversation does not exist.
        """

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Return the message history, oldest first."""

    @abstractmethod
    async def add_message(self, conversation_id: str, message: ChatMessage) -> None:
        """Append *message* to the conversation history."""
