"""Process-local conversation store.

Conversations and their messages live in plain dicts and vanish on
restart.  Enough for the HTTP API and the CLI's one-shot chat; a desktop
host supplies its own persistent :class:`IConversationStore`.
"""

from __future__ import annotations

import uuid

from src.interfaces.conversation_store import IConversationStore
from src.models.catalog import Preset
from src.models.chat import ChatMessage, Conversation
from src.utils.errors import NotFoundError


class InMemoryConversationStore(IConversationStore):
    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[ChatMessage]] = {}

    def create_conversation(
        self,
        preset: Preset,
        dataset_ids: list[str] | None = None,
        conversation_id: str | None = None,
    ) -> Conversation:
        """Register a conversation using *preset*'s prompt and sampling parameters."""
        conversation = Conversation(
            id=conversation_id or uuid.uuid4().hex,
            preset_id=preset.id,
            system_prompt=preset.system_prompt,
            temperature=preset.temperature,
            top_p=preset.top_p,
            max_tokens=preset.max_tokens,
            repeat_penalty=preset.repeat_penalty,
            dataset_ids=list(dataset_ids or []),
        )
        self._conversations[conversation.id] = conversation
        self._messages.setdefault(conversation.id, [])
        return conversation

    def list_conversations(self) -> list[Conversation]:
        return list(self._conversations.values())

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError(
                message=f"Unknown conversation: {conversation_id}",
                component="conversations",
            )
        return conversation

    async def list_messages(self, conversation_id: str) -> list[ChatMessage]:
        await self.get_conversation(conversation_id)
        return list(self._messages.get(conversation_id, []))

    async def add_message(self, conversation_id: str, message: ChatMessage) -> None:
        await self.get_conversation(conversation_id)
        self._messages.setdefault(conversation_id, []).append(message)
