"""Streaming chat completions with optional dataset context.

One ``generate`` call:

    1. Load the conversation (sampling parameters, system prompt, linked
       datasets) and its history.
    2. Build the message list: system prompt -> RAG context -> history ->
       the new user message.
    3. Record the user message, then stream fragments from the provider,
       publishing each as ``generation-chunk``.
    4. Record the assembled assistant reply and publish
       ``generation-complete``.

Transport failures publish ``generation-error`` and propagate; a
malformed stream record is skipped inside the decoder and only shows as
a gap in the output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.models.chat import (
    ChatCompletionRequest,
    ChatMessage,
    ChatRole,
    CompletionResult,
    Conversation,
)
from src.models.events import EventName
from src.services.sse_decoder import SSEDecoder
from src.utils.errors import LlamaDeckError

if TYPE_CHECKING:
    from src.config.settings import Settings
    from src.interfaces.conversation_store import IConversationStore
    from src.interfaces.llm_provider import ILLMProvider
    from src.models.catalog import Preset
    from src.pipeline.event_bus import EventBus
    from src.services.rag_service import RagService

logger = structlog.get_logger(logger_name=__name__)


def rag_system_message(context: str) -> ChatMessage:
    return ChatMessage(
        role=ChatRole.SYSTEM,
        content=(
            f"Relevant knowledge from your datasets:\n\n{context}\n\n"
            "Use this information to inform your responses when relevant."
        ),
    )


class CompletionService:
    """Runs one chat turn against the inference server."""

    def __init__(
        self,
        llm: ILLMProvider,
        store: IConversationStore,
        event_bus: EventBus,
        settings: Settings,
        rag: RagService | None = None,
    ) -> None:
        self._llm = llm
        self._store = store
        self._event_bus = event_bus
        self._settings = settings
        self._rag = rag

    async def generate(self, conversation_id: str, user_message: str) -> CompletionResult:
        """Stream a reply to *user_message* and record both sides of the turn.

        Raises
        ------
        src.utils.errors.NotFoundError
            If the conversation does not exist.
        src.utils.errors.TransportError
            If the server is unreachable or rejects the request.  The user
            message stays recorded; no assistant message is added.
        """
        conversation = await self._store.get_conversation(conversation_id)
        history = await self._store.list_messages(conversation_id)

        context = ""
        if self._rag is not None and conversation.dataset_ids:
            context = await self._rag.build_context(conversation.dataset_ids, user_message)

        messages = self._build_messages(conversation.system_prompt, context, history, user_message)
        request = self._build_request(conversation, messages)

        await self._store.add_message(
            conversation_id, ChatMessage(role=ChatRole.USER, content=user_message)
        )

        result = await self._stream(request, conversation_id)

        await self._store.add_message(
            conversation_id, ChatMessage(role=ChatRole.ASSISTANT, content=result.text)
        )
        await self._event_bus.publish(
            EventName.GENERATION_COMPLETE,
            {"conversation_id": conversation_id, "text": result.text},
        )
        logger.info(
            "generation_complete",
            conversation_id=conversation_id,
            context_chars=len(context),
            history_messages=len(history),
            chars=len(result.text),
            finish_cause=result.finish_cause.value,
        )
        return result

    async def generate_once(self, prompt: str, preset: Preset) -> CompletionResult:
        """Stream a reply to a single prompt using *preset*, recording nothing."""
        messages = self._build_messages(preset.system_prompt, "", [], prompt)
        request = ChatCompletionRequest(
            model=preset.id,
            messages=messages,
            temperature=preset.temperature,
            top_p=preset.top_p,
            max_tokens=preset.max_tokens,
            repeat_penalty=preset.repeat_penalty,
        )
        result = await self._stream(request, None)
        await self._event_bus.publish(
            EventName.GENERATION_COMPLETE, {"conversation_id": None, "text": result.text}
        )
        return result

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_messages(
        system_prompt: str,
        context: str,
        history: list[ChatMessage],
        user_message: str,
    ) -> list[ChatMessage]:
        messages: list[ChatMessage] = []
        if system_prompt:
            messages.append(ChatMessage(role=ChatRole.SYSTEM, content=system_prompt))
        if context:
            messages.append(rag_system_message(context))
        messages.extend(history)
        messages.append(ChatMessage(role=ChatRole.USER, content=user_message))
        return messages

    @staticmethod
    def _build_request(conversation: Conversation, messages: list[ChatMessage]) -> ChatCompletionRequest:
        return ChatCompletionRequest(
            model=conversation.preset_id,
            messages=messages,
            temperature=conversation.temperature,
            top_p=conversation.top_p,
            max_tokens=conversation.max_tokens,
            repeat_penalty=conversation.repeat_penalty,
        )

    async def _stream(self, request: ChatCompletionRequest, conversation_id: str | None) -> CompletionResult:
        decoder = SSEDecoder()
        parts: list[str] = []
        try:
            async for fragment in self._llm.stream_chat(request, decoder):
                parts.append(fragment)
                await self._event_bus.publish(
                    EventName.GENERATION_CHUNK,
                    {"conversation_id": conversation_id, "content": fragment},
                )
        except LlamaDeckError as exc:
            logger.error("generation_failed", conversation_id=conversation_id, error=str(exc))
            await self._event_bus.publish(
                EventName.GENERATION_ERROR,
                {"conversation_id": conversation_id, "error": exc.message},
            )
            raise

        if not decoder.finished:
            decoder.close()
        return CompletionResult(
            conversation_id=conversation_id,
            text="".join(parts),
            finish_cause=decoder.finish_cause,
            finish_reason=decoder.finish_reason,
            fragments=len(parts),
            skipped_records=decoder.skipped_records,
        )
