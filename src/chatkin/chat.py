"""Request flow for one chat turn."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

from loguru import logger

from chatkin.ai.orchestrator import OrchestratorConfig, QueryRunner, ToolOrchestrator
from chatkin.ai.outcome import ChatOutcome, MessageOutcome
from chatkin.ai.prompts import ChatScope, build_system_prompt
from chatkin.ai.provider import ModelProvider
from chatkin.ai.query import CallerContext
from chatkin.ai.tools import ToolCatalog, build_tool_catalog
from chatkin.ai.transcript import ImageFetcher, TranscriptBuilder
from chatkin.ai.types import FileAttachment, StoredMessage
from chatkin.config import ChatMode, Settings
from chatkin.errors import ChatkinError
from chatkin.logging_utils import conversation_scope
from chatkin.memory.manager import ConversationMemoryManager, SummarizeResult

GENERIC_FAILURE_MESSAGE = "Something went wrong, please try again."


@dataclass(frozen=True)
class ChatRequest:
    message: str
    mode: ChatMode = ChatMode.CHAT
    conversation_id: str | None = None
    history: Sequence[StoredMessage] = ()
    summary: str | None = None
    attachments: Sequence[FileAttachment] = ()
    scope: ChatScope | None = None
    workspace_context: str | None = None
    caller: CallerContext = field(default_factory=CallerContext)


class ChatService:
    """Wires prompt, transcript and orchestrator together for each request."""

    def __init__(
        self,
        settings: Settings,
        provider: ModelProvider,
        executor: QueryRunner,
        images: ImageFetcher,
        *,
        memory: ConversationMemoryManager | None = None,
        catalog: ToolCatalog | None = None,
    ) -> None:
        self._settings = settings
        self._provider = provider
        self._executor = executor
        self._transcripts = TranscriptBuilder(images)
        self._memory = memory
        self._catalog = catalog or build_tool_catalog()

    async def respond(self, request: ChatRequest, *, today: date | None = None) -> ChatOutcome:
        with conversation_scope(request.conversation_id):
            params = self._settings.mode_params(request.mode)
            system_prompt = build_system_prompt(
                request.mode,
                scope=request.scope,
                workspace_context=request.workspace_context,
                today=today,
            )
            orchestrator = ToolOrchestrator(
                self._provider,
                self._executor,
                OrchestratorConfig(
                    model=self._settings.model,
                    max_tokens=params.max_tokens,
                    temperature=params.temperature,
                    system_prompt=system_prompt,
                    max_iterations=self._settings.max_iterations,
                ),
                request.caller,
            )
            logger.info("chat.request mode={} history={}", request.mode.value, len(request.history))
            try:
                transcript = await self._transcripts.build(
                    request.message,
                    request.attachments,
                    request.history,
                    request.summary,
                )
                outcome = await orchestrator.run(transcript, self._catalog)
            except ChatkinError:
                logger.exception("chat.request.failed")
                return MessageOutcome(message=GENERIC_FAILURE_MESSAGE)
            logger.info("chat.response type={}", outcome.type)
            return outcome

    def after_messages_saved(
        self, conversation_id: str, message_count: int
    ) -> asyncio.Task[SummarizeResult] | None:
        """Hand the new message count to memory maintenance, if configured."""
        if self._memory is None:
            return None
        return self._memory.schedule(conversation_id, message_count)
