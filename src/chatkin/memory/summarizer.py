"""Rolling conversation summaries."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from loguru import logger

from chatkin.ai.provider import ModelProvider, ModelRequest
from chatkin.ai.transcript import ASSISTANT_ROLES
from chatkin.ai.types import StoredMessage, TextBlock, TranscriptTurn

SUMMARY_MAX_TOKENS = 1000
SUMMARY_TEMPERATURE = 0.3

_UPDATE_TEMPLATE = """You are summarizing a conversation to preserve context while reducing token usage.

EXISTING SUMMARY (from earlier in the conversation):
{existing}

NEW MESSAGES TO ADD:
{messages}

Create an updated summary that:
1. Preserves key information from the existing summary
2. Adds important new information from the new messages
3. Maintains chronological flow
4. Keeps track of:
   - Key decisions made
   - Tasks/notes created or modified
   - Important insights or patterns discussed
   - User goals and concerns expressed
   - Action items or next steps

Keep the summary concise but comprehensive (300-500 words)."""

_FRESH_TEMPLATE = """You are summarizing a conversation to preserve context while reducing token usage.

CONVERSATION TO SUMMARIZE:
{messages}

Create a summary that captures:
1. Key topics discussed
2. Tasks/notes created or modified
3. Important insights or patterns discussed
4. User goals and concerns expressed
5. Action items or next steps

Keep the summary concise but comprehensive (300-500 words)."""


class Summarizer(Protocol):
    async def summarize(self, messages: Sequence[StoredMessage], existing_summary: str | None) -> str: ...


def render_messages(messages: Sequence[StoredMessage]) -> str:
    return "\n\n".join(
        f"{'AI' if message.role in ASSISTANT_ROLES else 'User'}: {message.content}" for message in messages
    )


def build_summary_prompt(messages: Sequence[StoredMessage], existing_summary: str | None) -> str:
    rendered = render_messages(messages)
    if existing_summary:
        return _UPDATE_TEMPLATE.format(existing=existing_summary, messages=rendered)
    return _FRESH_TEMPLATE.format(messages=rendered)


class AnthropicSummarizer:
    """Summarizes old messages with one model call, folding in the previous summary."""

    def __init__(
        self,
        provider: ModelProvider,
        *,
        model: str,
        max_tokens: int = SUMMARY_MAX_TOKENS,
        temperature: float = SUMMARY_TEMPERATURE,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def summarize(self, messages: Sequence[StoredMessage], existing_summary: str | None) -> str:
        if not messages:
            raise ValueError("No messages provided")
        prompt = build_summary_prompt(messages, existing_summary)
        response = await self._provider.create(
            ModelRequest(
                model=self._model,
                messages=(TranscriptTurn(role="user", content=prompt),),
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        )
        first = response.content[0] if response.content else None
        summary = first.text.strip() if isinstance(first, TextBlock) else ""
        if not summary:
            raise ValueError("Model returned an empty summary")
        logger.info("memory.summary.generated messages={} length={}", len(messages), len(summary))
        return summary
