"""Model provider adapter."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic
from loguru import logger

from chatkin.ai.types import ContentBlock, ModelResponse, TextBlock, ToolUseBlock, TranscriptTurn
from chatkin.errors import ProviderError


@dataclass(frozen=True)
class ModelRequest:
    model: str
    messages: Sequence[TranscriptTurn]
    max_tokens: int
    temperature: float
    system: str = ""
    tools: Sequence[dict[str, Any]] = field(default=())


class ModelProvider(Protocol):
    async def create(self, request: ModelRequest) -> ModelResponse: ...


class AnthropicProvider:
    """Messages API client. Transport and API failures raise ``ProviderError``."""

    def __init__(self, client: anthropic.AsyncAnthropic) -> None:
        self._client = client

    @classmethod
    def from_api_key(cls, api_key: str, *, timeout: float | None = None) -> AnthropicProvider:
        if timeout is None:
            return cls(anthropic.AsyncAnthropic(api_key=api_key))
        return cls(anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout))

    async def create(self, request: ModelRequest) -> ModelResponse:
        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [turn.to_param() for turn in request.messages],
        }
        if request.system:
            kwargs["system"] = request.system
        if request.tools:
            kwargs["tools"] = list(request.tools)

        try:
            message = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            logger.error("provider.call.error model={} error={}", request.model, exc)
            raise ProviderError(f"Model provider call failed: {exc}") from exc

        return ModelResponse(stop_reason=message.stop_reason, content=_convert_blocks(message.content))

    async def aclose(self) -> None:
        await self._client.close()


def _convert_blocks(blocks: Sequence[Any]) -> tuple[ContentBlock, ...]:
    converted: list[ContentBlock] = []
    for block in blocks:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            converted.append(TextBlock(text=block.text))
        elif block_type == "tool_use":
            tool_input = block.input if isinstance(block.input, dict) else {}
            converted.append(ToolUseBlock(id=block.id, name=block.name, input=dict(tool_input)))
    return tuple(converted)
