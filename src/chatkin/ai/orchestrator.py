"""Tool-use loop between the model and the workspace."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from chatkin.ai.classifier import classify
from chatkin.ai.outcome import ChatOutcome
from chatkin.ai.provider import ModelProvider, ModelRequest
from chatkin.ai.query import CallerContext
from chatkin.ai.tools import ToolCatalog, ToolName, is_client_tool
from chatkin.ai.types import ModelResponse, StopReason, ToolResultBlock, ToolUseBlock, TranscriptTurn
from chatkin.errors import OrchestratorError, ProviderError, ToolLoopExhaustedError, UnexpectedStopReasonError

DEFAULT_MAX_ITERATIONS = 10


class QueryRunner(Protocol):
    async def execute(
        self,
        tool_name: str,
        filters: dict[str, Any] | None,
        limit: object,
        caller: CallerContext,
    ) -> str: ...


@dataclass(frozen=True)
class OrchestratorConfig:
    model: str
    max_tokens: int
    temperature: float
    system_prompt: str = ""
    max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass
class _LoopState:
    messages: list[TranscriptTurn]
    iteration: int = 0


class ToolOrchestrator:
    """Runs provider calls until the model answers or hands off to the client.

    Query tools requested in one turn run concurrently and their results are
    fed back to the model. A client tool anywhere in a turn ends the loop
    before any query tool of that turn runs.
    """

    def __init__(
        self,
        provider: ModelProvider,
        executor: QueryRunner,
        config: OrchestratorConfig,
        caller: CallerContext,
    ) -> None:
        self._provider = provider
        self._executor = executor
        self._config = config
        self._caller = caller

    async def run(self, transcript: Sequence[TranscriptTurn], tools: ToolCatalog) -> ChatOutcome:
        state = _LoopState(messages=list(transcript))
        tool_params = tools.to_params()

        while state.iteration < self._config.max_iterations:
            state.iteration += 1
            logger.info("orchestrator.step step={} model={}", state.iteration, self._config.model)
            response = await self._call_model(state.messages, tool_params)
            logger.debug(
                "orchestrator.response step={} stop_reason={} blocks={}",
                state.iteration,
                response.stop_reason,
                len(response.content),
            )

            match response.stop_reason:
                case StopReason.END_TURN.value:
                    return classify(response)
                case StopReason.TOOL_USE.value:
                    invocations = response.tool_uses
                    if not invocations or any(is_client_tool(invocation.name) for invocation in invocations):
                        logger.info(
                            "orchestrator.handoff step={} tools={}",
                            state.iteration,
                            [invocation.name for invocation in invocations],
                        )
                        return classify(response)
                    results = await self._execute_tools(invocations)
                    state.messages.append(response.as_turn())
                    state.messages.append(TranscriptTurn(role="user", content=tuple(results)))
                case _:
                    logger.error("orchestrator.unexpected_stop stop_reason={}", response.stop_reason)
                    raise UnexpectedStopReasonError(response.stop_reason)

        logger.warning("orchestrator.max_iterations max_iterations={}", self._config.max_iterations)
        raise ToolLoopExhaustedError(self._config.max_iterations)

    async def _call_model(
        self,
        messages: Sequence[TranscriptTurn],
        tool_params: list[dict[str, Any]],
    ) -> ModelResponse:
        request = ModelRequest(
            model=self._config.model,
            messages=tuple(messages),
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            system=self._config.system_prompt,
            tools=tool_params,
        )
        try:
            return await self._provider.create(request)
        except OrchestratorError:
            raise
        except Exception as exc:
            logger.exception("orchestrator.provider.error")
            raise ProviderError(f"Model provider call failed: {exc}") from exc

    async def _execute_tools(self, invocations: Sequence[ToolUseBlock]) -> list[ToolResultBlock]:
        logger.info(
            "orchestrator.tools.start count={} tools={}",
            len(invocations),
            [invocation.name for invocation in invocations],
        )
        results = await asyncio.gather(*(self._execute_one(invocation) for invocation in invocations))
        logger.info(
            "orchestrator.tools.end ok={} errors={}",
            sum(1 for result in results if not result.is_error),
            sum(1 for result in results if result.is_error),
        )
        return list(results)

    async def _execute_one(self, invocation: ToolUseBlock) -> ToolResultBlock:
        logger.info("tool.call.start name={} id={}", invocation.name, invocation.id)
        start = time.monotonic()
        try:
            content = await self._run_tool(invocation)
        except Exception as exc:
            logger.error("tool.call.error name={} error={}", invocation.name, exc)
            content = json.dumps({"error": True, "message": f"Error: {exc}. Please try again."})
            return ToolResultBlock(tool_use_id=invocation.id, content=content, is_error=True)
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", invocation.name, duration * 1000)
        return ToolResultBlock(tool_use_id=invocation.id, content=content, is_error=_is_error_payload(content))

    async def _run_tool(self, invocation: ToolUseBlock) -> str:
        tool = ToolName.parse(invocation.name)
        match tool:
            case ToolName.QUERY_TASKS | ToolName.QUERY_NOTES | ToolName.QUERY_PROJECTS | ToolName.QUERY_FILES:
                return await self._executor.execute(
                    tool.value,
                    invocation.input.get("filters"),
                    invocation.input.get("limit"),
                    self._caller,
                )
            case ToolName.ASK_QUESTIONS | ToolName.PROPOSE_OPERATIONS:
                raise RuntimeError(f"Client tool cannot run on the server: {invocation.name}")
            case None:
                logger.warning("tool.unknown name={}", invocation.name)
                raise ValueError(f"Unknown tool: {invocation.name}")


def _is_error_payload(content: str) -> bool:
    try:
        payload = json.loads(content)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("error") is True
