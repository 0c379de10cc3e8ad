"""Tests for the tool-use loop."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import pytest

from chatkin.ai.orchestrator import OrchestratorConfig, ToolOrchestrator
from chatkin.ai.outcome import ActionsOutcome, MessageOutcome, QuestionsOutcome
from chatkin.ai.provider import ModelRequest
from chatkin.ai.query import CallerContext
from chatkin.ai.tools import build_tool_catalog
from chatkin.ai.types import ModelResponse, TextBlock, ToolResultBlock, ToolUseBlock, TranscriptTurn
from chatkin.errors import ProviderError, ToolLoopExhaustedError, UnexpectedStopReasonError


@dataclass
class _FakeProvider:
    responses: list[ModelResponse]
    requests: list[ModelRequest] = field(default_factory=list)

    async def create(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if len(self.responses) == 1:
            return self.responses[0]
        return self.responses.pop(0)


@dataclass
class _FakeExecutor:
    results: dict[str, str] = field(default_factory=dict)
    failures: dict[str, Exception] = field(default_factory=dict)
    calls: list[tuple[str, Any, Any, CallerContext]] = field(default_factory=list)

    async def execute(self, tool_name: str, filters: Any, limit: Any, caller: CallerContext) -> str:
        self.calls.append((tool_name, filters, limit, caller))
        if tool_name in self.failures:
            raise self.failures[tool_name]
        return self.results.get(tool_name, json.dumps({"count": 0}))


class _BrokenProvider:
    async def create(self, request: ModelRequest) -> ModelResponse:
        raise RuntimeError("connection reset")


def _orchestrator(provider: Any, executor: _FakeExecutor, *, max_iterations: int = 10) -> ToolOrchestrator:
    config = OrchestratorConfig(
        model="test-model",
        max_tokens=2048,
        temperature=0.7,
        system_prompt="system",
        max_iterations=max_iterations,
    )
    return ToolOrchestrator(provider, executor, config, CallerContext(auth_token="token-1", user_id="u1"))


def _transcript() -> list[TranscriptTurn]:
    return [TranscriptTurn(role="user", content="what's on my plate?")]


def _end_turn(text: str) -> ModelResponse:
    return ModelResponse(stop_reason="end_turn", content=(TextBlock(text=text),))


@pytest.mark.asyncio
async def test_end_turn_returns_message_after_one_call() -> None:
    provider = _FakeProvider(responses=[_end_turn("All clear.")])
    executor = _FakeExecutor()

    outcome = await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    assert outcome == MessageOutcome(message="All clear.")
    assert len(provider.requests) == 1
    assert executor.calls == []
    request = provider.requests[0]
    assert request.system == "system"
    assert request.max_tokens == 2048
    assert request.temperature == 0.7
    assert {tool["name"] for tool in request.tools} == {
        "query_tasks",
        "query_notes",
        "query_projects",
        "query_files",
        "ask_questions",
        "propose_operations",
    }


@pytest.mark.asyncio
async def test_client_tool_in_turn_ends_loop_without_running_query_tools() -> None:
    response = ModelResponse(
        stop_reason="tool_use",
        content=(
            TextBlock(text="Here is the plan."),
            ToolUseBlock(id="t1", name="query_tasks", input={"filters": {}}),
            ToolUseBlock(
                id="t2",
                name="propose_operations",
                input={
                    "summary": "Create one task",
                    "operations": [{"operation": "create", "type": "task", "data": {"title": "Buy milk"}}],
                },
            ),
        ),
    )
    provider = _FakeProvider(responses=[response])
    executor = _FakeExecutor()

    outcome = await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    assert executor.calls == []
    assert len(provider.requests) == 1
    assert isinstance(outcome, ActionsOutcome)
    assert outcome.message == "Here is the plan."
    assert outcome.summary == "Create one task"
    assert outcome.actions == [{"operation": "create", "type": "task", "data": {"title": "Buy milk"}}]


@pytest.mark.asyncio
async def test_ask_questions_hands_off_questions() -> None:
    response = ModelResponse(
        stop_reason="tool_use",
        content=(
            ToolUseBlock(
                id="q1",
                name="ask_questions",
                input={"questions": [{"question": "Which project?", "options": ["Home", "Work"]}]},
            ),
        ),
    )
    provider = _FakeProvider(responses=[response])

    outcome = await _orchestrator(provider, _FakeExecutor()).run(_transcript(), build_tool_catalog())

    assert isinstance(outcome, QuestionsOutcome)
    assert outcome.message == ""
    assert outcome.questions == [{"question": "Which project?", "options": ["Home", "Work"]}]


@pytest.mark.asyncio
async def test_server_tools_run_and_results_are_fed_back_by_id() -> None:
    tool_turn = ModelResponse(
        stop_reason="tool_use",
        content=(
            TextBlock(text="Let me look."),
            ToolUseBlock(id="a", name="query_tasks", input={"filters": {"status": "todo"}, "limit": 5}),
            ToolUseBlock(id="b", name="query_notes", input={}),
        ),
    )
    provider = _FakeProvider(responses=[tool_turn, _end_turn("You have 2 tasks.")])
    executor = _FakeExecutor(results={"query_tasks": '{"count": 2}', "query_notes": '{"count": 0}'})

    outcome = await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    assert outcome == MessageOutcome(message="You have 2 tasks.")
    assert len(provider.requests) == 2
    assert sorted(call[0] for call in executor.calls) == ["query_notes", "query_tasks"]
    task_call = next(call for call in executor.calls if call[0] == "query_tasks")
    assert task_call[1] == {"status": "todo"}
    assert task_call[2] == 5
    assert task_call[3].auth_token == "token-1"

    second = provider.requests[1].messages
    assert len(second) == 3
    assert second[1] == tool_turn.as_turn()
    assert second[2].role == "user"
    assert second[2].content == (
        ToolResultBlock(tool_use_id="a", content='{"count": 2}'),
        ToolResultBlock(tool_use_id="b", content='{"count": 0}'),
    )


@pytest.mark.asyncio
async def test_executor_exception_becomes_error_result() -> None:
    tool_turn = ModelResponse(
        stop_reason="tool_use",
        content=(
            ToolUseBlock(id="a", name="query_tasks", input={}),
            ToolUseBlock(id="b", name="query_projects", input={}),
        ),
    )
    provider = _FakeProvider(responses=[tool_turn, _end_turn("done")])
    executor = _FakeExecutor(failures={"query_tasks": RuntimeError("boom")})

    await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    results = provider.requests[1].messages[-1].content
    assert isinstance(results, tuple)
    failed, ok = results
    assert failed.tool_use_id == "a"
    assert failed.is_error is True
    assert json.loads(failed.content) == {"error": True, "message": "Error: boom. Please try again."}
    assert ok.tool_use_id == "b"
    assert ok.is_error is False


@pytest.mark.asyncio
async def test_error_payload_from_executor_is_marked_as_error() -> None:
    tool_turn = ModelResponse(stop_reason="tool_use", content=(ToolUseBlock(id="a", name="query_files", input={}),))
    provider = _FakeProvider(responses=[tool_turn, _end_turn("done")])
    executor = _FakeExecutor(results={"query_files": json.dumps({"error": True, "message": "Query failed"})})

    await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    (result,) = provider.requests[1].messages[-1].content
    assert result.is_error is True


@pytest.mark.asyncio
async def test_unknown_tool_is_reported_back_to_the_model() -> None:
    tool_turn = ModelResponse(stop_reason="tool_use", content=(ToolUseBlock(id="x", name="delete_everything"),))
    provider = _FakeProvider(responses=[tool_turn, _end_turn("sorry")])
    executor = _FakeExecutor()

    outcome = await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    assert outcome == MessageOutcome(message="sorry")
    assert executor.calls == []
    (result,) = provider.requests[1].messages[-1].content
    assert result.is_error is True
    assert "Unknown tool: delete_everything" in result.content


@pytest.mark.asyncio
async def test_loop_stops_after_max_iterations() -> None:
    tool_turn = ModelResponse(stop_reason="tool_use", content=(ToolUseBlock(id="a", name="query_tasks"),))
    provider = _FakeProvider(responses=[tool_turn])
    executor = _FakeExecutor()

    with pytest.raises(ToolLoopExhaustedError) as excinfo:
        await _orchestrator(provider, executor, max_iterations=2).run(_transcript(), build_tool_catalog())

    assert len(provider.requests) == 2
    assert len(executor.calls) == 2
    assert excinfo.value.max_iterations == 2
    assert str(excinfo.value).startswith("The AI made too many tool calls")


@pytest.mark.asyncio
async def test_unexpected_stop_reason_raises() -> None:
    provider = _FakeProvider(responses=[ModelResponse(stop_reason="max_tokens", content=(TextBlock(text="cut"),))])

    with pytest.raises(UnexpectedStopReasonError, match="Unexpected stop reason: max_tokens"):
        await _orchestrator(provider, _FakeExecutor()).run(_transcript(), build_tool_catalog())


@pytest.mark.asyncio
async def test_provider_failure_is_wrapped() -> None:
    with pytest.raises(ProviderError, match="connection reset"):
        await _orchestrator(_BrokenProvider(), _FakeExecutor()).run(_transcript(), build_tool_catalog())


@pytest.mark.asyncio
async def test_tool_use_without_invocations_falls_back_to_message() -> None:
    provider = _FakeProvider(responses=[ModelResponse(stop_reason="tool_use", content=(TextBlock(text="hmm"),))])
    executor = _FakeExecutor()

    outcome = await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())

    assert outcome == MessageOutcome(message="hmm")
    assert executor.calls == []


@dataclass
class _OutOfOrderExecutor:
    """Holds ``query_tasks`` open until ``query_notes`` has finished."""

    notes_done: asyncio.Event = field(default_factory=asyncio.Event)
    finished: list[str] = field(default_factory=list)

    async def execute(self, tool_name: str, filters: Any, limit: Any, caller: CallerContext) -> str:
        if tool_name == "query_tasks":
            await self.notes_done.wait()
        else:
            self.notes_done.set()
        self.finished.append(tool_name)
        return json.dumps({"tool": tool_name})


@pytest.mark.asyncio
async def test_results_keep_invocation_ids_when_tools_finish_out_of_order() -> None:
    tool_turn = ModelResponse(
        stop_reason="tool_use",
        content=(
            ToolUseBlock(id="first", name="query_tasks", input={}),
            ToolUseBlock(id="second", name="query_notes", input={}),
        ),
    )
    provider = _FakeProvider(responses=[tool_turn, _end_turn("done")])
    executor = _OutOfOrderExecutor()

    await _orchestrator(provider, executor).run(_transcript(), build_tool_catalog())  # type: ignore[arg-type]

    assert executor.finished == ["query_notes", "query_tasks"]
    assert provider.requests[1].messages[-1].content == (
        ToolResultBlock(tool_use_id="first", content='{"tool": "query_tasks"}'),
        ToolResultBlock(tool_use_id="second", content='{"tool": "query_notes"}'),
    )
