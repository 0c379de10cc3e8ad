from __future__ import annotations

import pytest
from typer.testing import CliRunner

from chatkin import cli
from chatkin.ai.outcome import ActionsOutcome, MessageOutcome
from chatkin.chat import ChatRequest
from chatkin.config import ChatMode, Settings
from chatkin.errors import ApiKeyNotConfiguredError
from chatkin.memory.manager import SummarizeResult, SummarizeStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)


def test_ask_renders_message(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[ChatRequest] = []

    async def fake_ask(settings: Settings, request: ChatRequest) -> MessageOutcome:
        seen.append(request)
        return MessageOutcome(message="Here you go")

    monkeypatch.setattr(cli, "_ask", fake_ask)

    result = runner.invoke(cli.app, ["ask", "plan my day", "--mode", "action", "--token", "jwt"])

    assert result.exit_code == 0
    assert "Here you go" in result.output
    (request,) = seen
    assert request.message == "plan my day"
    assert request.mode is ChatMode.ACTION
    assert request.caller.auth_token == "jwt"


def test_ask_renders_actions(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_ask(settings: Settings, request: ChatRequest) -> ActionsOutcome:
        return ActionsOutcome(summary="Add groceries", actions=[{"operation": "create", "type": "task"}])

    monkeypatch.setattr(cli, "_ask", fake_ask)

    result = runner.invoke(cli.app, ["ask", "buy milk"])

    assert result.exit_code == 0
    assert "Add groceries" in result.output
    assert "create" in result.output


def test_ask_reports_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_ask(settings: Settings, request: ChatRequest) -> MessageOutcome:
        raise ApiKeyNotConfiguredError("Model provider API key missing.")

    monkeypatch.setattr(cli, "_ask", fake_ask)

    result = runner.invoke(cli.app, ["ask", "hi"])

    assert result.exit_code == 1
    assert "API key missing" in result.output


def test_summarize_reports_result(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_summarize(settings: Settings, conversation_id: str, token: str | None) -> SummarizeResult:
        assert conversation_id == "c1"
        return SummarizeResult(SummarizeStatus.SUMMARIZED, summarized_messages=20, summary_length=300)

    monkeypatch.setattr(cli, "_summarize", fake_summarize)

    result = runner.invoke(cli.app, ["summarize", "c1"])

    assert result.exit_code == 0
    assert "Summarized 20 messages" in result.output


def test_summarize_failure_exits_nonzero(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_summarize(settings: Settings, conversation_id: str, token: str | None) -> SummarizeResult:
        return SummarizeResult(SummarizeStatus.FAILED, error="boom")

    monkeypatch.setattr(cli, "_summarize", fake_summarize)

    result = runner.invoke(cli.app, ["summarize", "c1"])

    assert result.exit_code == 1
    assert "boom" in result.output
