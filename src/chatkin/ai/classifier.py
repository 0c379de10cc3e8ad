"""Turn a final model response into a chat outcome."""

from __future__ import annotations

from loguru import logger
from pydantic import ValidationError

from chatkin.ai.outcome import ActionsOutcome, ChatOutcome, MessageOutcome, QuestionsOutcome
from chatkin.ai.tools import AskQuestionsInput, ProposeOperationsInput, ToolName, is_client_tool
from chatkin.ai.types import ModelResponse, StopReason, TextBlock, ToolUseBlock


def classify(response: ModelResponse) -> ChatOutcome:
    """Map one model turn to exactly one of message, actions or questions.

    A ``tool_use`` turn is classified by its first client invocation. Unknown tools,
    a missing invocation or input that does not fit the tool's shape fall
    back to a plain message built from the turn's text.
    """
    if response.stop_reason == StopReason.TOOL_USE.value:
        text = response.first_text
        invocation = _first_tool_use(response)
        if invocation is None:
            logger.warning("classifier.fallback reason=missing_invocation")
            return MessageOutcome(message=text)
        return _classify_invocation(invocation, text)

    first = response.content[0] if response.content else None
    return MessageOutcome(message=first.text if isinstance(first, TextBlock) else "")


def _first_tool_use(response: ModelResponse) -> ToolUseBlock | None:
    tool_uses = response.tool_uses
    for invocation in tool_uses:
        if is_client_tool(invocation.name):
            return invocation
    return tool_uses[0] if tool_uses else None


def _classify_invocation(invocation: ToolUseBlock, text: str) -> ChatOutcome:
    tool = ToolName.parse(invocation.name)
    try:
        match tool:
            case ToolName.PROPOSE_OPERATIONS:
                proposal = ProposeOperationsInput.model_validate(invocation.input)
                return ActionsOutcome(
                    message=text,
                    summary=proposal.summary,
                    actions=[operation.model_dump(exclude_none=True) for operation in proposal.operations],
                )
            case ToolName.ASK_QUESTIONS:
                asked = AskQuestionsInput.model_validate(invocation.input)
                return QuestionsOutcome(
                    message=text,
                    questions=[question.model_dump() for question in asked.questions],
                )
            case (
                ToolName.QUERY_TASKS
                | ToolName.QUERY_NOTES
                | ToolName.QUERY_PROJECTS
                | ToolName.QUERY_FILES
                | None
            ):
                logger.warning("classifier.fallback reason=non_client_tool tool={}", invocation.name)
    except ValidationError as exc:
        logger.warning(
            "classifier.fallback reason=invalid_input tool={} errors={}",
            invocation.name,
            exc.error_count(),
        )
    return MessageOutcome(message=text)
