"""Terminal results of one chat turn."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class MessageOutcome(BaseModel):
    type: Literal["message"] = "message"
    message: str = ""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


class ActionsOutcome(BaseModel):
    type: Literal["actions"] = "actions"
    message: str = ""
    summary: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class QuestionsOutcome(BaseModel):
    type: Literal["questions"] = "questions"
    message: str = ""
    questions: list[dict[str, Any]] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


ChatOutcome = MessageOutcome | ActionsOutcome | QuestionsOutcome
Outcome = Annotated[ChatOutcome, Field(discriminator="type")]

OUTCOME_ADAPTER: TypeAdapter[Outcome] = TypeAdapter(Outcome)


def parse_outcome(payload: dict[str, Any]) -> ChatOutcome:
    """Rebuild an outcome from its caller-facing payload."""
    return OUTCOME_ADAPTER.validate_python(payload)
