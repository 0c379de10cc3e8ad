"""Transcript and provider response types.

Everything here lives only for the duration of one chat turn. Blocks render
to the provider's wire shape through ``to_param()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

Role = Literal["user", "assistant"]


class StopReason(str, Enum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


@dataclass(frozen=True)
class TextBlock:
    text: str

    def to_param(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImageBlock:
    media_type: str
    data: str  # base64

    def to_param(self) -> dict[str, Any]:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": self.media_type, "data": self.data},
        }


@dataclass(frozen=True)
class ToolUseBlock:
    """One tool invocation emitted by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_param(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_param(self) -> dict[str, Any]:
        param: dict[str, Any] = {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}
        if self.is_error:
            param["is_error"] = True
        return param


ContentBlock = TextBlock | ImageBlock | ToolUseBlock | ToolResultBlock


@dataclass(frozen=True)
class TranscriptTurn:
    role: Role
    content: str | tuple[ContentBlock, ...]

    def to_param(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.to_param() for block in self.content]}


@dataclass(frozen=True)
class ModelResponse:
    """One completed model turn."""

    stop_reason: str | None
    content: tuple[ContentBlock, ...] = ()

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def first_text(self) -> str:
        """Text of the first text block, or an empty string."""
        for block in self.content:
            if isinstance(block, TextBlock):
                return block.text
        return ""

    def as_turn(self) -> TranscriptTurn:
        return TranscriptTurn(role="assistant", content=self.content)


@dataclass(frozen=True)
class FileAttachment:
    url: str
    name: str
    type: str

    @property
    def is_image(self) -> bool:
        return self.type.startswith("image/")


@dataclass(frozen=True)
class StoredMessage:
    """A chat message as stored by the application."""

    role: str  # "user", "ai" or "assistant"
    content: str
    files: tuple[FileAttachment, ...] = ()
    id: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> StoredMessage:
        files = tuple(
            FileAttachment(url=str(item.get("url", "")), name=str(item.get("name", "")), type=str(item.get("type", "")))
            for item in row.get("files") or ()
            if isinstance(item, dict)
        )
        return cls(
            role=str(row.get("role", "user")),
            content=str(row.get("content") or ""),
            files=files,
            id=row.get("id"),
            created_at=row.get("created_at"),
        )
