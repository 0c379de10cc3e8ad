"""Tool catalog for the chat assistant.

Tool names form a closed enum. Each name maps to exactly one kind:
``QUERY`` tools run inside the tool loop against the workspace store,
``CLIENT`` tools end the loop and hand their input to the application.
"""

from __future__ import annotations

import builtins
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolKind(str, Enum):
    QUERY = "query"
    CLIENT = "client"


class ToolName(str, Enum):
    QUERY_TASKS = "query_tasks"
    QUERY_NOTES = "query_notes"
    QUERY_PROJECTS = "query_projects"
    QUERY_FILES = "query_files"
    ASK_QUESTIONS = "ask_questions"
    PROPOSE_OPERATIONS = "propose_operations"

    @classmethod
    def parse(cls, name: str) -> ToolName | None:
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def kind(self) -> ToolKind:
        match self:
            case ToolName.ASK_QUESTIONS | ToolName.PROPOSE_OPERATIONS:
                return ToolKind.CLIENT
            case ToolName.QUERY_TASKS | ToolName.QUERY_NOTES | ToolName.QUERY_PROJECTS | ToolName.QUERY_FILES:
                return ToolKind.QUERY


def is_client_tool(name: str) -> bool:
    tool = ToolName.parse(name)
    return tool is not None and tool.kind is ToolKind.CLIENT


# --- query tool inputs ---------------------------------------------------


class TaskFilters(BaseModel):
    project_id: str | None = Field(default=None, description="Only tasks in this project")
    status: str | None = Field(default=None, description="Task status, e.g. 'todo', 'in_progress', 'done'")
    search_query: str | None = Field(default=None, description="Text to search in title and description")


class NoteFilters(BaseModel):
    project_id: str | None = Field(default=None, description="Only notes in this project")
    search_query: str | None = Field(default=None, description="Text to search in title and content")


class ProjectFilters(BaseModel):
    include_archived: bool = Field(default=False, description="Include archived projects")
    search_query: str | None = Field(default=None, description="Text to search in name and description")


class FileFilters(BaseModel):
    project_id: str | None = Field(default=None, description="Only files in this project")
    conversation_id: str | None = Field(default=None, description="Only files attached in this conversation")
    search_query: str | None = Field(default=None, description="Text to search in filename, title and description")
    mime_type_prefix: str | None = Field(default=None, description="MIME type prefix, e.g. 'image/'")
    is_hidden_from_library: bool | None = Field(default=None, description="Filter by library visibility")


class TaskQueryInput(BaseModel):
    """Get the complete task list with optional filters."""

    filters: TaskFilters | None = None
    limit: int | None = Field(default=None, description="Maximum rows to return (default 50, max 100)")


class NoteQueryInput(BaseModel):
    """Get complete notes with optional filters."""

    filters: NoteFilters | None = None
    limit: int | None = Field(default=None, description="Maximum rows to return (default 50, max 100)")


class ProjectQueryInput(BaseModel):
    """Get all projects, optionally including archived ones."""

    filters: ProjectFilters | None = None
    limit: int | None = Field(default=None, description="Maximum rows to return (default 50, max 100)")


class FileQueryInput(BaseModel):
    """Search files by name, type, description or project."""

    filters: FileFilters | None = None
    limit: int | None = Field(default=None, description="Maximum rows to return (default 50, max 100)")


# --- client tool inputs --------------------------------------------------


class Question(BaseModel):
    model_config = ConfigDict(extra="allow")

    question: str = Field(..., description="The question to ask")
    options: list[str] = Field(
        ...,
        description='Multiple choice options (user can also select "Other" to provide custom answer)',
    )


class AskQuestionsInput(BaseModel):
    questions: list[Question]


class Operation(BaseModel):
    """One proposed change. Field values are checked by the application, not here."""

    model_config = ConfigDict(extra="allow")

    operation: str = Field(
        ..., description="The type of operation", json_schema_extra={"enum": ["create", "update", "delete"]}
    )
    type: str = Field(..., description="The type of item", json_schema_extra={"enum": ["task", "note", "project"]})
    id: str | None = Field(default=None, description="Item ID (required for update/delete, from workspace context)")
    data: dict[str, Any] | None = Field(default=None, description="Item data (for create operations)")
    changes: dict[str, Any] | None = Field(default=None, description="Fields to update (for update operations)")
    reason: str | None = Field(default=None, description="Reason for deletion (for delete operations)")


class ProposeOperationsInput(BaseModel):
    summary: str | None = Field(
        default=None,
        description="Brief summary of what you will do (e.g., \"I'll create 3 tasks for your workout plan\")",
    )
    operations: list[Operation]


# --- catalog -------------------------------------------------------------

@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    input_model: type[BaseModel]

    @property
    def kind(self) -> ToolKind:
        return self.name.kind

    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.pop("description", None)
        return schema

    def to_param(self) -> dict[str, Any]:
        return {"name": self.name.value, "description": self.description, "input_schema": self.input_schema()}


class ToolCatalog:
    """Registry of tool definitions keyed by name."""

    def __init__(self, definitions: Iterable[ToolDefinition] | None = None) -> None:
        self._definitions: dict[ToolName, ToolDefinition] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        self._definitions[definition.name] = definition

    def get(self, name: str | ToolName) -> ToolDefinition | None:
        tool_name = name if isinstance(name, ToolName) else ToolName.parse(name)
        if tool_name is None:
            return None
        return self._definitions.get(tool_name)

    def has(self, name: str) -> bool:
        return self.get(name) is not None

    def definitions(self) -> builtins.list[ToolDefinition]:
        return list(self._definitions.values())

    def to_params(self) -> builtins.list[dict[str, Any]]:
        return [definition.to_param() for definition in self._definitions.values()]


def build_tool_catalog() -> ToolCatalog:
    return ToolCatalog(_all_definitions())


def _all_definitions() -> list[ToolDefinition]:
    return [*_client_definitions(), *_query_definitions()]


def _client_definitions() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            ToolName.ASK_QUESTIONS,
            (
                "REQUIRED FIRST STEP for all create operations that are missing critical details. "
                "Shows the user a modal with multiple choice questions. "
                "Only after receiving answers should you use propose_operations."
            ),
            AskQuestionsInput,
        ),
        ToolDefinition(
            ToolName.PROPOSE_OPERATIONS,
            (
                "Propose create/update/delete operations to the user for confirmation. "
                "Use this once you have the information needed to act."
            ),
            ProposeOperationsInput,
        ),
    ]


def _query_definitions() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            ToolName.QUERY_TASKS,
            "Get the complete task list with filters (project, status, search).",
            TaskQueryInput,
        ),
        ToolDefinition(
            ToolName.QUERY_NOTES,
            "Get complete notes with filters (project, search).",
            NoteQueryInput,
        ),
        ToolDefinition(
            ToolName.QUERY_PROJECTS,
            "Get all projects (optionally including archived ones).",
            ProjectQueryInput,
        ),
        ToolDefinition(
            ToolName.QUERY_FILES,
            "Search files by name, type, description, or project.",
            FileQueryInput,
        ),
    ]
