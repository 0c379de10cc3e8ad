"""Read-only workspace queries on behalf of the model."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from chatkin.ai.tools import FileFilters, NoteFilters, ProjectFilters, TaskFilters, ToolName
from chatkin.errors import StoreError
from chatkin.store.postgrest import PostgrestClient, TableQuery

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
MIN_LIMIT = 1
AUTH_REQUIRED_MESSAGE = "Authentication required to query database. Please ensure you are logged in."

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class CallerContext:
    """Identity of the user a chat turn runs for."""

    auth_token: str | None = None
    user_id: str | None = None


def clamp_limit(limit: object) -> int:
    """Bound the number of rows a single query may return."""
    if limit is None:
        return DEFAULT_LIMIT
    if isinstance(limit, bool):
        raise ValueError(f"Invalid limit: {limit!r}")
    value = int(limit)  # type: ignore[call-overload]
    return max(MIN_LIMIT, min(value, MAX_LIMIT))


def error_payload(message: str, details: str | None = None) -> str:
    payload: dict[str, Any] = {"error": True, "message": message}
    if details is not None:
        payload["details"] = details
    return json.dumps(payload)


class QueryExecutor:
    """Runs one filtered, limited lookup per query tool invocation.

    Failures never raise: they come back as an error payload the model can
    read and react to.
    """

    def __init__(self, store: PostgrestClient) -> None:
        self._store = store

    async def execute(
        self,
        tool_name: str,
        filters: dict[str, Any] | None,
        limit: object,
        caller: CallerContext,
    ) -> str:
        if not caller.auth_token:
            return error_payload(AUTH_REQUIRED_MESSAGE)
        try:
            tool = ToolName.parse(tool_name)
            if tool is None:
                raise ValueError(f"Unknown query tool: {tool_name}")
            effective_limit = clamp_limit(limit)
            collection, query = self._build_query(tool, filters or {})
            rows = await query.limit(effective_limit).fetch(token=caller.auth_token)
        except (StoreError, ValidationError, ValueError, TypeError) as exc:
            message = _describe(exc)
            logger.warning("query.failed tool={} error={}", tool_name, message)
            return error_payload(f"Query failed: {message}. Please try again or refine your query.", message)

        logger.info("query.ok tool={} rows={} limit={}", tool_name, len(rows), effective_limit)
        return json.dumps({"count": len(rows), collection: rows}, indent=2, default=str)

    def _build_query(self, tool: ToolName, raw_filters: dict[str, Any]) -> tuple[str, TableQuery]:
        match tool:
            case ToolName.QUERY_TASKS:
                tasks = _parse(TaskFilters, raw_filters)
                query = self._store.table("tasks").select()
                if tasks.project_id:
                    query = query.eq("project_id", tasks.project_id)
                if tasks.status:
                    query = query.eq("status", tasks.status)
                if tasks.search_query:
                    query = query.search(("title", "description"), tasks.search_query)
                return "tasks", query.order("created_at", descending=True)
            case ToolName.QUERY_NOTES:
                notes = _parse(NoteFilters, raw_filters)
                query = self._store.table("notes").select()
                if notes.project_id:
                    query = query.eq("project_id", notes.project_id)
                if notes.search_query:
                    query = query.search(("title", "content"), notes.search_query)
                return "notes", query.order("created_at", descending=True)
            case ToolName.QUERY_PROJECTS:
                projects = _parse(ProjectFilters, raw_filters)
                query = self._store.table("projects").select()
                if not projects.include_archived:
                    query = query.eq("is_archived", False)
                if projects.search_query:
                    query = query.search(("name", "description"), projects.search_query)
                return "projects", query.order("created_at", descending=True)
            case ToolName.QUERY_FILES:
                files = _parse(FileFilters, raw_filters)
                query = self._store.table("files").select()
                if files.project_id:
                    query = query.eq("project_id", files.project_id)
                if files.conversation_id:
                    query = query.eq("conversation_id", files.conversation_id)
                if files.search_query:
                    query = query.search(("filename", "title", "description"), files.search_query)
                if files.mime_type_prefix:
                    query = query.prefix("mime_type", files.mime_type_prefix)
                if files.is_hidden_from_library is not None:
                    query = query.eq("is_hidden_from_library", files.is_hidden_from_library)
                return "files", query.order("created_at", descending=True)
            case ToolName.ASK_QUESTIONS | ToolName.PROPOSE_OPERATIONS:
                raise ValueError(f"Unknown query tool: {tool.value}")


def _parse(model: type[ModelT], raw: object) -> ModelT:
    if not isinstance(raw, dict):
        raise TypeError(f"filters must be an object, got {type(raw).__name__}")
    return model.model_validate(raw)


def _describe(exc: Exception) -> str:
    if isinstance(exc, StoreError) and exc.details:
        return f"{exc} ({exc.details})"
    if isinstance(exc, ValidationError):
        return f"invalid filters: {exc.error_count()} error(s)"
    return str(exc) or exc.__class__.__name__
