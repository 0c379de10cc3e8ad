"""Conversation rows the memory manager reads and rewrites."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from chatkin.ai.types import StoredMessage
from chatkin.store.postgrest import PostgrestClient


@dataclass(frozen=True)
class ConversationState:
    message_count: int
    summary: str | None = None
    last_summarized_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ConversationState:
        return cls(
            message_count=int(row.get("message_count") or 0),
            summary=row.get("conversation_summary"),
            last_summarized_at=row.get("last_summarized_at"),
        )


class ConversationRepository(Protocol):
    async def get_state(self, conversation_id: str) -> ConversationState | None: ...

    async def old_messages(self, conversation_id: str, *, message_count: int, keep_recent: int) -> list[StoredMessage]:
        """All messages except the ``keep_recent`` most recent, oldest first."""
        ...

    async def save_summary(self, conversation_id: str, summary: str, *, summarized_at: datetime) -> None: ...

    async def prune(self, conversation_id: str, *, through: str) -> None:
        """Delete messages created at or before ``through``."""
        ...


class PostgrestConversationRepository:
    """Conversation storage over the ``conversations`` and ``messages`` tables."""

    def __init__(self, store: PostgrestClient, *, token: str | None = None) -> None:
        self._store = store
        self._token = token

    async def get_state(self, conversation_id: str) -> ConversationState | None:
        rows = await (
            self._store.table("conversations")
            .select("message_count,conversation_summary,last_summarized_at")
            .eq("id", conversation_id)
            .limit(1)
            .fetch(token=self._token)
        )
        return ConversationState.from_row(rows[0]) if rows else None

    async def old_messages(self, conversation_id: str, *, message_count: int, keep_recent: int) -> list[StoredMessage]:
        if message_count <= keep_recent:
            return []
        rows = await (
            self._store.table("messages")
            .select()
            .eq("conversation_id", conversation_id)
            .order("created_at")
            .limit(message_count - keep_recent)
            .fetch(token=self._token)
        )
        return [StoredMessage.from_row(row) for row in rows]

    async def save_summary(self, conversation_id: str, summary: str, *, summarized_at: datetime) -> None:
        await (
            self._store.table("conversations")
            .eq("id", conversation_id)
            .update(
                {"conversation_summary": summary, "last_summarized_at": summarized_at.isoformat()},
                token=self._token,
            )
        )

    async def prune(self, conversation_id: str, *, through: str) -> None:
        await (
            self._store.table("messages")
            .eq("conversation_id", conversation_id)
            .lte("created_at", through)
            .delete(token=self._token)
        )
        logger.info("memory.pruned conversation={} through={}", conversation_id, through)
