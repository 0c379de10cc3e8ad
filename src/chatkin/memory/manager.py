"""Conversation memory compaction.

Once a conversation passes the threshold, every ``summarize_every`` messages
the older part of the history is folded into the running summary and then
deleted. Deletion only ever happens after the new summary has been saved,
and only covers the messages that went into it.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from loguru import logger

from chatkin.logging_utils import conversation_scope
from chatkin.memory.repository import ConversationRepository
from chatkin.memory.summarizer import Summarizer

DEFAULT_THRESHOLD = 60
DEFAULT_EVERY = 10
DEFAULT_KEEP_RECENT = 50


@dataclass(frozen=True)
class MemoryPolicy:
    threshold: int = DEFAULT_THRESHOLD
    every: int = DEFAULT_EVERY
    keep_recent: int = DEFAULT_KEEP_RECENT

    def should_summarize(self, message_count: int) -> bool:
        return message_count >= self.threshold and message_count % self.every == 0


class SummarizeStatus(str, Enum):
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    NOTHING_TO_SUMMARIZE = "nothing_to_summarize"
    SUMMARIZED = "summarized"
    FAILED = "failed"


@dataclass(frozen=True)
class SummarizeResult:
    status: SummarizeStatus
    summarized_messages: int = 0
    summary_length: int = 0
    error: str | None = None


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConversationMemoryManager:
    """Best-effort background maintenance of conversation history."""

    def __init__(
        self,
        repository: ConversationRepository,
        summarizer: Summarizer,
        *,
        policy: MemoryPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._summarizer = summarizer
        self._policy = policy or MemoryPolicy()
        self._clock = clock
        self._locks: dict[str, _LockEntry] = {}
        self._jobs: set[asyncio.Task[SummarizeResult]] = set()

    @property
    def policy(self) -> MemoryPolicy:
        return self._policy

    @property
    def pending_jobs(self) -> int:
        return len(self._jobs)

    def should_summarize(self, message_count: int) -> bool:
        return self._policy.should_summarize(message_count)

    def schedule(self, conversation_id: str, message_count: int) -> asyncio.Task[SummarizeResult] | None:
        """Queue compaction without making the caller wait for it."""
        if not self.should_summarize(message_count):
            return None
        task = asyncio.create_task(
            self.maybe_summarize(conversation_id, message_count),
            name=f"memory.summarize:{conversation_id}",
        )
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)
        logger.debug("memory.job.scheduled conversation={} count={}", conversation_id, message_count)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled job to finish."""
        while self._jobs:
            await asyncio.gather(*list(self._jobs))

    async def maybe_summarize(self, conversation_id: str, message_count: int) -> SummarizeResult:
        """Compact the conversation if ``message_count`` hits the trigger. Never raises."""
        if not self.should_summarize(message_count):
            return SummarizeResult(SummarizeStatus.SKIPPED)

        logger.info("memory.summarize.triggered conversation={} count={}", conversation_id, message_count)
        return await self.summarize_now(conversation_id)

    async def summarize_now(self, conversation_id: str) -> SummarizeResult:
        """Compact the conversation regardless of its message count. Never raises."""
        with conversation_scope(conversation_id):
            try:
                async with self._conversation_lock(conversation_id):
                    return await self._summarize(conversation_id)
            except Exception as exc:
                logger.exception("memory.summarize.failed")
                return SummarizeResult(SummarizeStatus.FAILED, error=str(exc) or exc.__class__.__name__)

    async def _summarize(self, conversation_id: str) -> SummarizeResult:
        state = await self._repository.get_state(conversation_id)
        if state is None:
            logger.error("memory.summarize.not_found")
            return SummarizeResult(SummarizeStatus.NOT_FOUND)

        old_messages = await self._repository.old_messages(
            conversation_id,
            message_count=state.message_count,
            keep_recent=self._policy.keep_recent,
        )
        if not old_messages:
            logger.debug("memory.summarize.empty count={}", state.message_count)
            return SummarizeResult(SummarizeStatus.NOTHING_TO_SUMMARIZE)

        # Bound taken before summarizing; messages arriving later are never pruned by this run.
        prune_through = old_messages[-1].created_at
        summary = await self._summarizer.summarize(old_messages, state.summary)
        await self._repository.save_summary(conversation_id, summary, summarized_at=self._clock())
        # Pruning must follow a successful save.
        if prune_through is None:
            logger.warning("memory.prune.skipped reason=missing_created_at")
        else:
            await self._repository.prune(conversation_id, through=prune_through)

        logger.info(
            "memory.summarize.done old_messages={} summary_length={}",
            len(old_messages),
            len(summary),
        )
        return SummarizeResult(
            SummarizeStatus.SUMMARIZED,
            summarized_messages=len(old_messages),
            summary_length=len(summary),
        )

    @contextlib.asynccontextmanager
    async def _conversation_lock(self, conversation_id: str) -> AsyncIterator[None]:
        entry = self._locks.setdefault(conversation_id, _LockEntry())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._locks.pop(conversation_id, None)
