"""Conversation memory compaction."""

from .manager import ConversationMemoryManager, MemoryPolicy, SummarizeResult, SummarizeStatus

__all__ = ["ConversationMemoryManager", "MemoryPolicy", "SummarizeResult", "SummarizeStatus"]
