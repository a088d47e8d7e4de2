"""Memory system for conversation persistence and prompt context."""

from .models import (
    ChatMessage,
    Conversation,
    ConversationTurn,
    ConversationMemory,
    FallbackSummary,
    MemoryContext,
    MemoryReport,
)
from .scoring import score
from .fallback import fallback_summarize
from .quota_breaker import QuotaBreaker, BreakerState
from .store import MemoryStore, MemoryStoreError, InMemoryMemoryStore
from .sqlite_store import SQLiteMemoryStore
from .summarizer import Summarizer, LLMSummarizer
from .context_builder import MemoryContextBuilder

__all__ = [
    "ChatMessage",
    "Conversation",
    "ConversationTurn",
    "ConversationMemory",
    "FallbackSummary",
    "MemoryContext",
    "MemoryReport",
    "score",
    "fallback_summarize",
    "QuotaBreaker",
    "BreakerState",
    "MemoryStore",
    "MemoryStoreError",
    "InMemoryMemoryStore",
    "SQLiteMemoryStore",
    "Summarizer",
    "LLMSummarizer",
    "MemoryContextBuilder",
]
