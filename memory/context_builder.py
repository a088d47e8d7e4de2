"""Assembles memory context for a chat turn."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple, Union

from llm.base_client import LLMError, LLMErrorKind
from .fallback import fallback_summarize
from .models import ChatMessage, ConversationMemory, MemoryContext
from .quota_breaker import QuotaBreaker
from .scoring import score
from .store import MemoryStore, MemoryStoreError
from .summarizer import Summarizer, build_summary_prompt, build_topics_prompt, parse_topics

logger = logging.getLogger(__name__)

MessageLike = Union[ChatMessage, dict]

SYSTEM_PREAMBLE = (
    "You are a helpful AI assistant with access to conversation history and memory.\n"
    "Your goal is to provide helpful, accurate, and contextually relevant responses."
)


def _coerce_messages(messages: Sequence[MessageLike]) -> List[ChatMessage]:
    return [
        msg if isinstance(msg, ChatMessage) else ChatMessage.model_validate(msg)
        for msg in messages
    ]


def _require_user(user_id: str):
    if not user_id or not user_id.strip():
        raise ValueError("user_id must be a non-empty string")


class MemoryContextBuilder:
    """
    Builds the memory context injected into chat prompts.

    Combines recent turns, a rolling summary of the active conversation and
    keyword-matched summaries of the user's earlier conversations. Summarizer
    problems never fail a context build; they degrade to the offline
    summary or to no summary.
    """

    def __init__(
        self,
        store: MemoryStore,
        summarizer: Optional[Summarizer] = None,
        breaker: Optional[QuotaBreaker] = None,
        rolling_summary_threshold: int = 5,
        candidate_limit: int = 20,
        prompt_recent_messages: int = 6,
        now: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize context builder.

        Args:
            store: Memory store for past conversation summaries
            summarizer: Optional summarizer; the offline summary is used without one
            breaker: Quota breaker shared across requests
            rolling_summary_threshold: Messages needed before a rolling summary is made
            candidate_limit: Most recently accessed memories considered per query
            prompt_recent_messages: Recent messages included in rendered prompts
            now: Wall-clock source for record timestamps
        """
        self.store = store
        self.summarizer = summarizer
        self.breaker = breaker or QuotaBreaker()
        self.rolling_summary_threshold = rolling_summary_threshold
        self.candidate_limit = candidate_limit
        self.prompt_recent_messages = prompt_recent_messages
        self._now = now

    def _summarizer_configured(self) -> bool:
        return self.summarizer is not None and self.summarizer.is_configured()

    def _record_failure(self, error: LLMError, label: str):
        self.breaker.record_failure(error.kind)
        if error.kind == LLMErrorKind.AUTH_FAILED:
            logger.error(f"Summarizer authentication failed for {label}: {error}")
        else:
            logger.warning(f"Summarizer failed for {label} ({error.kind.value}): {error}")

    def build_context(
        self,
        user_id: str,
        current_message: str,
        recent_messages: Sequence[MessageLike],
        limit: int = 3
    ) -> MemoryContext:
        """
        Build the memory context for one user turn.

        Args:
            user_id: Owner of the conversation
            current_message: The message being answered (may be empty)
            recent_messages: Full conversation so far, oldest first
            limit: Maximum relevant memories to include

        Returns:
            MemoryContext; store and summarizer failures leave fields empty

        Raises:
            ValueError: If user_id is empty
        """
        _require_user(user_id)
        messages = _coerce_messages(recent_messages)

        relevant = self.get_relevant_memories(user_id, current_message, limit)
        conversation_summary = self._rolling_summary(messages)

        summaries = [memory.summary for memory in relevant]
        return MemoryContext(
            recent_messages=[msg.render() for msg in messages],
            conversation_summary=conversation_summary,
            relevant_memories=summaries,
            user_context="\n".join(
                f"Previous conversation: {summary}" for summary in summaries
            ),
        )

    def get_relevant_memories(
        self,
        user_id: str,
        current_message: str,
        limit: int = 3
    ) -> List[ConversationMemory]:
        """
        Rank a user's stored memories against the current message.

        Kept memories have their last_accessed time refreshed. A failed
        read returns no memories; a failed refresh is logged and skipped.

        Args:
            user_id: Owner of the memories
            current_message: Query text
            limit: Maximum memories to return

        Returns:
            Up to `limit` memories, highest score first
        """
        _require_user(user_id)

        try:
            candidates = self.store.fetch_candidates(user_id, self.candidate_limit)
        except Exception as e:
            logger.error(f"Error retrieving memories for {user_id}: {e}")
            return []

        candidates = [memory for memory in candidates if memory.user_id == user_id]
        if not candidates:
            return []

        # sorted() is stable, so equal scores keep store order
        ranked = sorted(
            candidates,
            key=lambda memory: score(current_message, memory),
            reverse=True
        )
        kept = ranked[:limit]

        accessed_at = self._now()
        for memory in kept:
            try:
                self.store.touch_accessed(memory.id, accessed_at)
                memory.last_accessed = accessed_at
            except Exception as e:
                logger.warning(f"Could not update last_accessed for {memory.id}: {e}")

        return kept

    def _rolling_summary(self, messages: List[ChatMessage]) -> str:
        """Summary of the active conversation, or '' when not produced."""
        if len(messages) < self.rolling_summary_threshold:
            return ""

        if not self._summarizer_configured():
            return fallback_summarize(messages).summary

        if not self.breaker.is_allowed():
            logger.info("Rolling summary skipped: summarizer quota breaker is open")
            return ""

        snapshot_id = f"temp_{int(self._now().timestamp() * 1000)}"
        try:
            summary = self.summarizer.summarize_text(build_summary_prompt(messages))
        except LLMError as e:
            self._record_failure(e, snapshot_id)
            return ""
        except Exception as e:
            logger.error(f"Unexpected summarizer error for {snapshot_id}: {e}")
            return ""

        self.breaker.record_success()
        return summary

    def _summarize_for_storage(
        self,
        messages: List[ChatMessage],
        conversation_id: str
    ) -> Tuple[str, List[str]]:
        if not self._summarizer_configured():
            logger.info(f"Summarizer not configured, using offline summary for {conversation_id}")
            fallback = fallback_summarize(messages)
            return fallback.summary, fallback.key_topics

        if not self.breaker.is_allowed():
            logger.info(f"Quota breaker open, using offline summary for {conversation_id}")
            fallback = fallback_summarize(messages)
            return fallback.summary, fallback.key_topics

        try:
            summary = self.summarizer.summarize_text(build_summary_prompt(messages))
            if not summary:
                raise LLMError("Summarizer returned an empty summary")
            topics_text = self.summarizer.summarize_text(build_topics_prompt(summary))
        except LLMError as e:
            self._record_failure(e, conversation_id)
            fallback = fallback_summarize(messages)
            return fallback.summary, fallback.key_topics
        except Exception as e:
            logger.error(f"Unexpected summarizer error for {conversation_id}: {e}")
            fallback = fallback_summarize(messages)
            return fallback.summary, fallback.key_topics

        self.breaker.record_success()
        return summary, parse_topics(topics_text)

    def create_summary(
        self,
        user_id: str,
        conversation_id: str,
        messages: Sequence[MessageLike]
    ) -> ConversationMemory:
        """
        Summarize a conversation and store it as the user's memory.

        Re-summarizing a conversation replaces its summary and topics and
        keeps the original created_at.

        Args:
            user_id: Owner of the conversation
            conversation_id: Conversation being summarized
            messages: Full transcript, oldest first

        Returns:
            The stored ConversationMemory

        Raises:
            ValueError: If user_id is empty
            MemoryStoreError: If the record cannot be written, or the
                existing record for this conversation belongs to another user
        """
        _require_user(user_id)
        messages = _coerce_messages(messages)

        memory_id = ConversationMemory.memory_id_for(conversation_id)

        try:
            existing = self.store.get(memory_id)
        except Exception as e:
            logger.warning(f"Could not read existing memory {memory_id}: {e}")
            existing = None

        if existing is not None and existing.user_id != user_id:
            logger.warning(f"Refusing to overwrite memory {memory_id} owned by another user")
            raise MemoryStoreError(f"Memory {memory_id} belongs to another user")

        summary, key_topics = self._summarize_for_storage(messages, conversation_id)

        now = self._now()
        created_at = existing.created_at if existing is not None else now

        memory = ConversationMemory(
            id=memory_id,
            user_id=user_id,
            conversation_id=conversation_id,
            summary=summary,
            key_topics=key_topics,
            importance=min(len(messages) / 10, 1.0),
            created_at=created_at,
            last_accessed=now,
        )

        self.store.upsert(memory)
        logger.info(f"Stored summary for conversation {conversation_id} ({len(messages)} messages)")
        return memory

    def render_prompt(self, context: MemoryContext, current_message: str) -> str:
        """
        Render a memory context and the current message as prompt text.

        Args:
            context: Context from build_context
            current_message: The message being answered

        Returns:
            Prompt string for the chat model
        """
        parts = [SYSTEM_PREAMBLE, ""]

        if context.user_context:
            parts.append(f"Previous relevant conversations:\n{context.user_context}\n")
        if context.conversation_summary:
            parts.append(f"Current conversation summary:\n{context.conversation_summary}\n")

        recent = context.recent_messages[-self.prompt_recent_messages:] if self.prompt_recent_messages > 0 else []
        parts.append("Recent conversation:")
        parts.extend(recent)
        parts.append("")
        parts.append(f"Human: {current_message}")
        parts.append("")
        parts.append("AI Assistant:")

        return "\n".join(parts)
