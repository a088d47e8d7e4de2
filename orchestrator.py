"""Chat turn orchestration with conversation memory."""

import uuid
import logging
from typing import Optional, List

from pydantic import BaseModel

from config.settings import Settings

# LLM components
from llm.factory import create_llm_client, LLMProvider
from llm.base_client import BaseLLMClient, Message, LLMError, LLMErrorKind

# Memory components
from memory.models import ChatMessage, Conversation, MemoryContext, MemoryReport
from memory.quota_breaker import QuotaBreaker
from memory.sqlite_store import SQLiteMemoryStore
from memory.summarizer import LLMSummarizer
from memory.context_builder import MemoryContextBuilder

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


class ChatReply(BaseModel):
    """Result of one chat turn."""
    conversation_id: str
    reply: str
    is_new_conversation: bool
    memory_context: MemoryContext


def _title_for(message: str) -> str:
    if len(message) > TITLE_LENGTH:
        return message[:TITLE_LENGTH] + "..."
    return message


def _messages_of(conversation: Conversation) -> List[ChatMessage]:
    return [
        ChatMessage(role=turn.role, content=turn.content)
        for turn in conversation.turns
    ]


class ChatOrchestrator:
    """Runs chat turns: stores turns, builds memory context, calls the model."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[BaseLLMClient] = None,
        store: Optional[SQLiteMemoryStore] = None,
        breaker: Optional[QuotaBreaker] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            llm_client: Chat client; created from settings when omitted
            store: Conversation and memory store; SQLite at settings.db_path when omitted
            breaker: Quota breaker; one per orchestrator when omitted
        """
        self.settings = settings or Settings()

        self.llm_client: Optional[BaseLLMClient] = llm_client
        if self.llm_client is None:
            self._init_llm_client()

        self.memory_store = store or SQLiteMemoryStore(db_path=self.settings.db_path)
        logger.info(f"Memory store ready: {self.memory_store.db_path}")

        self.breaker = breaker or QuotaBreaker(
            threshold=self.settings.quota_error_threshold,
            cooldown_seconds=self.settings.quota_cooldown_seconds
        )
        self.context_builder = MemoryContextBuilder(
            store=self.memory_store,
            summarizer=LLMSummarizer(
                self.llm_client,
                temperature=self.settings.summary_temperature,
                max_tokens=self.settings.summary_max_tokens
            ),
            breaker=self.breaker,
            rolling_summary_threshold=self.settings.rolling_summary_threshold,
            candidate_limit=self.settings.memory_candidate_limit,
            prompt_recent_messages=self.settings.prompt_recent_messages
        )

    def _init_llm_client(self):
        """Initialize LLM client based on settings."""
        api_key = self.settings.get_llm_api_key()

        if not api_key:
            logger.warning(
                f"No API key for {self.settings.llm_provider}. "
                "Chat is unavailable and summaries use the offline fallback."
            )
            return

        provider = LLMProvider(self.settings.llm_provider)
        self.llm_client = create_llm_client(
            provider=provider,
            api_key=api_key,
            model=self.settings.llm_model
        )
        logger.info(
            f"LLM client initialized: {self.settings.llm_provider} "
            f"({self.llm_client.get_model_name()})"
        )

    def _ensure_conversation(
        self,
        conversation_id: Optional[str],
        user_id: str,
        first_message: str
    ) -> tuple:
        """Return (conversation_id, is_new), creating the conversation if needed."""
        if conversation_id:
            existing = self.memory_store.get_conversation(conversation_id)
            if existing:
                if existing.user_id != user_id:
                    raise ValueError(
                        f"Conversation {conversation_id} does not belong to user {user_id}"
                    )
                return conversation_id, False

        new_id = conversation_id or str(uuid.uuid4())
        self.memory_store.create_conversation(
            conversation_id=new_id,
            user_id=user_id,
            title=_title_for(first_message)
        )
        logger.info(f"Created new conversation: {new_id}")
        return new_id, True

    def _history(self, conversation_id: str) -> List[ChatMessage]:
        conversation = self.memory_store.get_conversation(conversation_id)
        if not conversation:
            return []
        return _messages_of(conversation)

    def handle_message(
        self,
        user_id: str,
        message: str,
        conversation_id: Optional[str] = None
    ) -> ChatReply:
        """
        Process one user message end-to-end.

        Args:
            user_id: Sender
            message: User message text
            conversation_id: Existing conversation to continue, or None to start one

        Returns:
            ChatReply with the assistant's answer

        Raises:
            ValueError: If user_id is empty or the conversation belongs to someone else
            LLMError: If no chat model is configured or the chat call fails
        """
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        if not self.llm_client or not self.llm_client.is_configured():
            raise LLMError("No chat model configured", kind=LLMErrorKind.UNAVAILABLE)

        conversation_id, is_new = self._ensure_conversation(conversation_id, user_id, message)
        self.memory_store.add_turn(conversation_id, "user", message)
        history = self._history(conversation_id)

        if self.settings.memory_enabled:
            context = self.context_builder.build_context(
                user_id,
                message,
                history,
                limit=self.settings.relevant_memory_limit
            )
        else:
            context = MemoryContext(recent_messages=[msg.render() for msg in history])

        prompt = self.context_builder.render_prompt(context, message)
        if self.settings.verbose:
            logger.debug(f"Prompt for {conversation_id}:\n{prompt}")

        response = self.llm_client.chat(
            messages=[Message(role="user", content=prompt)],
            temperature=self.settings.chat_temperature,
            max_tokens=self.settings.chat_max_tokens
        )
        self.memory_store.add_turn(conversation_id, "assistant", response.content)

        if self.settings.memory_enabled and len(history) >= self.settings.persist_summary_threshold:
            try:
                self.context_builder.create_summary(user_id, conversation_id, history)
            except Exception as e:
                # The reply is already stored; a lost summary only costs future context
                logger.error(f"Error creating conversation summary for {conversation_id}: {e}")

        return ChatReply(
            conversation_id=conversation_id,
            reply=response.content,
            is_new_conversation=is_new,
            memory_context=context
        )

    def memory_report(
        self,
        user_id: str,
        conversation_id: str,
        current_message: str = ""
    ) -> MemoryReport:
        """
        Describe what memory would contribute to a conversation now.

        Args:
            user_id: Owner of the conversation
            conversation_id: Conversation to inspect
            current_message: Optional query used to rank memories

        Returns:
            MemoryReport; empty when the conversation does not exist

        Raises:
            ValueError: If the conversation belongs to someone else
        """
        conversation = self.memory_store.get_conversation(conversation_id)
        if not conversation:
            return MemoryReport()
        if conversation.user_id != user_id:
            raise ValueError(
                f"Conversation {conversation_id} does not belong to user {user_id}"
            )

        context = self.context_builder.build_context(
            user_id,
            current_message,
            _messages_of(conversation),
            limit=self.settings.relevant_memory_limit
        )
        return MemoryReport(
            memories=context.relevant_memories,
            summary=context.conversation_summary,
            memory_count=len(context.relevant_memories),
            has_summary=bool(context.conversation_summary)
        )

    def get_conversation_history(self, conversation_id: str) -> Optional[list]:
        """Get conversation history for display."""
        conversation = self.memory_store.get_conversation(conversation_id)
        if not conversation:
            return None

        return [
            {"role": turn.role, "content": turn.content, "timestamp": turn.timestamp}
            for turn in conversation.turns
        ]

    def list_conversations(self, user_id: str, limit: int = 50) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        return self.memory_store.list_conversations(user_id, limit=limit)
