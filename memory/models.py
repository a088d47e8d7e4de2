"""Memory data models."""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A role/content pair as supplied by the chat layer."""
    role: str  # "user" or "assistant"
    content: str

    def render(self) -> str:
        return f"{self.role}: {self.content}"


class ConversationTurn(BaseModel):
    """A single turn in a conversation."""
    turn_id: int
    role: str  # "user" or "assistant"
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: Optional[Dict[str, Any]] = None


class Conversation(BaseModel):
    """A complete conversation."""
    conversation_id: str
    user_id: str
    title: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    turns: List[ConversationTurn] = Field(default_factory=list)


class ConversationMemory(BaseModel):
    """Durable summary of one conversation, scoped to its owner."""
    id: str
    user_id: str
    conversation_id: str
    summary: str
    key_topics: List[str] = Field(default_factory=list)
    importance: float = Field(0.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=datetime.now)
    last_accessed: datetime = Field(default_factory=datetime.now)

    @staticmethod
    def memory_id_for(conversation_id: str) -> str:
        """Record id for a conversation; re-summarizing overwrites it."""
        return f"{conversation_id}_summary"


class FallbackSummary(BaseModel):
    """Summary produced without the language model."""
    summary: str
    key_topics: List[str] = Field(default_factory=list)


class MemoryContext(BaseModel):
    """Per-request context bundle embedded into the model prompt."""
    recent_messages: List[str] = Field(default_factory=list)
    conversation_summary: str = ""
    relevant_memories: List[str] = Field(default_factory=list)
    user_context: str = ""


class MemoryReport(BaseModel):
    """What the memory layer would contribute to a conversation right now."""
    memories: List[str] = Field(default_factory=list)
    summary: str = ""
    memory_count: int = 0
    has_summary: bool = False
