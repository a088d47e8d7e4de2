"""Memory store interface and an in-process implementation."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from .models import ConversationMemory


class MemoryStoreError(Exception):
    """A memory store read or write failed."""


class MemoryStore(ABC):
    """Persistence for per-user conversation memories."""

    @abstractmethod
    def fetch_candidates(self, user_id: str, limit: int = 20) -> List[ConversationMemory]:
        """
        Get a user's memories, most recently accessed first.

        Args:
            user_id: Owner of the memories
            limit: Maximum number of memories to return

        Returns:
            Up to `limit` memories owned by `user_id`

        Raises:
            MemoryStoreError: If the read fails
        """
        pass

    @abstractmethod
    def get(self, memory_id: str) -> Optional[ConversationMemory]:
        """Get a memory by id, or None."""
        pass

    @abstractmethod
    def upsert(self, memory: ConversationMemory):
        """
        Insert or replace a memory by id.

        Raises:
            MemoryStoreError: If the write fails
        """
        pass

    @abstractmethod
    def touch_accessed(self, memory_id: str, when: Optional[datetime] = None):
        """Set a memory's last_accessed time (now if `when` is None)."""
        pass


class InMemoryMemoryStore(MemoryStore):
    """Dict-backed store for tests and single-process use."""

    def __init__(self):
        self._memories: Dict[str, ConversationMemory] = {}

    def fetch_candidates(self, user_id: str, limit: int = 20) -> List[ConversationMemory]:
        owned = [m for m in self._memories.values() if m.user_id == user_id]
        owned.sort(key=lambda m: m.last_accessed, reverse=True)
        return [m.model_copy() for m in owned[:limit]]

    def get(self, memory_id: str) -> Optional[ConversationMemory]:
        memory = self._memories.get(memory_id)
        return memory.model_copy() if memory else None

    def upsert(self, memory: ConversationMemory):
        self._memories[memory.id] = memory.model_copy()

    def touch_accessed(self, memory_id: str, when: Optional[datetime] = None):
        memory = self._memories.get(memory_id)
        if memory is None:
            raise MemoryStoreError(f"Memory not found: {memory_id}")
        memory.last_accessed = when or datetime.now()

    def __len__(self) -> int:
        return len(self._memories)
