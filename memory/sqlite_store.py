"""SQLite-based store for conversations and conversation memories."""

import sqlite3
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from datetime import datetime
from typing import Iterator, Optional, List

from .models import Conversation, ConversationTurn, ConversationMemory
from .store import MemoryStore, MemoryStoreError

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> str:
    # Fixed-width ISO strings so ORDER BY on the column is chronological
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> datetime:
    return datetime.fromisoformat(value) if value else datetime.now()


class SQLiteMemoryStore(MemoryStore):
    """SQLite-based persistent memory store."""

    def __init__(self, db_path: str = "data/conversations.db"):
        """
        Initialize SQLite memory store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, always close."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise MemoryStoreError(f"Cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise MemoryStoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self):
        """Initialize database schema."""
        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    conversation_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS turns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    turn_id INTEGER NOT NULL,
                    role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
                    content TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    metadata TEXT,
                    FOREIGN KEY (conversation_id) REFERENCES conversations(conversation_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS conversation_memories (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    conversation_id TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    key_topics TEXT,
                    importance REAL NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    last_accessed TEXT NOT NULL
                )
            """)

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_turns_conversation ON turns(conversation_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_memories_user_accessed "
                "ON conversation_memories(user_id, last_accessed)"
            )

        logger.info(f"Database initialized at {self.db_path}")

    # Conversation memories

    def _row_to_memory(self, row: sqlite3.Row) -> ConversationMemory:
        return ConversationMemory(
            id=row["id"],
            user_id=row["user_id"],
            conversation_id=row["conversation_id"],
            summary=row["summary"],
            key_topics=json.loads(row["key_topics"]) if row["key_topics"] else [],
            importance=row["importance"],
            created_at=_parse_ts(row["created_at"]),
            last_accessed=_parse_ts(row["last_accessed"]),
        )

    def fetch_candidates(self, user_id: str, limit: int = 20) -> List[ConversationMemory]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversation_memories
                WHERE user_id = ?
                ORDER BY last_accessed DESC
                LIMIT ?
                """,
                (user_id, limit)
            ).fetchall()

        return [self._row_to_memory(row) for row in rows]

    def get(self, memory_id: str) -> Optional[ConversationMemory]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversation_memories WHERE id = ?",
                (memory_id,)
            ).fetchone()

        return self._row_to_memory(row) if row else None

    def upsert(self, memory: ConversationMemory):
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO conversation_memories
                (id, user_id, conversation_id, summary, key_topics, importance,
                 created_at, last_accessed)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory.id,
                    memory.user_id,
                    memory.conversation_id,
                    memory.summary,
                    json.dumps(memory.key_topics),
                    memory.importance,
                    _ts(memory.created_at),
                    _ts(memory.last_accessed),
                )
            )

    def touch_accessed(self, memory_id: str, when: Optional[datetime] = None):
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE conversation_memories SET last_accessed = ? WHERE id = ?",
                (_ts(when or datetime.now()), memory_id)
            )
            if cursor.rowcount == 0:
                raise MemoryStoreError(f"Memory not found: {memory_id}")

    # Conversations and turns

    def create_conversation(
        self,
        conversation_id: str,
        user_id: str,
        title: Optional[str] = None
    ) -> Conversation:
        """
        Create a new conversation.

        Args:
            conversation_id: Unique conversation ID
            user_id: Owner of the conversation
            title: Optional display title

        Returns:
            Created Conversation object
        """
        now = datetime.now()

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO conversations (conversation_id, user_id, title, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (conversation_id, user_id, title, _ts(now), _ts(now))
            )

        return Conversation(
            conversation_id=conversation_id,
            user_id=user_id,
            title=title,
            created_at=now,
            updated_at=now,
            turns=[]
        )

    def add_turn(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metadata: Optional[dict] = None
    ) -> ConversationTurn:
        """
        Add a turn to a conversation.

        Args:
            conversation_id: Conversation ID
            role: Role (user, assistant, system)
            content: Message content
            metadata: Optional metadata

        Returns:
            Created ConversationTurn object
        """
        now = datetime.now()
        metadata_json = json.dumps(metadata) if metadata else None

        with self._connect() as conn:
            result = conn.execute(
                "SELECT MAX(turn_id) FROM turns WHERE conversation_id = ?",
                (conversation_id,)
            ).fetchone()
            turn_id = (result[0] or 0) + 1

            conn.execute(
                """
                INSERT INTO turns (conversation_id, turn_id, role, content, timestamp, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (conversation_id, turn_id, role, content, _ts(now), metadata_json)
            )
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
                (_ts(now), conversation_id)
            )

        return ConversationTurn(
            turn_id=turn_id,
            role=role,
            content=content,
            timestamp=now,
            metadata=metadata
        )

    def _row_to_turn(self, row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            turn_id=row["turn_id"],
            role=row["role"],
            content=row["content"],
            timestamp=_parse_ts(row["timestamp"]),
            metadata=json.loads(row["metadata"]) if row["metadata"] else None
        )

    def _row_to_conversation(
        self,
        row: sqlite3.Row,
        turns: Optional[List[ConversationTurn]] = None
    ) -> Conversation:
        return Conversation(
            conversation_id=row["conversation_id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            turns=turns or []
        )

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get a conversation with all turns.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation object or None if not found
        """
        with self._connect() as conn:
            conv_row = conn.execute(
                "SELECT * FROM conversations WHERE conversation_id = ?",
                (conversation_id,)
            ).fetchone()

            if not conv_row:
                return None

            turn_rows = conn.execute(
                """
                SELECT turn_id, role, content, timestamp, metadata
                FROM turns
                WHERE conversation_id = ?
                ORDER BY turn_id
                """,
                (conversation_id,)
            ).fetchall()

        turns = [self._row_to_turn(row) for row in turn_rows]
        return self._row_to_conversation(conv_row, turns)

    def get_turn_count(self, conversation_id: str) -> int:
        """Get the number of turns in a conversation."""
        with self._connect() as conn:
            result = conn.execute(
                "SELECT COUNT(*) FROM turns WHERE conversation_id = ?",
                (conversation_id,)
            ).fetchone()

        return result[0] if result else 0

    def list_conversations(self, user_id: str, limit: int = 50) -> List[Conversation]:
        """
        List a user's conversations, most recently updated first.

        Args:
            user_id: Owner of the conversations
            limit: Maximum number of conversations

        Returns:
            List of Conversation objects (without turns)
        """
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversations
                WHERE user_id = ?
                ORDER BY updated_at DESC
                LIMIT ?
                """,
                (user_id, limit)
            ).fetchall()

        return [self._row_to_conversation(row) for row in rows]
