"""Lexical relevance scoring of stored memories against a query."""

from .models import ConversationMemory


def score(query: str, memory: ConversationMemory) -> float:
    """
    Score a memory against a query by word overlap.

    The fraction of query words found anywhere in the memory's topics or
    summary, weighted by the memory's importance. Matching is exact on
    lowercased whitespace-separated words; no stemming or synonyms.

    Args:
        query: Current user message
        memory: Candidate memory

    Returns:
        Score in [0, importance]; 0.0 for an empty query
    """
    query_words = query.lower().split()
    if not query_words:
        return 0.0

    memory_words = set(" ".join(memory.key_topics).lower().split())
    memory_words.update(memory.summary.lower().split())

    matches = sum(1 for word in query_words if word in memory_words)
    return (matches / len(query_words)) * memory.importance
