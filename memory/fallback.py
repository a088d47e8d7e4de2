"""Offline summaries for when the summarization model cannot be used."""

import re
from collections import Counter
from typing import Sequence

from .models import ChatMessage, FallbackSummary

MAX_TOPICS = 5
SUMMARY_TOPICS = 3
EXCERPT_LENGTH = 50
MIN_WORD_LENGTH = 4

_NON_WORD = re.compile(r"[^\w\s]")


def fallback_summarize(messages: Sequence[ChatMessage]) -> FallbackSummary:
    """
    Build a summary and topic list from word frequencies.

    Topics are the most frequent words longer than three characters; ties
    keep first-seen order. Deterministic for identical input.

    Args:
        messages: Conversation transcript, oldest first

    Returns:
        FallbackSummary (topics may be empty)
    """
    text = " ".join(msg.content for msg in messages).lower()
    words = [
        word for word in _NON_WORD.sub("", text).split()
        if len(word) >= MIN_WORD_LENGTH
    ]

    # Counter keeps insertion order, and most_common sorts stably
    key_topics = [word for word, _ in Counter(words).most_common(MAX_TOPICS)]

    if key_topics:
        summary = f"Conversation about {', '.join(key_topics[:SUMMARY_TOPICS])}"
    else:
        summary = "Conversation about general topics"

    if messages:
        first = messages[0].content.strip()
        last = messages[-1].content.strip()
        if first and last:
            summary += (
                f'. Started with: "{first[:EXCERPT_LENGTH]}"'
                f' and ended with: "{last[:EXCERPT_LENGTH]}"'
            )

    return FallbackSummary(summary=summary, key_topics=key_topics)
