"""Summarization backed by a chat completion model."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from llm.base_client import BaseLLMClient, Message, LLMError, LLMErrorKind
from .models import ChatMessage


SUMMARY_PROMPT = """Summarize the following conversation in 2-3 sentences.
Extract key topics and important information that would be useful for future context.

Conversation:
{transcript}

Summary:"""

TOPICS_PROMPT = """Extract 3-5 key topics from this conversation summary:
{summary}

Topics (comma-separated):"""


def build_summary_prompt(messages: Sequence[ChatMessage]) -> str:
    transcript = "\n".join(msg.render() for msg in messages)
    return SUMMARY_PROMPT.format(transcript=transcript)


def build_topics_prompt(summary: str) -> str:
    return TOPICS_PROMPT.format(summary=summary)


def parse_topics(text: str) -> List[str]:
    """Split a comma-separated topic list, dropping blanks."""
    return [topic.strip() for topic in text.split(",") if topic.strip()]


class Summarizer(ABC):
    """Single free-text completion used to produce summaries and topics."""

    @abstractmethod
    def summarize_text(self, prompt: str) -> str:
        """
        Complete a prompt.

        Raises:
            LLMError: With a kind distinguishing quota, rate limit, auth and
                other failures
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether calls can be attempted at all."""
        pass


class LLMSummarizer(Summarizer):
    """Summarizer that sends prompts to a chat client."""

    def __init__(
        self,
        llm_client: Optional[BaseLLMClient],
        temperature: float = 0.3,
        max_tokens: int = 300
    ):
        self.llm_client = llm_client
        self.temperature = temperature
        self.max_tokens = max_tokens

    def is_configured(self) -> bool:
        return self.llm_client is not None and self.llm_client.is_configured()

    def summarize_text(self, prompt: str) -> str:
        if not self.is_configured():
            raise LLMError("No LLM client configured for summarization", kind=LLMErrorKind.UNAVAILABLE)

        response = self.llm_client.chat(
            messages=[Message(role="user", content=prompt)],
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )
        return response.content.strip()
