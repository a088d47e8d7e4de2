"""OpenAI LLM client implementation."""

import os
import logging
from typing import Optional, List

import openai
from openai import OpenAI

from .base_client import BaseLLMClient, Message, LLMResponse, LLMError, LLMErrorKind

logger = logging.getLogger(__name__)


def classify_openai_error(error: Exception) -> LLMErrorKind:
    """
    Map an OpenAI SDK exception to an LLMErrorKind.

    A 429 carrying the `insufficient_quota` code means the account is out of
    credit; any other 429 is a transient rate limit.
    """
    if isinstance(error, openai.RateLimitError):
        if getattr(error, "code", None) == "insufficient_quota":
            return LLMErrorKind.QUOTA_EXCEEDED
        return LLMErrorKind.RATE_LIMITED
    if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return LLMErrorKind.AUTH_FAILED
    return LLMErrorKind.OTHER


class OpenAIClient(BaseLLMClient):
    """OpenAI GPT client implementation."""

    DEFAULT_MODEL = "gpt-5.2"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (falls back to OPENAI_API_KEY env var)
            model: Model to use (falls back to OPENAI_MODEL env var, then gpt-5.2)
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("OPENAI_MODEL") or self.DEFAULT_MODEL
        self.client: Optional[OpenAI] = None

        if self.api_key:
            self.client = OpenAI(api_key=self.api_key)
            logger.info(f"OpenAI client initialized with model: {self.model}")
        else:
            logger.warning("No OpenAI API key provided")

    def is_configured(self) -> bool:
        return self.client is not None

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Send chat completion request to OpenAI."""
        if not self.client:
            raise LLMError(
                "OpenAI client not initialized. Check API key.",
                kind=LLMErrorKind.UNAVAILABLE
            )

        openai_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=openai_messages,
                temperature=temperature,
                max_completion_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            kind = classify_openai_error(e)
            logger.error(f"OpenAI API error ({kind.value}): {e}")
            raise LLMError(str(e), kind=kind) from e

        choice = response.choices[0]
        content = choice.message.content or ""

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=content,
            usage=usage,
            finish_reason=choice.finish_reason
        )

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openai"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
