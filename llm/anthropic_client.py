"""Anthropic Claude LLM client implementation."""

import os
import logging
from typing import Optional, List

import anthropic

from .base_client import BaseLLMClient, Message, LLMResponse, LLMError, LLMErrorKind

logger = logging.getLogger(__name__)


def classify_anthropic_error(error: Exception) -> LLMErrorKind:
    """Map an Anthropic SDK exception to an LLMErrorKind."""
    if isinstance(error, anthropic.RateLimitError):
        return LLMErrorKind.RATE_LIMITED
    if isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return LLMErrorKind.AUTH_FAILED
    # Exhausted prepaid credit comes back as a 400
    if isinstance(error, anthropic.BadRequestError) and "credit balance" in str(error).lower():
        return LLMErrorKind.QUOTA_EXCEEDED
    return LLMErrorKind.OTHER


class AnthropicClient(BaseLLMClient):
    """Anthropic Claude client implementation."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (falls back to ANTHROPIC_API_KEY env var)
            model: Model to use (default: claude-sonnet-4-20250514)
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or self.DEFAULT_MODEL
        self.client: Optional[anthropic.Anthropic] = None

        if self.api_key:
            self.client = anthropic.Anthropic(api_key=self.api_key)
            logger.info(f"Anthropic client initialized with model: {self.model}")
        else:
            logger.warning("No Anthropic API key provided")

    def is_configured(self) -> bool:
        return self.client is not None

    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """Send chat completion request to Anthropic."""
        if not self.client:
            raise LLMError(
                "Anthropic client not initialized. Check API key.",
                kind=LLMErrorKind.UNAVAILABLE
            )

        # Separate system message from conversation
        system_content = ""
        conversation_messages = []

        for msg in messages:
            if msg.role == "system":
                system_content += msg.content + "\n"
            else:
                conversation_messages.append({
                    "role": msg.role,
                    "content": msg.content
                })

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation_messages,
        }

        if system_content:
            kwargs["system"] = system_content.strip()

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.AnthropicError as e:
            kind = classify_anthropic_error(e)
            logger.error(f"Anthropic API error ({kind.value}): {e}")
            raise LLMError(str(e), kind=kind) from e

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            }

        return LLMResponse(
            content=content,
            usage=usage,
            finish_reason=response.stop_reason
        )

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "anthropic"

    def get_model_name(self) -> str:
        """Get the model name."""
        return self.model
