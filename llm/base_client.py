"""Base LLM client interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, List, Dict
from pydantic import BaseModel


class LLMErrorKind(str, Enum):
    """Classification of a failed completion call."""
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    UNAVAILABLE = "unavailable"  # No API key or client configured
    OTHER = "other"


# Failures caused by usage caps rather than misconfiguration
QUOTA_ERROR_KINDS = frozenset({LLMErrorKind.QUOTA_EXCEEDED, LLMErrorKind.RATE_LIMITED})


class LLMError(Exception):
    """Completion call failed; `kind` says why."""

    def __init__(self, message: str, kind: LLMErrorKind = LLMErrorKind.OTHER):
        super().__init__(message)
        self.kind = kind

    @property
    def is_quota_error(self) -> bool:
        """True for failures caused by usage caps rather than misconfiguration."""
        return self.kind in QUOTA_ERROR_KINDS


class Message(BaseModel):
    """Chat message."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        temperature: float = 0.7,
        max_tokens: int = 1000
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens in response

        Returns:
            LLMResponse with content

        Raises:
            LLMError: If the provider rejects or fails the request
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the client has credentials and an SDK client to call."""
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        """Get the name of the model being used."""
        pass
