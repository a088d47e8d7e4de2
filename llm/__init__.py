"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, LLMError, LLMErrorKind, QUOTA_ERROR_KINDS
from .factory import create_llm_client, LLMProvider

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "LLMError",
    "LLMErrorKind",
    "QUOTA_ERROR_KINDS",
    "create_llm_client",
    "LLMProvider",
]
