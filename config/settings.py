"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openai"  # "openai" or "anthropic"
    llm_model: Optional[str] = None  # Override the provider's default model

    # API Keys
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    # Storage
    memory_enabled: bool = True
    db_path: str = "data/conversations.db"

    # Summary cadence. The per-turn rolling summary and the persisted
    # post-turn summary run on separate thresholds.
    rolling_summary_threshold: int = Field(5, ge=1)
    persist_summary_threshold: int = Field(8, ge=1)

    # Retrieval
    memory_candidate_limit: int = Field(20, ge=1)
    relevant_memory_limit: int = Field(3, ge=0)

    # Quota breaker
    quota_error_threshold: int = Field(3, ge=1)
    quota_cooldown_seconds: float = Field(3600.0, ge=0)

    # Prompting
    prompt_recent_messages: int = 6
    chat_temperature: float = 0.7
    chat_max_tokens: int = 1000
    summary_temperature: float = 0.3
    summary_max_tokens: int = 300

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load API keys from environment if not provided
        if data.get("openai_api_key") is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if data.get("anthropic_api_key") is None:
            data["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openai":
            return self.openai_api_key
        elif self.llm_provider == "anthropic":
            return self.anthropic_api_key
        return None
