"""
Pydantic-based configuration management for Coding Agent Planner.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError


class AppSettings(BaseSettings):
    environment: str = Field("development", validation_alias="PLANNER_ENV")
    groq_api_key: Optional[str] = Field(None, validation_alias="GROQ_API_KEY")
    groq_model: str = Field("llama-3.1-70b-versatile", validation_alias="GROQ_MODEL")
    groq_max_tokens: int = Field(4096, validation_alias="GROQ_MAX_TOKENS")
    groq_temperature: float = Field(0.1, validation_alias="GROQ_TEMPERATURE")
    groq_base_url: str = Field(
        "https://api.groq.com/openai/v1/chat/completions", validation_alias="GROQ_BASE_URL"
    )
    request_timeout: float = Field(30.0, validation_alias="PLANNER_TIMEOUT")
    max_retries: int = Field(3, validation_alias="PLANNER_MAX_RETRIES")
    backoff_base: float = Field(1.0, validation_alias="PLANNER_BACKOFF_BASE")
    backoff_cap: float = Field(30.0, validation_alias="PLANNER_BACKOFF_CAP")
    max_context_chars: int = Field(50000, validation_alias="PLANNER_MAX_CONTEXT_CHARS")
    max_intent_chars: int = Field(1000, validation_alias="PLANNER_MAX_INTENT_CHARS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",  # Allow extra fields from .env file
    )


settings = AppSettings()


@dataclass
class GroqConfig:
    api_key: str
    model: str
    max_tokens: int
    temperature: float
    base_url: str
    timeout: float


def get_groq_config(app_settings: Optional[AppSettings] = None) -> GroqConfig:
    """
    Build the generation-service configuration, failing when no API key is set.
    """
    s = app_settings or settings
    if not s.groq_api_key:
        raise ConfigurationError("GROQ_API_KEY environment variable is required")
    return GroqConfig(
        api_key=s.groq_api_key,
        model=s.groq_model,
        max_tokens=s.groq_max_tokens,
        temperature=s.groq_temperature,
        base_url=s.groq_base_url,
        timeout=s.request_timeout,
    )


"""
Usage:
    from coding_agent_planner.config.settings import settings, get_groq_config

    # Access environment-based config
    print(settings.groq_model)

    # Config for the generation client (raises ConfigurationError without a key)
    cfg = get_groq_config()
"""
