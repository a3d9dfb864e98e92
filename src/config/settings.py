"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from prompts.loader import load_prompt


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, description="Port the WebSocket server listens on.")

    # Telephony provider credentials (kept for the provider dashboard, not verified here)
    retell_api_key: str | None = Field(default=None)

    # LLM connectivity
    llm_provider: Literal["openclaw", "openai"] = Field(default="openclaw")
    llm_endpoint: str | None = Field(
        default=None, description="Base URL of the upstream chat completion server."
    )
    llm_api_key: str | None = Field(default=None)
    llm_model: str = Field(
        default="openclaw",
        description="Model identifier for the selected provider.",
    )
    llm_max_tokens: int = Field(default=300, gt=0)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(default=60.0, gt=0)
    llm_streaming: bool = Field(
        default=True,
        description="If false, responses are requested whole and sent as a single fragment.",
    )

    # Persona
    system_prompt: str | None = Field(
        default=None,
        description="Instruction text; falls back to the bundled voice assistant persona.",
    )

    # Response chunking
    response_chunk_size: int = Field(
        default=20, description="Characters to accumulate before sending a chunk."
    )
    max_tts_length: int = Field(default=500)
    farewell_message: str = Field(default="Goodbye!")
    begin_message: str = Field(
        default="",
        description="Optional greeting spoken as soon as a call connects.",
    )

    active_call_log_interval_seconds: float = Field(default=60.0, gt=0)

    @field_validator("response_chunk_size", "max_tts_length")
    @classmethod
    def ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive.")
        return value

    def resolved_system_prompt(self) -> str:
        if self.system_prompt and self.system_prompt.strip():
            return self.system_prompt.strip()

        return load_prompt("voice_assistant.txt").strip()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
