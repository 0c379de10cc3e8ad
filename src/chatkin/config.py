"""Configuration management for Chatkin."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from chatkin.errors import ApiKeyNotConfiguredError, StoreNotConfiguredError

DEFAULT_MODEL = "claude-3-5-haiku-20241022"


class ChatMode(str, Enum):
    """Conversation mode selected by the user."""

    CHAT = "chat"
    ACTION = "action"


@dataclass(frozen=True)
class ModeParams:
    temperature: float
    max_tokens: int


MODE_PARAMS: dict[ChatMode, ModeParams] = {
    ChatMode.CHAT: ModeParams(temperature=0.7, max_tokens=2048),
    ChatMode.ACTION: ModeParams(temperature=0.3, max_tokens=4096),
}


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CHATKIN_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Model provider
    anthropic_api_key: str | None = Field(default=None, description="API key for the model provider")
    model: str = Field(default=DEFAULT_MODEL, description="Model used for chat turns")
    summary_model: str = Field(default=DEFAULT_MODEL, description="Model used for conversation summaries")
    max_iterations: int = Field(default=10, ge=1, description="Maximum provider calls per chat turn")
    request_timeout_seconds: float = Field(default=60.0, description="Timeout for outbound HTTP calls")

    # Workspace datastore and file storage
    supabase_url: str | None = Field(default=None, description="Base URL of the workspace datastore")
    supabase_anon_key: str | None = Field(default=None, description="Public API key of the workspace datastore")
    storage_url: str | None = Field(default=None, description="Base URL for permanent file storage")
    temp_storage_url: str | None = Field(default=None, description="Base URL for temporary uploads")

    # Conversation memory
    summarize_threshold: int = Field(default=60, description="Message count at which compaction starts")
    summarize_every: int = Field(default=10, description="Compaction cadence once past the threshold")
    keep_recent_messages: int = Field(default=50, description="Messages kept verbatim after compaction")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def rest_url(self) -> str:
        if not self.supabase_url or not self.supabase_anon_key:
            raise StoreNotConfiguredError("Workspace store not configured. Set CHATKIN_SUPABASE_URL and CHATKIN_SUPABASE_ANON_KEY.")
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def resolved_api_key(self) -> str:
        if not self.anthropic_api_key:
            raise ApiKeyNotConfiguredError("Model provider API key missing. Set CHATKIN_ANTHROPIC_API_KEY.")
        return self.anthropic_api_key

    def mode_params(self, mode: ChatMode) -> ModeParams:
        return MODE_PARAMS[mode]


def load_settings(**overrides: object) -> Settings:
    """Load settings from the environment and ``.env``, then apply overrides."""
    settings = Settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)
    return settings
