"""Runtime configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent core settings loaded from ``TABPILOT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TABPILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Observability
    service_name: str = "tabpilot-agent"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Tool dispatch
    tool_timeout_seconds: float = Field(default=15.0, gt=0)

    # Tab fan-out
    session_context_timeout_seconds: float = Field(default=10.0, gt=0)
    session_action_timeout_seconds: float = Field(default=15.0, gt=0)
    host_command_timeout_seconds: float = Field(default=10.0, gt=0)

    # Intent tracking
    intent_history_limit: int = Field(default=10, ge=1)

    # HTTP / WebSocket server
    server_host: str = "0.0.0.0"
    server_port: int = 8000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
