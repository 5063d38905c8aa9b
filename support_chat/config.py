"""
Application configuration using Pydantic Settings.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    database_path: str = "/data/chat.db"
    redis_url: str = "redis://localhost:6379"

    claude_code_oauth_token: Optional[str] = None
    claude_model: Optional[str] = None
    completion_timeout_seconds: float = 25.0

    max_message_length: int = 250
    session_message_limit: int = 100
    context_window_size: int = 10

    # Lock and cache lifetimes are independent of each other
    lock_ttl_seconds: int = 30
    session_ttl_seconds: int = 1800
    history_cache_ttl_seconds: int = 1800

    history_default_limit: int = 50
    history_max_limit: int = 100

    cors_origins: List[str] = ["http://localhost:5173"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
