"""Configuration management for the CRSC filing engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Anthropic configuration
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Environment
    CRSC_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    API_HOST: str = Field(default="0.0.0.0", description="Bind address for uvicorn")
    API_PORT: int = Field(default=8000, description="Port for uvicorn")

    # Chat orchestration
    CHAT_MODEL: str = Field(default="claude-sonnet-4-20250514", description="Model for the chat loop")
    CHAT_MAX_TOKENS: int = Field(default=4000, description="Max tokens per chat model round")
    MAX_TOOL_ROUNDS: int = Field(
        default=8, description="Upper bound on model rounds per chat message"
    )

    # Document extraction
    EXTRACTION_MODEL: str = Field(
        default="claude-sonnet-4-20250514", description="Vision model for document extraction"
    )
    EXTRACTION_MAX_TOKENS: int = Field(default=4000, description="Max tokens for extraction replies")
    MAX_UPLOAD_BYTES: int = Field(
        default=10 * 1024 * 1024, description="Max document size accepted for extraction"
    )

    # Upper wait bounds
    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=90.0, description="Max wait for a model round-trip (per chunk when streaming)"
    )
    STORE_TIMEOUT_SECONDS: float = Field(default=15.0, description="Max wait for a store call")

    # Chat rate limiting (per user)
    CHAT_RATE_LIMIT_PER_MINUTE: int = Field(default=10, description="Sustained chat requests/minute")
    CHAT_RATE_LIMIT_BURST: int = Field(default=15, description="Chat burst size")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
