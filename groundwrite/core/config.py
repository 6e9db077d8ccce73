"""Configuration management for groundwrite."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
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

    # OpenAI configuration (embeddings for chunk ingestion and search)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Anthropic configuration (draft generation)
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    GROUNDWRITE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")
    LOG_LEVEL: str = Field(
        default="", description="Log level name; empty derives it from GROUNDWRITE_ENV"
    )

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Generation configuration
    GENERATION_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for draft generation"
    )
    GENERATION_MAX_STEPS: int = Field(
        default=8, description="Max completion turns in the citation tool loop"
    )

    # Academic API fallback (OpenAlex)
    OPENALEX_BASE_URL: str = Field(
        default="https://api.openalex.org", description="OpenAlex API base URL"
    )
    OPENALEX_MAILTO: str = Field(default="", description="Contact email for the OpenAlex polite pool")
    ACADEMIC_SEARCH_TIMEOUT: float = Field(
        default=20.0, description="Timeout in seconds for academic API requests"
    )


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
