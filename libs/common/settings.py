"""Application settings for the Redis + Milvus + OpenAI news chat service."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSLINE_",
        env_file=None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Core application settings
    app_env: Literal["development", "test", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT", "NEWSLINE_PORT"))

    # CORS - use string to avoid JSON parsing issues
    cors_origins_str: str = Field(default="*", validation_alias=AliasChoices("NEWSLINE_CORS_ORIGINS"))

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from string."""
        if not self.cors_origins_str.strip():
            return ["*"]
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    # Conversation history
    history_ttl_seconds: int = Field(
        default=86400,
        validation_alias=AliasChoices("HISTORY_TTL_SECONDS", "NEWSLINE_HISTORY_TTL_SECONDS"),
    )
    max_history_turns: int = 50

    # Session store
    redis_url: str = Field(
        default="redis://localhost:6379",
        validation_alias=AliasChoices("REDIS_URL", "NEWSLINE_REDIS_URL"),
    )

    # Vector index
    milvus_endpoint: Optional[str] = Field(default=None, validation_alias=AliasChoices("MILVUS_ENDPOINT"))
    milvus_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("MILVUS_TOKEN"))
    milvus_collection_name: str = Field(default="news", validation_alias=AliasChoices("MILVUS_COLLECTION_NAME"))
    search_top_k: int = 5

    # Embeddings (must match the collection's vector dimension)
    embedding_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("EMBEDDING_API_KEY", "OPENAI_API_KEY"),
    )
    embedding_model: str = Field(
        default="text-embedding-3-small",
        validation_alias=AliasChoices("OPENAI_EMBEDDING_MODEL"),
    )
    embedding_dimensions: int = Field(default=1536, validation_alias=AliasChoices("EMBEDDING_DIMENSIONS"))

    # Generation
    generation_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GENERATION_API_KEY", "OPENAI_API_KEY"),
    )
    generation_model: str = Field(default="gpt-4o-mini", validation_alias=AliasChoices("OPENAI_MODEL"))
    generation_temperature: float = 0.7
    generation_max_tokens: int = 800

    @field_validator("history_ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """History must expire eventually."""
        if v <= 0:
            raise ValueError("History TTL must be a positive number of seconds")
        return v

    @field_validator("search_top_k", "embedding_dimensions")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("max_history_turns")
    @classmethod
    def validate_max_turns(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_history_turns must be 0 (unbounded) or positive")
        return v

    def missing_credentials(self) -> List[str]:
        """Names of the external credentials that are not configured."""
        required = {
            "MILVUS_ENDPOINT": self.milvus_endpoint,
            "MILVUS_TOKEN": self.milvus_token,
            "EMBEDDING_API_KEY": self.embedding_api_key,
            "GENERATION_API_KEY": self.generation_api_key,
        }
        return [name for name, value in required.items() if not value]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
