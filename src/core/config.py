"""Configuration management using Pydantic settings."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Trak Assistant"
    VERSION: str = "1.0.0"

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # External data actions (workspace storage backend)
    DATA_ACTIONS_URL: str = Field(default="http://localhost:3000/api/assistant")
    DATA_ACTIONS_API_KEY: Optional[str] = Field(default=None)
    DATA_ACTIONS_TIMEOUT: float = Field(default=30.0)

    # Execution engine
    ENABLE_TEST_MODE: bool = Field(
        default=False,
        description="Propagate workspace/user identity to data actions for test environments"
    )
    PREFER_ATOMIC_RPC: bool = Field(
        default=True,
        description="Try composite 'full' RPCs before falling back to multi-step execution"
    )
    ROW_SCAN_LIMIT: int = Field(default=500, description="Max rows scanned when matching filters")
    DUPLICATE_CHECK_MIN_FETCH: int = Field(default=200)
    MEMBER_SEARCH_LIMIT: int = Field(default=5)
    ENTITY_SEARCH_LIMIT: int = Field(default=5)


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()


_settings: Optional[Settings] = None


def get_cached_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = get_settings()
    return _settings
