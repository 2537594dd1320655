"""Configuration management for Skill Track Service."""

from typing import List
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
import json


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    # Application
    APP_NAME: str = "Skill Track Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")
    SERVICE_NAME: str = "skilltrack-service"
    SERVICE_PORT: int = 8005

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./skilltrack.db"
    DATABASE_ECHO: bool = False

    # Persistence gateway
    GATEWAY_BACKEND: str = Field(default="sql", pattern="^(sql|http)$")
    BACKEND_URL: str = "http://localhost:5000/api"
    BACKEND_TIMEOUT: float = 30.0

    # Cache
    CACHE_URL: str = "memory://"
    TRACK_CACHE_TTL: int = 300  # 5 minutes

    # Layout engine
    LAYOUT_NODE_WIDTH: int = 280
    LAYOUT_NODE_HEIGHT: int = 140
    LAYOUT_NODE_SPACING: int = 100
    LAYOUT_RANK_SPACING: int = 180
    LAYOUT_MARGIN_X: int = 150
    LAYOUT_MARGIN_Y: int = 100
    LAYOUT_OFFSET_X: int = 200
    LAYOUT_ROW_BUCKET: int = 50
    AUTO_LAYOUT_ON_STRUCTURE_CHANGE: bool = True

    # Editor defaults
    DEFAULT_MODULE_XP: int = 100
    DEFAULT_MODULE_X: float = 100
    DEFAULT_MODULE_Y: float = 100
    DUPLICATE_OFFSET: float = 60

    # Rewards
    XP_PER_QUIZ: int = 50
    SCORE_PER_QUIZ: int = 10
    MODULE_PASSING_THRESHOLD: float = 70.0

    # Unlock propagation
    UNLOCK_POLICY: str = Field(default="prerequisites", pattern="^(prerequisites|sequential)$")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    LOG_FORMAT: str = Field(default="json", pattern="^(json|plain)$")

    # CORS
    CORS_ORIGINS: List[str] = Field(default_factory=list)

    @field_validator("CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    # Monitoring
    ENABLE_METRICS: bool = True

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
