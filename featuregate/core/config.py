"""
Application configuration
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Feature gate settings"""

    # Application
    APP_NAME: str = "featuregate"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"
    LOG_LEVEL: Optional[str] = None  # Falls back to DEBUG/INFO based on DEBUG

    # Storage backend: "memory", "sqlalchemy" or "redis"
    FEATUREGATE_ADAPTER: str = "sqlalchemy"

    # Database
    DATABASE_URL: str = "sqlite:///./featuregate.db"
    DB_POOL_PRE_PING: bool = True
    DB_ECHO: bool = False

    # Storage location (table names for the SQL adapter)
    FEATURES_TABLE: str = "features"
    FEATURE_GATES_TABLE: str = "feature_gates"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "featuregate"

    # Registry cache
    FEATURE_CACHE_TTL: int = 60  # seconds
    FEATURE_CACHE_MAX_SIZE: int = 1000

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# Global settings instance
settings = Settings()
