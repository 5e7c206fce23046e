from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    API_V1_PREFIX: str = "/api/v1"

    # Security
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_ALGORITHM: str = "HS256"

    # Database
    DATABASE_URL: str | None = None  # Overrides the POSTGRES_* settings when set
    POSTGRES_HOST: str = "db"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "chat_inbox"
    AUTO_CREATE_TABLES: bool = False  # Create missing tables on startup instead of via Alembic

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"
    REALTIME_CHANNEL: str = "realtime:changes"
    SIGNUP_RATE_LIMIT_PER_MINUTE: int = 30

    # Attachments
    UPLOAD_DIR: str = "uploads"
    UPLOAD_PUBLIC_URL: str = "/api/v1/upload/files"

    # User directory
    ADD_USER_COOLDOWN_SECONDS: float = 2.0
    IDENTITY_MAX_RETRIES: int = 3
    IDENTITY_RETRY_DELAY_SECONDS: float = 2.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
