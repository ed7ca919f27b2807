"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./circle_scheduler.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "http://localhost:3000"

    # Outbox dispatcher
    OUTBOX_DISPATCHER_ENABLED: bool = True
    OUTBOX_POLL_INTERVAL_SECONDS: float = 5.0
    OUTBOX_BATCH_SIZE: int = 10
    OUTBOX_MAX_RETRIES: int = 3
    OUTBOX_RETENTION_DAYS: int = 7

    # Circle invitations
    INVITATION_TTL_DAYS: int = 7

    class Config:
        env_file = ".env"


settings = Settings()
