"""
Leasy configuration

Values come from the environment or a .env file. SQLite is the default
database; DATABASE_URL points production at PostgreSQL.
"""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


ROOT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Deployment settings; duplicate detection weights live in the database"""

    # ===========================================
    # APPLICATION
    # ===========================================
    APP_NAME: str = "Leasy"
    APP_VERSION: str = Field(default="2025.07.21", alias="APP_VERSION")
    DEBUG: bool = Field(default=False, alias="DEBUG")
    SECRET_KEY: str = Field(default="dev-secret-key-change-in-production", alias="SECRET_KEY")
    LOG_LEVEL: str = Field(default="INFO", alias="LOG_LEVEL")

    # ===========================================
    # DATABASE
    # ===========================================
    DATABASE_URL: str = Field(
        default=f"sqlite:///{ROOT_DIR / 'data' / 'leasy.db'}",
        alias="DATABASE_URL"
    )

    # ===========================================
    # IMPORTS
    # ===========================================
    MAX_CONTENT_LENGTH_MB: int = Field(default=20, alias="MAX_CONTENT_LENGTH_MB")
    BULK_MAX_ROWS: int = Field(default=5000, alias="BULK_MAX_ROWS")
    CSV_PAGE_SIZE: int = Field(default=50, alias="CSV_PAGE_SIZE")

    # ===========================================
    # DUPLICATE DETECTION
    # ===========================================
    MEDIA_HASH_ENABLED: bool = Field(default=False, alias="MEDIA_HASH_ENABLED")
    MEDIA_HASH_TIMEOUT: int = Field(default=10, alias="MEDIA_HASH_TIMEOUT")
    MEDIA_HASH_RETRIES: int = Field(default=3, alias="MEDIA_HASH_RETRIES")
    MEDIA_HASH_RETRY_DELAY: float = Field(default=0.5, alias="MEDIA_HASH_RETRY_DELAY")
    # consecutive failed downloads before image fetching pauses
    MEDIA_HASH_BREAKER_THRESHOLD: int = Field(default=5, alias="MEDIA_HASH_BREAKER_THRESHOLD")
    MEDIA_HASH_BREAKER_RESET: int = Field(default=60, alias="MEDIA_HASH_BREAKER_RESET")

    # ===========================================
    # ERROR LOG
    # ===========================================
    ERROR_LOG_RETENTION_DAYS: int = Field(default=7, alias="ERROR_LOG_RETENTION_DAYS")

    # ===========================================
    # ADMIN USER
    # ===========================================
    ADMIN_EMAIL: str = Field(default="admin@leasy.local", alias="ADMIN_EMAIL")
    ADMIN_PASSWORD: str = Field(default="admin123", alias="ADMIN_PASSWORD")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def database_uri(self) -> str:
        """SQLAlchemy URI, with the legacy postgres:// scheme rewritten"""
        if self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
        return self.DATABASE_URL

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database"""
        return self.database_uri.startswith("sqlite")


# Global settings instance
settings = Settings()
