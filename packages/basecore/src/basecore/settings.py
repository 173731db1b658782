"""
Tracker settings.

All deployment parameters come from the environment (or a .env file).
None of them change ingestion semantics, only where things live.
"""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DB_HOST: str = "localhost"
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "whatsapp_tracker"
    DB_PORT: int = 3306
    DB_DRIVER: str = "mysql+aiomysql"
    DATABASE_URL: Optional[str] = None  # Overrides the DB_* parts when set
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False

    # Storage
    SESSION_PATH: str = "./session"
    MEDIA_PATH: str = "./media"
    QR_FILE_PATH: str = "whatsapp_qr.txt"

    # Runtime flags
    HEADLESS: bool = True
    CONTAINER_ENV: bool = False

    # Session gateway
    TRACKER_GATEWAY: str = "stub"  # evolution, stub
    EVOLUTION_API_URL: str = ""
    EVOLUTION_API_KEY: str = ""
    EVOLUTION_INSTANCE: str = "whatsapp-tracker"
    WEBHOOK_PUBLIC_URL: str = ""
    WEBHOOK_PORT: int = 8090

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def empty_url_is_none(cls, v):
        if v is None or v == "":
            return None
        return v

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the tracker database."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        url = URL.create(
            self.DB_DRIVER,
            username=self.DB_USER,
            password=self.DB_PASSWORD or None,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        )
        return url.render_as_string(hide_password=False)

    @property
    def webhook_host(self) -> str:
        return "0.0.0.0" if self.CONTAINER_ENV else "127.0.0.1"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
