from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Recipe media settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "RecipeMedia"
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "recipes"

    @property
    def DATABASE_URL(self) -> str:
        """Async MySQL connection string using asyncmy driver."""
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Auth ---
    JWT_SECRET: str = "dev-secret-change-me"
    JWT_ALG: str = "HS256"

    # --- Cloudflare (Images + Stream) ---
    CF_API_BASE: str = "https://api.cloudflare.com/client/v4"
    CF_ACCOUNT_ID: str = ""
    CF_API_TOKEN: str = ""
    CF_IMAGES_ACCOUNT_HASH: str = ""
    CF_STREAM_WEBHOOK_SECRET: str = ""

    # --- Upload pipeline (client side) ---
    MEDIA_API_BASE_URL: str = "http://localhost:8000/api"
    HTTP_TIMEOUT: float = 60.0
    VIDEO_POLL_INTERVAL: float = 3.0
    VIDEO_POLL_MAX_ATTEMPTS: int = 120  # 6 minutes at the default interval
    VIDEO_TRANSFER_MODE: str = "form"  # form | tus (tus targets need fileSize)
    VIDEO_CHUNK_SIZE: int = 5 * 1024 * 1024
    VIDEO_MAX_DURATION_SECONDS: int = 600
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024
    MAX_VIDEO_BYTES: int = 500 * 1024 * 1024

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
