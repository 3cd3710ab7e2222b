from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
import os

class Settings(BaseSettings):
    # App Settings
    app_name: str = "Photo2Video"
    app_version: str = "1.0.0"
    app_url: str = "http://localhost:8000"
    debug: bool = False

    # Database - DATABASE_URL in production, fallback to SQLite for local
    database_url: Optional[str] = None

    # Video providers
    video_provider: str = "kling"  # Preferred provider for new jobs
    kling_enabled: bool = False
    kling_api_url: str = "https://api.kling.ai/v1"
    kling_api_key: str = ""
    kling_secret_key: str = ""
    kling_timeout: float = 30.0  # Seconds per outbound call

    # Backup provider sample asset (copied into storage on fetch)
    backup_sample_video: Optional[str] = "./storage/sample.mp4"

    # Local file storage
    storage_dir: str = "./storage/public"
    storage_url: str = "/storage"

    # Telegram notifications
    telegram_bot_token: str = ""
    telegram_timeout: float = 30.0

    # Worker
    worker_sleep_interval: float = 60.0
    max_concurrent_jobs: int = 5
    default_max_attempts: int = 3
    run_worker_in_app: bool = False

    # Credits
    credits_per_video: int = 1

    # API Settings
    allowed_origins: str = "http://localhost:3000"
    backend_host: str = "0.0.0.0"
    backend_port: int = int(os.getenv("PORT", "8000"))

    class Config:
        env_file = ".env"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.database_url is None:
            self.database_url = "sqlite+aiosqlite:///./database/photo2video.db"
        elif self.database_url.startswith("postgres://"):
            # SQLAlchemy async needs postgresql+asyncpg://
            self.database_url = self.database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.database_url.startswith("postgresql://"):
            self.database_url = self.database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    @property
    def kling_configured(self) -> bool:
        """Kling needs the explicit flag plus both credentials"""
        return self.kling_enabled and bool(self.kling_api_key) and bool(self.kling_secret_key)

@lru_cache()
def get_settings() -> Settings:
    return Settings()
