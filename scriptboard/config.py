"""
Configuration management for Scriptboard
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Scriptboard"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./scriptboard.db"

    # Uploads
    upload_dir: str = "./uploads"
    max_upload_bytes: int = 100 * 1024 * 1024
    allowed_upload_extensions: List[str] = [".xlsx", ".xls"]
    upload_batch_size: int = 100

    # Scheduled full recompute (safety net for missed background triggers)
    enable_scheduled_recompute: bool = True
    scheduled_recompute_hour: int = 3
    scheduled_recompute_minute: int = 0
    scheduler_timezone: str = "Asia/Shanghai"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
