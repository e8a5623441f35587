"""Application configuration using Pydantic BaseSettings"""
import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Setup logging
logger = logging.getLogger("config")

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    LOG_LEVEL: str = "INFO"

    # Persistence
    DATABASE_URL: str = "sqlite:///./videohop.db"
    ACCOUNT_STORE: str = "memory"  # memory | database
    ENCRYPTION_KEY: str = ""

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    YOUTUBE_UPLOAD_URL: str = "https://www.googleapis.com/upload/youtube/v3/videos"

    # TikTok OAuth / API
    TIKTOK_CLIENT_KEY: str = ""
    TIKTOK_CLIENT_SECRET: str = ""
    TIKTOK_TOKEN_URL: str = "https://open.tiktokapis.com/v2/oauth/token/"
    TIKTOK_API_BASE: str = "https://open.tiktokapis.com/v2"

    # Token lifecycle
    TOKEN_EXPIRY_SKEW_SECONDS: int = 60  # refresh one minute early
    TOKEN_REFRESH_MAX_RETRIES: int = 5
    TOKEN_REFRESH_BASE_DELAY: float = 1.0  # seconds
    TOKEN_REFRESH_JITTER: float = 1.0  # seconds
    TOKEN_CHECK_INTERVAL: int = 300  # 5 minutes
    TOKEN_REFRESH_THRESHOLD: int = 1800  # 30 minutes
    TOKEN_MONITOR_MAX_FAILURES: int = 5

    # Uploads
    UPLOAD_TIMEOUT: float = 300.0  # wall clock for a single upload attempt
    HTTP_TIMEOUT: float = 30.0
    CHUNK_UPLOAD_TIMEOUT: float = 300.0
    TIKTOK_STATUS_POLL_INTERVAL: float = 2.0
    TIKTOK_STATUS_POLL_ATTEMPTS: int = 60
    MAX_FILE_SIZE: int = 10 * 1024 * MIB  # 10GB in bytes

    # Pydantic V2 Config
    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("ACCOUNT_STORE")
    @classmethod
    def check_account_store(cls, v):
        if v not in ("memory", "database"):
            raise ValueError(f"ACCOUNT_STORE must be 'memory' or 'database', got {v!r}")
        return v


# Create global settings instance
settings = Settings()

# --- Module-level Constants (Extracted from settings) ---
GOOGLE_TOKEN_URL = settings.GOOGLE_TOKEN_URL
YOUTUBE_UPLOAD_URL = settings.YOUTUBE_UPLOAD_URL
TIKTOK_TOKEN_URL = settings.TIKTOK_TOKEN_URL

# Derived constants
TIKTOK_INIT_UPLOAD_URL = f"{settings.TIKTOK_API_BASE}/post/publish/video/init/"
TIKTOK_STATUS_URL = f"{settings.TIKTOK_API_BASE}/post/publish/status/fetch/"

PLATFORMS = ("youtube", "tiktok")
