"""Logging configuration for the application"""
import logging

from videohop.core.config import settings


def setup_logging():
    """Configure logging for the application"""
    LOG_LEVEL = settings.LOG_LEVEL.upper()
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        force=True
    )

    # Silence noisy third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# Export commonly used loggers
upload_logger = logging.getLogger("upload")
tiktok_logger = logging.getLogger("tiktok")
youtube_logger = logging.getLogger("youtube")
token_logger = logging.getLogger("token")
