"""Platform upload drivers"""
from videohop.services.upload.platforms.base import (
    BasePlatformDriver, ProgressEvent, ProgressListener, UploadResult
)
from videohop.services.upload.platforms.tiktok import TikTokDriver
from videohop.services.upload.platforms.youtube import YouTubeDriver


def default_drivers(client=None) -> dict:
    """One driver per supported platform, optionally sharing an httpx client"""
    return {
        "youtube": YouTubeDriver(client),
        "tiktok": TikTokDriver(client),
    }


__all__ = [
    "BasePlatformDriver", "ProgressEvent", "ProgressListener", "UploadResult",
    "TikTokDriver", "YouTubeDriver", "default_drivers",
]
