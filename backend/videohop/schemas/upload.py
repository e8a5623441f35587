"""Pydantic schemas for upload records and requests"""
import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from videohop.schemas.account import Platform


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {UploadStatus.COMPLETED, UploadStatus.FAILED, UploadStatus.CANCELLED}

# pending -> uploading -> (processing ->) completed; failures and cancel are
# the only other exits, and a failed record may go back to pending on retry
ALLOWED_TRANSITIONS = {
    UploadStatus.PENDING: {UploadStatus.UPLOADING},
    UploadStatus.UPLOADING: {
        UploadStatus.PROCESSING, UploadStatus.COMPLETED,
        UploadStatus.FAILED, UploadStatus.CANCELLED,
    },
    UploadStatus.PROCESSING: {UploadStatus.COMPLETED, UploadStatus.FAILED},
    UploadStatus.FAILED: {UploadStatus.PENDING},
    UploadStatus.COMPLETED: set(),
    UploadStatus.CANCELLED: set(),
}


def can_transition(current: UploadStatus, new: UploadStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


class UploadRecord(BaseModel):
    """Observable state of one upload, as rendered by the presentation layer"""
    id: str
    platform: Platform
    status: UploadStatus = UploadStatus.PENDING
    progress: float = 0.0
    message: Optional[str] = None
    video_id: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    needs_reauth: bool = False
    attempt: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class UploadMetadata(BaseModel):
    """Post metadata shared by the YouTube and TikTok upload forms"""
    title: str
    description: str = ""
    tags: List[str] = []
    privacy: Literal["public", "unlisted", "private", "followers"] = "private"
    category: str = "22"
    made_for_kids: bool = False
    # TikTok interaction flags
    disable_comment: bool = False
    disable_duet: bool = False
    disable_stitch: bool = False


CONTENT_TYPES = {'mp4': 'video/mp4', 'mov': 'video/quicktime', 'webm': 'video/webm'}


class VideoFile(BaseModel):
    """A local video file selected for upload"""
    path: Path
    name: str
    size: int
    mime_type: str = "video/mp4"

    @classmethod
    def from_path(cls, path) -> "VideoFile":
        """Build a VideoFile from disk, rejecting missing or empty files"""
        video_path = Path(path).resolve()
        if not video_path.is_file():
            raise FileNotFoundError(f"Video file not found: {video_path}")
        size = video_path.stat().st_size
        if size == 0:
            raise ValueError(f"Video file is empty: {video_path}")

        file_ext = video_path.suffix.lstrip('.').lower()
        mime_type = CONTENT_TYPES.get(file_ext) or mimetypes.guess_type(video_path.name)[0] or 'video/mp4'
        return cls(path=video_path, name=video_path.name, size=size, mime_type=mime_type)

    def read_range(self, start: int, end: int) -> bytes:
        """Read bytes [start, end) of the file"""
        with open(self.path, 'rb') as f:
            f.seek(start)
            return f.read(end - start)


class UploadRequest(BaseModel):
    """Request body for starting an upload"""
    platform: Platform
    video_path: str
    metadata: UploadMetadata
