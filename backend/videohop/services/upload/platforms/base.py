"""Abstract base class for platform upload drivers"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

import httpx

from videohop.core.config import MIB, settings
from videohop.schemas.upload import UploadMetadata, VideoFile
from videohop.services.upload.chunking import ChunkPlan
from videohop.services.upload.errors import TransportError, UploadCancelled


@dataclass
class ProgressEvent:
    """Emitted by a driver while an upload attempt runs

    ``kind`` is ``"progress"`` after each accepted chunk and ``"processing"``
    once all bytes are in and the provider is processing the video.
    """
    kind: str
    progress: float
    bytes_sent: int = 0
    total_bytes: int = 0
    message: Optional[str] = None


ProgressListener = Callable[[ProgressEvent], None]


@dataclass
class UploadResult:
    video_id: Optional[str]
    video_url: Optional[str] = None
    publish_id: Optional[str] = None


def chunk_progress(bytes_sent: int, total_bytes: int) -> ProgressEvent:
    return ProgressEvent(
        kind="progress",
        progress=bytes_sent / total_bytes * 100,
        bytes_sent=bytes_sent,
        total_bytes=total_bytes,
        message=f"Uploaded {bytes_sent / MIB:.1f} MB",
    )


class BasePlatformDriver(ABC):
    """Interface contract for platform drivers.

    A driver runs one upload attempt end to end: open the provider session,
    PUT every chunk of the plan in order and, where the provider publishes
    asynchronously, wait for the publish outcome. Drivers raise errors from
    ``videohop.services.upload.errors``; mapping them onto upload records is
    the orchestrator's job.
    """

    platform: str = ""

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self._client = client
        self._sleep = sleep

    @abstractmethod
    async def upload(self, access_token: str, video: VideoFile, metadata: UploadMetadata,
                     plan: ChunkPlan, listener: Optional[ProgressListener] = None,
                     cancel_event: Optional[asyncio.Event] = None) -> UploadResult:
        """Upload ``video`` following ``plan``.

        Args:
            access_token: Bearer token for the provider
            video: Local file to send
            metadata: Post metadata
            plan: Chunk plan computed for this platform and file size
            listener: Receives a ProgressEvent after each chunk
            cancel_event: When set, the driver stops before the next request

        Returns:
            UploadResult with the provider's video identifier

        Raises:
            UploadError: Any subclass, depending on what failed
        """
        pass

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as client:
                yield client

    async def _send(self, request: Awaitable[httpx.Response], stage: str) -> httpx.Response:
        """Await an httpx call, converting network failures to TransportError"""
        try:
            return await request
        except httpx.HTTPError as e:
            raise TransportError(
                f"Network error during {stage}: {type(e).__name__}: {e}",
                platform=self.platform, code="network_error"
            )

    def _check_cancelled(self, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelled("Upload cancelled by user", platform=self.platform)

    @staticmethod
    async def _read_chunk(video: VideoFile, start: int, end: int) -> bytes:
        return await asyncio.to_thread(video.read_range, start, end)

    @staticmethod
    def _emit(listener: Optional[ProgressListener], event: ProgressEvent) -> None:
        if listener is not None:
            listener(event)
