"""YouTube resumable upload driver"""
import asyncio
from typing import Optional

from videohop.core.config import settings
from videohop.core.logging import youtube_logger
from videohop.schemas.upload import UploadMetadata, VideoFile
from videohop.services.upload.chunking import ChunkPlan
from videohop.services.upload.errors import TransportError, parse_error_payload, youtube_error
from videohop.services.upload.platforms.base import (
    BasePlatformDriver, ProgressListener, UploadResult, chunk_progress
)

YOUTUBE_TITLE_MAX = 100
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

# YouTube has no followers-only visibility
YOUTUBE_PRIVACY = {"public": "public", "unlisted": "unlisted", "private": "private", "followers": "private"}


def build_video_resource(metadata: UploadMetadata) -> dict:
    """Snippet/status body for videos.insert"""
    return {
        'snippet': {
            'title': metadata.title[:YOUTUBE_TITLE_MAX],
            'description': metadata.description or '',
            'tags': metadata.tags or [],
            'categoryId': metadata.category or '22'
        },
        'status': {
            'privacyStatus': YOUTUBE_PRIVACY.get(metadata.privacy, 'private'),
            'selfDeclaredMadeForKids': metadata.made_for_kids
        }
    }


class YouTubeDriver(BasePlatformDriver):
    """Uploads via the YouTube Data API resumable protocol

    The last chunk's response (200/201) carries the created video resource,
    so no status polling is needed.
    """

    platform = "youtube"

    def __init__(self, client=None, upload_url: Optional[str] = None, **kwargs):
        super().__init__(client, **kwargs)
        self.upload_url = upload_url or settings.YOUTUBE_UPLOAD_URL

    async def init_session(self, client, access_token: str, video: VideoFile,
                           metadata: UploadMetadata) -> str:
        """Open a resumable session and return its URL (from the Location header)"""
        response = await self._send(client.post(
            self.upload_url,
            params={'uploadType': 'resumable', 'part': 'snippet,status'},
            headers={
                'Authorization': f'Bearer {access_token}',
                'Content-Type': 'application/json; charset=UTF-8',
                'X-Upload-Content-Length': str(video.size),
                'X-Upload-Content-Type': video.mime_type,
            },
            json=build_video_resource(metadata)
        ), stage="init")

        if response.status_code != 200:
            error = youtube_error(response, "init")
            youtube_logger.error(
                f"YouTube upload init failed: HTTP {response.status_code} - {error.message}",
                extra={"platform": "youtube", "stage": "init",
                       "http_status": response.status_code, "error_code": error.code}
            )
            raise error

        session_url = response.headers.get('location')
        if not session_url:
            raise TransportError("YouTube did not return an upload session URL",
                                 platform="youtube", status_code=response.status_code)
        return session_url

    async def upload(self, access_token: str, video: VideoFile, metadata: UploadMetadata,
                     plan: ChunkPlan, listener: Optional[ProgressListener] = None,
                     cancel_event: Optional[asyncio.Event] = None) -> UploadResult:
        youtube_logger.info(f"Starting upload for {video.name} ({video.size / (1024*1024):.2f} MB, {plan.total_chunks} chunk(s))")

        async with self._http() as client:
            self._check_cancelled(cancel_event)
            session_url = await self.init_session(client, access_token, video, metadata)

            for index, (start, end) in enumerate(plan.ranges()):
                self._check_cancelled(cancel_event)
                chunk = await self._read_chunk(video, start, end)
                response = await self._send(client.put(
                    session_url,
                    headers={
                        'Content-Length': str(end - start),
                        'Content-Range': f'bytes {start}-{end - 1}/{video.size}',
                        'Content-Type': video.mime_type,
                    },
                    content=chunk,
                    timeout=settings.CHUNK_UPLOAD_TIMEOUT
                ), stage="chunk upload")

                if response.status_code == 308:
                    self._emit(listener, chunk_progress(end, video.size))
                    youtube_logger.debug(f"Chunk {index + 1}/{plan.total_chunks} accepted")
                    continue

                if response.status_code in (200, 201):
                    self._emit(listener, chunk_progress(video.size, video.size))
                    _, _, payload = parse_error_payload(response)
                    video_id = payload.get("id") if isinstance(payload, dict) else None
                    if video_id is None:
                        youtube_logger.warning(f"YouTube accepted {video.name} but the response carried no video id")
                    youtube_logger.info(f"Successfully uploaded {video.name}, YouTube ID: {video_id}")
                    return UploadResult(
                        video_id=video_id,
                        video_url=YOUTUBE_WATCH_URL.format(video_id=video_id) if video_id else None
                    )

                error = youtube_error(response, "chunk upload")
                youtube_logger.error(
                    f"YouTube chunk {index + 1}/{plan.total_chunks} failed: HTTP {response.status_code} - {error.message}",
                    extra={"platform": "youtube", "stage": "chunk_upload", "chunk": index,
                           "http_status": response.status_code, "error_code": error.code}
                )
                raise error

        raise TransportError("Upload did not complete", platform="youtube")
