"""TikTok Content Posting API driver (FILE_UPLOAD direct post)"""
import asyncio
from typing import Optional

import httpx

from videohop.core.config import TIKTOK_INIT_UPLOAD_URL, TIKTOK_STATUS_URL, settings
from videohop.core.logging import tiktok_logger
from videohop.schemas.upload import UploadMetadata, VideoFile
from videohop.services.upload.chunking import ChunkPlan
from videohop.services.upload.errors import (
    TransportError, UploadError, UploadTimeoutError, parse_error_payload, tiktok_error
)
from videohop.services.upload.platforms.base import (
    BasePlatformDriver, ProgressEvent, ProgressListener, UploadResult, chunk_progress
)

TIKTOK_TITLE_MAX = 2200

PRIVACY_LEVELS = {
    "public": "PUBLIC_TO_EVERYONE",
    "unlisted": "MUTUAL_FOLLOW_FRIEND",
    "private": "SELF_ONLY",
    "followers": "FOLLOWER_OF_CREATOR",
}

STATUS_COMPLETE = "PUBLISH_COMPLETE"
STATUS_SENT_TO_INBOX = "SEND_TO_USER_INBOX"
STATUS_FAILED = ("FAILED", "PUBLISH_FAILED")


def map_privacy_level(privacy: Optional[str]) -> str:
    """Map public/unlisted/private/followers to TikTok's privacy_level; unknown -> public"""
    return PRIVACY_LEVELS.get((privacy or "").lower(), "PUBLIC_TO_EVERYONE")


def tiktok_video_url(username: Optional[str], video_id: Optional[str]) -> Optional[str]:
    if not username or not video_id:
        return None
    return f"https://www.tiktok.com/@{username}/video/{video_id}"


def _raise_for_tiktok(response: httpx.Response, stage: str) -> dict:
    """Return the JSON body of a successful TikTok API call, or raise the mapped error

    TikTok wraps every response in ``{"data": ..., "error": {"code": "ok", ...}}``.
    """
    code, message, payload = parse_error_payload(response)
    if not 200 <= response.status_code < 300 or (code and code != "ok"):
        error = tiktok_error(code, message, details=payload, status_code=response.status_code)
        tiktok_logger.error(
            f"TikTok {stage} failed: HTTP {response.status_code} - {code} - {message}",
            extra={"platform": "tiktok", "stage": stage,
                   "http_status": response.status_code, "error_code": code}
        )
        raise error
    return payload if isinstance(payload, dict) else {}


class TikTokDriver(BasePlatformDriver):
    """Direct-post upload: init, sequential chunk PUTs, then publish-status polling

    A direct post publishes on its own once the last chunk lands, so the
    driver goes straight to polling; there is no separate publish call.
    """

    platform = "tiktok"

    def __init__(self, client=None, poll_interval: Optional[float] = None,
                 poll_attempts: Optional[int] = None, **kwargs):
        super().__init__(client, **kwargs)
        self.poll_interval = settings.TIKTOK_STATUS_POLL_INTERVAL if poll_interval is None else poll_interval
        self.poll_attempts = settings.TIKTOK_STATUS_POLL_ATTEMPTS if poll_attempts is None else poll_attempts

    @staticmethod
    def _auth_headers(access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token.strip()}",
            "Content-Type": "application/json; charset=UTF-8"
        }

    async def init_upload(self, client, access_token: str, video: VideoFile,
                          metadata: UploadMetadata, plan: ChunkPlan) -> tuple:
        """Request a publish session; returns (publish_id, upload_url)"""
        response = await self._send(client.post(
            TIKTOK_INIT_UPLOAD_URL,
            headers=self._auth_headers(access_token),
            json={
                "post_info": {
                    "title": metadata.title[:TIKTOK_TITLE_MAX],
                    "privacy_level": map_privacy_level(metadata.privacy),
                    "disable_duet": metadata.disable_duet,
                    "disable_comment": metadata.disable_comment,
                    "disable_stitch": metadata.disable_stitch
                },
                "source_info": {
                    "source": "FILE_UPLOAD",
                    "video_size": video.size,
                    "chunk_size": plan.chunk_size,
                    "total_chunk_count": plan.total_chunks
                }
            }
        ), stage="init")

        data = _raise_for_tiktok(response, "init").get("data") or {}
        publish_id = data.get("publish_id")
        upload_url = data.get("upload_url")
        if not publish_id or not upload_url:
            raise TransportError("TikTok did not return publish_id/upload_url for FILE_UPLOAD",
                                 platform="tiktok", details=data, status_code=response.status_code)
        tiktok_logger.info(f"Initialized, publish_id: {publish_id}")
        return publish_id, upload_url

    async def fetch_status(self, client, access_token: str, publish_id: str) -> dict:
        response = await self._send(client.post(
            TIKTOK_STATUS_URL,
            headers=self._auth_headers(access_token),
            json={"publish_id": publish_id}
        ), stage="status poll")
        return _raise_for_tiktok(response, "status poll").get("data") or {}

    async def wait_for_publish(self, client, access_token: str, publish_id: str) -> UploadResult:
        """Poll publish status every ``poll_interval`` seconds, at most ``poll_attempts`` times

        Transport and API errors while polling are fatal immediately.
        """
        for attempt in range(1, self.poll_attempts + 1):
            await self._sleep(self.poll_interval)
            data = await self.fetch_status(client, access_token, publish_id)
            status = data.get("status")
            tiktok_logger.debug(f"Publish status for {publish_id} (attempt {attempt}): {status}")

            if status == STATUS_COMPLETE:
                post_ids = data.get("publicaly_available_post_id") or []
                video_id = str(post_ids[0]) if post_ids else data.get("video_id")
                tiktok_logger.info(f"Publish complete for {publish_id}, video id: {video_id}")
                return UploadResult(video_id=video_id, publish_id=publish_id)
            if status == STATUS_SENT_TO_INBOX:
                tiktok_logger.info(f"Video {publish_id} was sent to the creator's inbox")
                return UploadResult(video_id=data.get("video_id"), publish_id=publish_id)
            if status in STATUS_FAILED:
                reason = data.get("fail_reason") or "unknown reason"
                raise UploadError(f"TikTok publish failed: {reason}", platform="tiktok",
                                  code=data.get("fail_reason"), details=data)

        raise UploadTimeoutError(
            f"TikTok publish status did not complete after {self.poll_attempts} checks",
            platform="tiktok", details={"publish_id": publish_id}
        )

    async def upload(self, access_token: str, video: VideoFile, metadata: UploadMetadata,
                     plan: ChunkPlan, listener: Optional[ProgressListener] = None,
                     cancel_event: Optional[asyncio.Event] = None) -> UploadResult:
        tiktok_logger.info(f"Uploading {video.name} ({video.size / (1024*1024):.2f} MB, {plan.total_chunks} chunk(s))")

        async with self._http() as client:
            self._check_cancelled(cancel_event)
            publish_id, upload_url = await self.init_upload(client, access_token, video, metadata, plan)

            for index, (start, end) in enumerate(plan.ranges()):
                self._check_cancelled(cancel_event)
                chunk = await self._read_chunk(video, start, end)
                response = await self._send(client.put(
                    upload_url,
                    headers={
                        "Content-Range": f"bytes {start}-{end - 1}/{video.size}",
                        "Content-Length": str(end - start),
                        "Content-Type": video.mime_type
                    },
                    content=chunk,
                    timeout=settings.CHUNK_UPLOAD_TIMEOUT
                ), stage="chunk upload")

                if not 200 <= response.status_code < 300:
                    code, message, payload = parse_error_payload(response)
                    tiktok_logger.error(
                        f"TikTok chunk {index + 1}/{plan.total_chunks} failed: HTTP {response.status_code} - {message}",
                        extra={"platform": "tiktok", "stage": "chunk_upload", "chunk": index,
                               "publish_id": publish_id, "http_status": response.status_code,
                               "error_code": code}
                    )
                    raise tiktok_error(code, message, details=payload, status_code=response.status_code)

                self._emit(listener, chunk_progress(end, video.size))

            tiktok_logger.info("File upload completed")
            self._emit(listener, ProgressEvent(
                kind="processing", progress=100, bytes_sent=video.size,
                total_bytes=video.size, message="Processing on TikTok"
            ))
            return await self.wait_for_publish(client, access_token, publish_id)
