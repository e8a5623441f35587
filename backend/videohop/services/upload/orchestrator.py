"""Upload orchestrator: drives one platform driver per upload and owns record state

Status flow per record::

    pending -> uploading -> completed                      (YouTube)
    pending -> uploading -> processing -> completed        (TikTok)
    uploading|processing -> failed,  uploading -> cancelled,  failed -> pending (retry)

Each start() is a new attempt with its own number and cancel event.
Callbacks and outcomes from an attempt that is no longer current (cancelled,
or superseded by a retry) never touch the record.
"""
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from videohop.core.config import settings
from videohop.core.logging import upload_logger
from videohop.core.metrics import failed_uploads_counter, successful_uploads_counter
from videohop.schemas.upload import (
    UploadMetadata, UploadRecord, UploadStatus, VideoFile, can_transition
)
from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager
from videohop.services.upload.chunking import ChunkPlan, plan_chunks
from videohop.services.upload.errors import (
    AuthError, UploadCancelled, UploadError, UploadTimeoutError, UploadValidationError
)
from videohop.services.upload.platforms import default_drivers
from videohop.services.upload.platforms.base import (
    BasePlatformDriver, ProgressEvent, UploadResult
)
from videohop.services.upload.platforms.tiktok import tiktok_video_url
from videohop.services.upload.progress_store import UploadProgressStore

PLATFORM_NAMES = {"youtube": "YouTube", "tiktok": "TikTok"}

def _now() -> datetime:
    return datetime.now(timezone.utc)


class UploadOrchestrator:
    def __init__(self, session: SessionContext, tokens: TokenLifecycleManager,
                 drivers: Optional[Dict[str, BasePlatformDriver]] = None,
                 store: Optional[UploadProgressStore] = None,
                 planner: Callable[[str, int], ChunkPlan] = plan_chunks,
                 upload_timeout: Optional[float] = None,
                 id_factory: Callable[[], str] = lambda: uuid.uuid4().hex):
        self.session = session
        self.tokens = tokens
        self.drivers = drivers if drivers is not None else default_drivers()
        self.store = store if store is not None else UploadProgressStore()
        self.planner = planner
        self.upload_timeout = settings.UPLOAD_TIMEOUT if upload_timeout is None else upload_timeout
        self._new_id = id_factory
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._requests: Dict[str, Tuple[str, VideoFile, UploadMetadata]] = {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def start(self, platform: str, video: Optional[VideoFile], metadata: UploadMetadata,
              upload_id: Optional[str] = None) -> UploadRecord:
        """Validate, create (or reuse) the record and schedule the upload attempt

        Must be called from a running event loop.

        Raises:
            UploadValidationError: No video, unsupported platform or account not
                connected. No record is created.
            ValueError: ``upload_id`` is unknown or not pending.
        """
        self._validate(platform, video)

        if upload_id is None:
            record = self.store.add(UploadRecord(id=self._new_id(), platform=platform))
        else:
            record = self._get(upload_id)
            if record.status != UploadStatus.PENDING:
                raise ValueError(f"Cannot start upload with status {record.status.value}")

        attempt = record.attempt + 1
        record = self.store.update(
            record.id, status=UploadStatus.UPLOADING, attempt=attempt,
            message=f"Uploading to {PLATFORM_NAMES[platform]}"
        )

        cancel_event = asyncio.Event()
        self._cancel_events[record.id] = cancel_event
        self._requests[record.id] = (platform, video, metadata)
        self._tasks[record.id] = asyncio.create_task(
            self._run(record.id, attempt, platform, video, metadata, cancel_event)
        )

        upload_logger.info(
            f"Started {platform} upload {record.id} (attempt {attempt}) for {video.name}",
            extra={"upload_id": record.id, "platform": platform, "attempt": attempt}
        )
        return record

    async def wait(self, upload_id: str) -> UploadRecord:
        """Wait for the current attempt of ``upload_id`` to finish and return its record"""
        task = self._tasks.get(upload_id)
        if task is not None:
            await task
        return self._get(upload_id)

    async def upload(self, platform: str, video: Optional[VideoFile],
                     metadata: UploadMetadata) -> UploadRecord:
        record = self.start(platform, video, metadata)
        return await self.wait(record.id)

    def cancel(self, upload_id: str) -> UploadRecord:
        """Mark an uploading record cancelled; the in-flight attempt stops at its next chunk

        Raises:
            ValueError: Unknown id, or the record is not uploading
        """
        record = self._get(upload_id)
        if record.status != UploadStatus.UPLOADING:
            raise ValueError(f"Cannot cancel upload with status {record.status.value}")

        event = self._cancel_events.get(upload_id)
        if event is not None:
            event.set()

        upload_logger.info(f"Upload {upload_id} cancelled by user",
                           extra={"upload_id": upload_id, "platform": record.platform})
        return self.store.update(
            upload_id, status=UploadStatus.CANCELLED, message="Upload cancelled", completed_at=_now()
        )

    def retry(self, upload_id: str) -> UploadRecord:
        """Reset a failed record to pending for a new attempt under the same id

        Raises:
            ValueError: Unknown id, or the record is not failed
        """
        record = self._get(upload_id)
        if record.status != UploadStatus.FAILED:
            raise ValueError(f"Cannot retry upload with status {record.status.value}")

        return self.store.update(
            upload_id, status=UploadStatus.PENDING, progress=0.0, error=None,
            needs_reauth=False, message=None, video_id=None, video_url=None,
            completed_at=None
        )

    def restart(self, upload_id: str) -> UploadRecord:
        """retry() followed by start() with the request the record was created from"""
        record = self._get(upload_id)
        request = self._requests.get(upload_id)
        if request is None:
            raise ValueError(f"Upload {upload_id} not found")
        if record.status != UploadStatus.FAILED:
            raise ValueError(f"Cannot retry upload with status {record.status.value}")

        platform, video, metadata = request
        # Validate before resetting so a rejected restart leaves the record failed
        self._validate(platform, video)
        self.retry(upload_id)
        return self.start(platform, video, metadata, upload_id=upload_id)

    def clear_completed(self) -> int:
        """Remove completed records and forget the requests they were started from"""
        removed = self.store.clear_completed()
        for upload_id in list(self._requests):
            if self.store.get(upload_id) is None:
                del self._requests[upload_id]
        return removed

    def list(self):
        return self.store.list()

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        return self.store.get(upload_id)

    async def shutdown(self) -> None:
        """Cancel every running attempt task (used on application shutdown)"""
        running = [task for task in self._tasks.values() if not task.done()]
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

    # ------------------------------------------------------------------
    # Attempt execution
    # ------------------------------------------------------------------

    def _validate(self, platform: str, video: Optional[VideoFile]) -> None:
        if platform not in PLATFORM_NAMES:
            raise UploadValidationError(f"Unsupported platform: {platform}", platform=platform)
        if video is None:
            raise UploadValidationError("No video selected", platform=platform)
        if video.size > settings.MAX_FILE_SIZE:
            raise UploadValidationError(
                f"File too large: {video.size / (1024*1024*1024):.2f} GB "
                f"(max {settings.MAX_FILE_SIZE / (1024*1024*1024):.0f} GB)",
                platform=platform
            )
        if not self.session.is_connected(platform):
            raise UploadValidationError(f"{PLATFORM_NAMES[platform]} account not connected", platform=platform)

    async def _run(self, upload_id: str, attempt: int, platform: str, video: VideoFile,
                   metadata: UploadMetadata, cancel_event: asyncio.Event) -> None:
        try:
            result = await asyncio.wait_for(
                self._execute(upload_id, attempt, platform, video, metadata, cancel_event),
                timeout=self.upload_timeout
            )
        except UploadCancelled:
            upload_logger.info(f"Upload {upload_id} stopped after cancellation",
                               extra={"upload_id": upload_id, "platform": platform})
        except asyncio.TimeoutError:
            self._fail(upload_id, attempt, UploadTimeoutError(
                f"Upload timed out after {self.upload_timeout:.0f} seconds", platform=platform
            ))
        except UploadError as e:
            self._fail(upload_id, attempt, e)
        except Exception as e:
            upload_logger.exception(f"Unexpected error in upload {upload_id}: {e}",
                                    extra={"upload_id": upload_id, "platform": platform})
            self._fail(upload_id, attempt, UploadError(str(e) or type(e).__name__, platform=platform))
        else:
            self._complete(upload_id, attempt, platform, result)
        finally:
            if self._cancel_events.get(upload_id) is cancel_event:
                del self._cancel_events[upload_id]
            if self._tasks.get(upload_id) is asyncio.current_task():
                del self._tasks[upload_id]

    async def _execute(self, upload_id: str, attempt: int, platform: str, video: VideoFile,
                       metadata: UploadMetadata, cancel_event: asyncio.Event) -> UploadResult:
        name = PLATFORM_NAMES[platform]
        account = self.session.get_account(platform)
        if account is None:
            raise UploadValidationError(f"{name} account not connected", platform=platform)

        access_token = await self.tokens.ensure_valid(account, persist=self.session.save_account)
        if access_token is None:
            raise AuthError(
                f"{name} session expired. Please reconnect your {name} account.",
                platform=platform, code="refresh_failed"
            )

        try:
            plan = self.planner(platform, video.size)
        except ValueError as e:
            raise UploadValidationError(str(e), platform=platform)

        driver = self.drivers[platform]
        listener = self._listener(upload_id, attempt)
        try:
            return await driver.upload(access_token, video, metadata, plan, listener, cancel_event)
        except AuthError as e:
            if cancel_event.is_set():
                raise
            # One forced refresh, then one more pass with the new token
            upload_logger.warning(
                f"{name} rejected the access token for upload {upload_id}; refreshing: {e.message}",
                extra={"upload_id": upload_id, "platform": platform, "error_code": e.code}
            )
            current = self.session.get_account(platform) or account
            access_token = await self.tokens.refresh_account(current, persist=self.session.save_account)
            if access_token is None:
                raise
            return await driver.upload(access_token, video, metadata, plan, listener, cancel_event)

    def _listener(self, upload_id: str, attempt: int):
        def on_event(event: ProgressEvent) -> None:
            record = self._current(upload_id, attempt)
            if record is None:
                return
            changes = {"progress": max(record.progress, event.progress)}
            if event.message:
                changes["message"] = event.message
            if event.kind == "processing":
                if not can_transition(record.status, UploadStatus.PROCESSING):
                    return
                changes["status"] = UploadStatus.PROCESSING
            self.store.update(upload_id, **changes)

        return on_event

    def _complete(self, upload_id: str, attempt: int, platform: str, result: UploadResult) -> None:
        record = self._current(upload_id, attempt)
        if record is None:
            return

        video_url = result.video_url
        if video_url is None and platform == "tiktok":
            account = self.session.get_account(platform)
            video_url = tiktok_video_url(account.username if account else None, result.video_id)

        self.store.update(
            upload_id, status=UploadStatus.COMPLETED, progress=100.0,
            message="Upload completed", video_id=result.video_id, video_url=video_url,
            completed_at=_now()
        )
        successful_uploads_counter.labels(platform=platform).inc()
        upload_logger.info(
            f"Upload {upload_id} to {platform} completed, video id: {result.video_id}",
            extra={"upload_id": upload_id, "platform": platform, "video_id": result.video_id}
        )

    def _fail(self, upload_id: str, attempt: int, error: UploadError) -> None:
        record = self._current(upload_id, attempt)
        if record is None:
            return

        self.store.update(
            upload_id, status=UploadStatus.FAILED, error=error.message,
            needs_reauth=getattr(error, "needs_reauth", False),
            message="Upload failed", completed_at=_now()
        )
        failed_uploads_counter.labels(platform=record.platform).inc()
        upload_logger.error(
            f"Upload {upload_id} to {record.platform} failed: {error.message}",
            extra={"upload_id": upload_id, "platform": record.platform,
                   "error_type": type(error).__name__, "error_code": error.code}
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, upload_id: str) -> UploadRecord:
        record = self.store.get(upload_id)
        if record is None:
            raise ValueError(f"Upload {upload_id} not found")
        return record

    def _current(self, upload_id: str, attempt: int) -> Optional[UploadRecord]:
        """The record if ``attempt`` is still its live attempt, otherwise None"""
        record = self.store.get(upload_id)
        if record is None or record.attempt != attempt or record.is_terminal:
            return None
        return record
