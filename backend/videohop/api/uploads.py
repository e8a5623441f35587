"""Uploads API routes"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from videohop.api.deps import get_orchestrator
from videohop.schemas.upload import UploadRecord, UploadRequest, VideoFile
from videohop.services.upload.errors import UploadValidationError
from videohop.services.upload.orchestrator import UploadOrchestrator

upload_logger = logging.getLogger("upload")

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


def _require_record(orchestrator: UploadOrchestrator, upload_id: str) -> UploadRecord:
    record = orchestrator.get(upload_id)
    if record is None:
        raise HTTPException(404, "Upload not found")
    return record


@router.get("", response_model=List[UploadRecord])
async def list_uploads(orchestrator: UploadOrchestrator = Depends(get_orchestrator)):
    """All upload records, oldest first"""
    return orchestrator.list()


@router.post("", response_model=UploadRecord, status_code=202)
async def start_upload(
    request: UploadRequest,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator)
):
    """Start uploading a local video file; progress is observed via GET /api/uploads"""
    try:
        video = VideoFile.from_path(request.video_path)
    except (FileNotFoundError, ValueError) as e:
        raise HTTPException(400, str(e))

    try:
        return orchestrator.start(request.platform, video, request.metadata)
    except UploadValidationError as e:
        upload_logger.warning(f"Rejected {request.platform} upload: {e.message}")
        raise HTTPException(400, e.message)


@router.delete("/completed")
async def clear_completed(orchestrator: UploadOrchestrator = Depends(get_orchestrator)):
    """Remove completed records"""
    removed = orchestrator.clear_completed()
    return {"removed": removed}


@router.get("/{upload_id}", response_model=UploadRecord)
async def get_upload(upload_id: str, orchestrator: UploadOrchestrator = Depends(get_orchestrator)):
    return _require_record(orchestrator, upload_id)


@router.post("/{upload_id}/cancel", response_model=UploadRecord)
async def cancel_upload(upload_id: str, orchestrator: UploadOrchestrator = Depends(get_orchestrator)):
    _require_record(orchestrator, upload_id)
    try:
        return orchestrator.cancel(upload_id)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/{upload_id}/retry", response_model=UploadRecord, status_code=202)
async def retry_upload(upload_id: str, orchestrator: UploadOrchestrator = Depends(get_orchestrator)):
    """Reset a failed upload and start it again with its original file and metadata"""
    _require_record(orchestrator, upload_id)
    try:
        return orchestrator.restart(upload_id)
    except UploadValidationError as e:
        raise HTTPException(400, e.message)
    except ValueError as e:
        raise HTTPException(400, str(e))
