"""Observable in-memory collection of upload records"""
import logging
from typing import Callable, Dict, List, Optional

from videohop.schemas.upload import UploadRecord, UploadStatus

logger = logging.getLogger(__name__)

Subscriber = Callable[[UploadRecord], None]


def should_publish_progress(current_progress: float, last_published_progress: float) -> bool:
    """Determine if progress should be published (1% increments or completion)

    Args:
        current_progress: Current progress percentage (0-100)
        last_published_progress: Last published progress percentage

    Returns:
        True if progress should be published (>= 1% change or at 100%)
    """
    return (current_progress - last_published_progress >= 1) or (current_progress == 100)


class UploadProgressStore:
    """Upload records keyed by id, in insertion order

    All mutation goes through update-by-id; nothing is positional, so
    concurrent uploads never overwrite each other's records. Every method is
    synchronous, which makes each call atomic on the event loop.
    """

    def __init__(self):
        self._records: Dict[str, UploadRecord] = {}
        self._subscribers: List[Subscriber] = []
        self._last_published: Dict[str, float] = {}

    def add(self, record: UploadRecord) -> UploadRecord:
        self._records[record.id] = record
        self._publish(record, force=True)
        return record

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        return self._records.get(upload_id)

    def list(self) -> List[UploadRecord]:
        return list(self._records.values())

    def update(self, upload_id: str, **changes) -> UploadRecord:
        """Replace the record with a copy carrying ``changes``

        Raises:
            KeyError: If no record has this id
        """
        current = self._records[upload_id]
        updated = current.model_copy(update=changes)
        self._records[upload_id] = updated
        self._publish(updated, force=updated.status != current.status or "progress" not in changes)
        return updated

    def remove(self, upload_id: str) -> bool:
        self._last_published.pop(upload_id, None)
        return self._records.pop(upload_id, None) is not None

    def clear(self) -> None:
        self._records.clear()
        self._last_published.clear()

    def clear_completed(self) -> int:
        """Drop completed records; returns how many were removed"""
        completed = [r.id for r in self._records.values() if r.status == UploadStatus.COMPLETED]
        for upload_id in completed:
            self.remove(upload_id)
        return len(completed)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a callback for record changes; returns an unsubscribe function"""
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def _publish(self, record: UploadRecord, force: bool = False) -> None:
        last = self._last_published.get(record.id, 0.0)
        if not force and not should_publish_progress(record.progress, last):
            return
        self._last_published[record.id] = record.progress
        for subscriber in list(self._subscribers):
            try:
                subscriber(record)
            except Exception as e:
                logger.warning(f"Upload subscriber failed for {record.id}: {e}")
