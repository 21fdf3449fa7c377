"""
Latest-State Store
Single-slot holder for the most recent recognition record
"""
import threading
from datetime import datetime, timezone
from typing import Optional

from models import RecognitionRecord, WaitingRecord


class LatestStateStore:
    """Holds exactly one record; every set() fully replaces it

    Records are frozen models, so readers always see either the previous
    or the new record as a whole. Writers are serialized by a lock.
    """

    def __init__(self, started_at: Optional[datetime] = None):
        self._lock = threading.Lock()  # Thread-safe locking
        self._record: RecognitionRecord = WaitingRecord(
            timestamp=started_at or datetime.now(timezone.utc)
        )

    def get(self) -> RecognitionRecord:
        """Get the current record"""
        with self._lock:
            return self._record

    def set(self, record: RecognitionRecord):
        """Replace the stored record"""
        with self._lock:
            self._record = record
