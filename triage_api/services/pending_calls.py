"""In-memory registry of Vapi calls whose final outcome is not known yet.

One record per call id. Records are created the first time a call is seen
without a usable analysis, bumped on every retry wake and removed as soon
as the call is finalized. State is process-local: a restart drops every
in-flight retry.
"""

import logging
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)


class PendingCallRecord:
    __slots__ = ("call_id", "call_info", "received_at", "retry_count", "initial_status")

    def __init__(self, call_id: str, call_info: dict, received_at: datetime, initial_status: str | None):
        self.call_id = call_id
        self.call_info = call_info
        self.received_at = received_at
        self.retry_count = 0
        self.initial_status = initial_status

    @property
    def status(self) -> str | None:
        return self.call_info.get("status")

    def as_dict(self) -> dict[str, Any]:
        return {
            "call_id": self.call_id,
            "received_at": self.received_at,
            "retry_count": self.retry_count,
            "status": self.status,
            "initial_status": self.initial_status,
        }


class PendingCallRegistry:
    """Map of call id -> PendingCallRecord.

    Every wake handler must call ``get``/``increment_retry`` right before
    acting: a record that disappeared in the meantime means the call was
    resolved by another path and the wake should exit quietly.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self._clock = clock
        self._records: dict[str, PendingCallRecord] = {}

    def upsert_if_absent(self, call_id: str, call_info: dict, initial_status: str | None) -> bool:
        """Start tracking a call. Returns False if it was already tracked."""
        if call_id in self._records:
            logger.debug("Call %s already pending, not re-registering", call_id)
            return False
        self._records[call_id] = PendingCallRecord(call_id, call_info, self._clock(), initial_status)
        logger.info("Tracking pending call %s (status=%s)", call_id, initial_status)
        return True

    def get(self, call_id: str) -> PendingCallRecord | None:
        return self._records.get(call_id)

    def increment_retry(self, call_id: str) -> int | None:
        record = self._records.get(call_id)
        if record is None:
            return None
        record.retry_count += 1
        return record.retry_count

    def update_call_info(self, call_id: str, call_info: dict) -> None:
        record = self._records.get(call_id)
        if record is not None:
            record.call_info = call_info

    def remove(self, call_id: str) -> bool:
        record = self._records.pop(call_id, None)
        if record is not None:
            logger.info("Stopped tracking call %s after %d retries", call_id, record.retry_count)
        return record is not None

    def records(self) -> list[PendingCallRecord]:
        return list(self._records.values())

    def snapshot(self) -> list[dict[str, Any]]:
        return [record.as_dict() for record in self._records.values()]

    def __contains__(self, call_id: str) -> bool:
        return call_id in self._records

    def __len__(self) -> int:
        return len(self._records)


# Process-wide registry shared by the webhook route and the retry loops
pending_calls = PendingCallRegistry()
