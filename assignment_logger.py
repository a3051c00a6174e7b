"""Append-only audit trail of seat assignment attempts."""

from typing import Any, Dict, List, Optional
import logging
import time

from errors import ValidationError
from models import EventType
from seat_allocator import canonical_seat_label, split_seat_number

logger = logging.getLogger(__name__)

DEFAULT_LOG_LIMIT = 100
MAX_LOG_LIMIT = 500
MAX_STORED_INT = 2**31 - 1


def _clip(value: Any, length: int) -> Optional[str]:
    if value is None:
        return None
    return str(value)[:length]


def _session_key(value: Any) -> Optional[str]:
    # A truncated id would file the entry under some other session
    if value is None or len(str(value)) > 36:
        return None
    return str(value)


class AssignmentLogger:
    """Writes one entry per registration request and answers audit queries.

    Entries are never updated or deleted from here.
    """

    def __init__(self, db):
        self.db = db

    def record(
        self,
        *,
        session_id: Any,
        attendee_name: Any,
        attendee_phone: Any,
        requested_seat_count: Any,
        event_type: EventType,
        attendee_id: Optional[str] = None,
        assigned_seats: Optional[str] = None,
        error_message: Optional[str] = None,
        version_attempted: Optional[int] = None,
        version_final: Optional[int] = None,
        started_at: Optional[float] = None,
    ) -> None:
        """Append an entry; a failed write is logged and otherwise ignored."""
        processing_time_ms = None
        if started_at is not None:
            processing_time_ms = int((time.monotonic() - started_at) * 1000)

        # Raw request values land here on validation failures, so coerce them
        if (isinstance(requested_seat_count, bool) or not isinstance(requested_seat_count, int)
                or not -MAX_STORED_INT <= requested_seat_count <= MAX_STORED_INT):
            requested_seat_count = None

        entry = {
            "session_id": _session_key(session_id),
            "attendee_id": attendee_id,
            "attendee_name": _clip(attendee_name, 200),
            "attendee_phone": _clip(attendee_phone, 50),
            "requested_seat_count": requested_seat_count,
            "assigned_seats": assigned_seats,
            "event_type": event_type,
            "error_message": error_message,
            "version_attempted": version_attempted,
            "version_final": version_final,
            "processing_time_ms": processing_time_ms,
        }
        try:
            self.db.append_log(entry)
        except Exception as e:
            logger.error(f"Failed to log assignment ({event_type.value}) for session {session_id}: {e}")

    def list_entries(
        self,
        session_id: str,
        event_type: Optional[str] = None,
        limit: Any = DEFAULT_LOG_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Newest-first entries, optionally filtered by event type."""
        kind = None
        if event_type:
            try:
                kind = EventType(event_type)
            except ValueError:
                allowed = ", ".join(k.value for k in EventType)
                raise ValidationError(f"event_type must be one of: {allowed}")

        if isinstance(limit, str) and limit.isdigit():
            limit = int(limit)
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LOG_LIMIT:
            raise ValidationError(f"limit must be an integer between 1 and {MAX_LOG_LIMIT}")

        return self.db.list_logs(session_id, event_type=kind, limit=limit)

    def find_seat_collisions(self, session_id: str) -> Dict[str, List[str]]:
        """Seats named by more than one successful entry, with the attendee ids involved.

        Two different attendees can commit the same seat when their occupancy
        reads overlap; this is where that shows up.
        """
        holders: Dict[str, List[str]] = {}
        for entry in self.db.list_logs(session_id, event_type=EventType.SUCCESS, limit=None):
            for label in split_seat_number(entry["assigned_seats"]):
                holders.setdefault(canonical_seat_label(label), []).append(entry["attendee_id"])
        return {
            label: attendee_ids
            for label, attendee_ids in sorted(holders.items())
            if len(set(attendee_ids)) > 1
        }

    def summarize(self, session_id: str) -> Dict[str, Any]:
        stats = self.db.log_statistics(session_id)
        counts = stats["counts"]
        return {
            "total": sum(counts.values()),
            **{kind.value: counts[kind] for kind in EventType},
            "avg_processing_time_ms": stats["avg_processing_time_ms"],
            "seat_collisions": self.find_seat_collisions(session_id),
        }
