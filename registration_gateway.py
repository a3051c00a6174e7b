"""Registration flow: validate, short-circuit repeats, allocate, write, and audit."""

from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, Optional, Tuple
import logging
import re
import time

from errors import Conflict, InsufficientSeats, NotRegistered, SeatingError, StoreError, ValidationError
from models import EventType
from seat_allocator import allocate_seats, join_seats

logger = logging.getLogger(__name__)

PHONE_PATTERN = re.compile(r'^\d{10,11}$')
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
REQUIRED_FIELDS = ('phone', 'name', 'attendee_count', 'session_id')
MAX_ATTENDEE_COUNT = 2**31 - 1
SESSION_ID_MAX_LENGTH = 36


@dataclass(frozen=True)
class RegistrationRequest:
    phone: str
    name: str
    attendee_count: int
    session_id: str


def validate_identity(phone: Any, name: Any) -> Tuple[str, str]:
    """Normalize and check the (phone, name) pair used to find a pre-registration."""
    if not isinstance(phone, str) or not PHONE_PATTERN.match(phone.strip()):
        raise ValidationError("phone must be 10 to 11 digits")
    if not isinstance(name, str) or not NAME_MIN_LENGTH <= len(name.strip()) <= NAME_MAX_LENGTH:
        raise ValidationError(f"name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters")
    return phone.strip(), name.strip()


def parse_registration(payload: Any) -> RegistrationRequest:
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")

    missing = [field for field in REQUIRED_FIELDS if payload.get(field) in (None, "")]
    if missing:
        raise ValidationError(f"all fields are required (missing: {', '.join(missing)})")

    phone, name = validate_identity(payload['phone'], payload['name'])

    attendee_count = payload['attendee_count']
    if isinstance(attendee_count, bool) or not isinstance(attendee_count, int):
        raise ValidationError("attendee_count must be an integer")
    if attendee_count < 1:
        raise ValidationError("attendee_count must be at least 1")
    if attendee_count > MAX_ATTENDEE_COUNT:
        raise ValidationError(f"attendee_count must be at most {MAX_ATTENDEE_COUNT}")

    session_id = payload['session_id']
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("session_id must be a non-empty string")
    if len(session_id.strip()) > SESSION_ID_MAX_LENGTH:
        raise ValidationError(f"session_id must be at most {SESSION_ID_MAX_LENGTH} characters")

    return RegistrationRequest(phone, name, attendee_count, session_id.strip())


class RegistrationGateway:
    """Single entry point for seat requests from pre-registered attendees.

    Every call appends exactly one audit entry, whatever the outcome. Calling
    again after a success returns the stored seats without writing.
    """

    def __init__(self, db, assignment_log):
        self.db = db
        self.assignment_log = assignment_log

    def register(self, payload: Any) -> Tuple[Dict[str, Any], int]:
        started_at = time.monotonic()

        try:
            request = parse_registration(payload)
        except ValidationError as e:
            raw = payload if isinstance(payload, dict) else {}
            self.assignment_log.record(
                session_id=raw.get('session_id'),
                attendee_name=raw.get('name'),
                attendee_phone=raw.get('phone'),
                requested_seat_count=raw.get('attendee_count'),
                event_type=EventType.ERROR,
                error_message=e.message,
                started_at=started_at,
            )
            return e.to_payload(), e.status_code

        record = partial(
            self.assignment_log.record,
            session_id=request.session_id,
            attendee_name=request.name,
            attendee_phone=request.phone,
            requested_seat_count=request.attendee_count,
            started_at=started_at,
        )

        attendee: Optional[Dict[str, Any]] = None
        seat_number: Optional[str] = None
        try:
            attendee = self.db.find_attendee(request.phone, request.name, request.session_id)
            if attendee is None:
                raise NotRegistered("not on the pre-registration list, please check your phone number and name")

            if attendee['seat_number']:
                logger.info(f"Seat already assigned for attendee {attendee['id']}, returning existing data")
                record(
                    event_type=EventType.RETRY,
                    attendee_id=attendee['id'],
                    assigned_seats=attendee['seat_number'],
                    error_message="returned previously assigned seats",
                    version_attempted=attendee['version'],
                    version_final=attendee['version'],
                )
                return {"success": True, "already_assigned": True, "data": attendee}, 200

            rows = self.db.list_active_rows(request.session_id)
            occupied = self.db.list_occupied_seats(request.session_id)
            seats = allocate_seats(request.attendee_count, rows, occupied)
            seat_number = join_seats(seats)

            updated = self.db.conditional_update_seats(
                attendee['id'], attendee['version'], seat_number, request.attendee_count
            )
        except NotRegistered as e:
            record(event_type=EventType.ERROR, error_message="no pre-registration match")
            return e.to_payload(), e.status_code
        except InsufficientSeats as e:
            record(
                event_type=EventType.ERROR,
                attendee_id=attendee['id'],
                error_message=f"insufficient seats ({e.available} available)",
                version_attempted=attendee['version'],
            )
            return e.to_payload(), e.status_code
        except Conflict as e:
            logger.warning(f"Version conflict for attendee {e.attendee_id} at v{e.expected_version}")
            record(
                event_type=EventType.CONFLICT,
                attendee_id=attendee['id'],
                assigned_seats=seat_number,
                error_message=f"version conflict (v{e.expected_version})",
                version_attempted=e.expected_version,
            )
            return e.to_payload(), e.status_code
        except StoreError as e:
            logger.exception(f"Store failure while assigning seats in session {request.session_id}: {e.detail}")
            record(
                event_type=EventType.ERROR,
                attendee_id=attendee['id'] if attendee else None,
                error_message=f"store error: {e.detail}",
                version_attempted=attendee['version'] if attendee else None,
            )
            return e.to_payload(), e.status_code
        except Exception as e:
            logger.exception(f"Unexpected error while assigning seats: {e}")
            record(
                event_type=EventType.ERROR,
                attendee_id=attendee['id'] if attendee else None,
                error_message=f"unexpected error: {e}",
            )
            return {"error": StoreError.client_message}, 500

        logger.info(f"Assigned {updated['seat_number']} to attendee {updated['id']} (v{updated['version']})")
        record(
            event_type=EventType.SUCCESS,
            attendee_id=updated['id'],
            assigned_seats=updated['seat_number'],
            version_attempted=attendee['version'],
            version_final=updated['version'],
        )
        return {"success": True, "data": updated}, 200

    def lookup(self, session_id: str, phone: Any, name: Any) -> Tuple[Dict[str, Any], int]:
        """Read-only seat check for an attendee; never allocates or logs."""
        try:
            phone, name = validate_identity(phone, name)
            attendee = self.db.find_attendee(phone, name, session_id)
        except StoreError as e:
            logger.exception(f"Store failure during seat lookup in session {session_id}: {e.detail}")
            return e.to_payload(), e.status_code
        except SeatingError as e:
            return e.to_payload(), e.status_code

        if attendee is None:
            return {"error": "no registration found for this phone number and name"}, 404
        return {"success": True, "data": attendee}, 200
