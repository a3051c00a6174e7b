"""Database coordination layer: registry reads, occupancy, and the versioned seat write."""

from sqlalchemy import create_engine, func, select, text, update
from sqlalchemy.orm import sessionmaker, scoped_session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from errors import Conflict, StoreError
from models import Base, EventSession, SeatLayoutRow, Attendee, SeatAssignmentLog, EventType
from seat_allocator import RowLayout, build_seat_space, canonical_seat_label, parse_seat_label, split_seat_number

logger = logging.getLogger(__name__)


def _attendee_to_dict(attendee: Attendee) -> Dict[str, Any]:
    return {
        "id": attendee.id,
        "session_id": attendee.session_id,
        "phone": attendee.phone,
        "name": attendee.name,
        "attendee_count": attendee.attendee_count,
        "seat_number": attendee.seat_number,
        "version": attendee.version,
        "is_onsite": attendee.is_onsite,
        "created_at": attendee.created_at.isoformat() if attendee.created_at else None,
    }


def _log_to_dict(entry: SeatAssignmentLog) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "session_id": entry.session_id,
        "attendee_id": entry.attendee_id,
        "attendee_name": entry.attendee_name,
        "attendee_phone": entry.attendee_phone,
        "requested_seat_count": entry.requested_seat_count,
        "assigned_seats": entry.assigned_seats,
        "event_type": entry.event_type.value,
        "error_message": entry.error_message,
        "version_attempted": entry.version_attempted,
        "version_final": entry.version_final,
        "processing_time_ms": entry.processing_time_ms,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }


class DatabaseManager:
    """Thread-safe façade over SQLAlchemy sessions and the seat assignment tables."""

    def __init__(self, database_url: str):
        engine_options: Dict[str, Any] = {"pool_pre_ping": True, "echo": False}
        if database_url.startswith("sqlite"):
            # Request threads share the file database
            engine_options["connect_args"] = {"check_same_thread": False}
        else:
            engine_options.update(
                pool_size=20,
                max_overflow=40,
                pool_recycle=3600,   # Recycle connections after 1 hour
            )
        self.engine = create_engine(database_url, **engine_options)
        self.session_factory = scoped_session(sessionmaker(bind=self.engine))

        # Create tables
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self):
        """Provide a transactional scope, committing on success and rolling back otherwise."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise StoreError(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def seed_session(
        self,
        session_id: str,
        name: str,
        rows: Iterable[Tuple[str, int]],
        attendees: Iterable[Dict[str, Any]] = (),
    ) -> Tuple[bool, str]:
        """Create a session with its layout and pre-registered attendees if it does not exist yet.

        ``rows`` are ``(row_label, seat_count)`` pairs in display order.
        """
        try:
            with self.get_session() as session:
                if session.get(EventSession, session_id) is not None:
                    return False, "session already exists"

                session.add(EventSession(id=session_id, name=name))
                row_count = 0
                for order, (row_label, seat_count) in enumerate(rows, start=1):
                    session.add(SeatLayoutRow(
                        session_id=session_id,
                        row_label=row_label,
                        seat_count=seat_count,
                        display_order=order,
                    ))
                    row_count += 1

                attendee_count = 0
                for record in attendees:
                    session.add(Attendee(
                        session_id=session_id,
                        phone=record["phone"],
                        name=record["name"],
                        attendee_count=record.get("attendee_count", 1),
                        seat_number=record.get("seat_number"),
                        is_onsite=record.get("is_onsite", False),
                    ))
                    attendee_count += 1

                return True, f"session seeded with {row_count} rows and {attendee_count} attendees"
        except StoreError as e:
            if isinstance(e.__cause__, IntegrityError):
                return False, f"database integrity error: {e.detail}"
            raise

    def find_attendee(self, phone: str, name: str, session_id: str) -> Optional[Dict[str, Any]]:
        """Exact (phone, name, session) lookup in the pre-registration list."""
        with self.get_session() as session:
            attendee = session.execute(
                select(Attendee).where(
                    Attendee.phone == phone,
                    Attendee.name == name,
                    Attendee.session_id == session_id,
                )
            ).scalar_one_or_none()
            return _attendee_to_dict(attendee) if attendee else None

    def list_active_rows(self, session_id: str) -> List[RowLayout]:
        with self.get_session() as session:
            rows = session.execute(
                select(SeatLayoutRow).where(
                    SeatLayoutRow.session_id == session_id,
                    SeatLayoutRow.is_active.is_(True),
                ).order_by(SeatLayoutRow.display_order)
            ).scalars().all()
            return [RowLayout(row.row_label, row.seat_count, row.display_order) for row in rows]

    def _seated_attendees(self, session, session_id: str) -> List[Tuple[str, Optional[str]]]:
        return session.execute(
            select(Attendee.id, Attendee.seat_number).where(
                Attendee.session_id == session_id,
                Attendee.seat_number.is_not(None),
            )
        ).all()

    def list_occupied_seats(self, session_id: str) -> List[str]:
        """Seat labels currently held by any attendee of the session, read fresh every call."""
        with self.get_session() as session:
            occupied: List[str] = []
            for _, seat_number in self._seated_attendees(session, session_id):
                occupied.extend(split_seat_number(seat_number))
            return occupied

    def conditional_update_seats(
        self,
        attendee_id: str,
        expected_version: int,
        seat_number: str,
        attendee_count: int,
    ) -> Dict[str, Any]:
        """Write the chosen seats only if the attendee row still has ``expected_version``.

        The version check and the write are one UPDATE statement, so of two
        writers holding the same version exactly one matches a row. Raises
        Conflict when nothing matched. Occupancy is not re-checked here.
        """
        with self.get_session() as session:
            result = session.execute(
                update(Attendee)
                .where(Attendee.id == attendee_id, Attendee.version == expected_version)
                .values(
                    seat_number=seat_number,
                    attendee_count=attendee_count,
                    version=expected_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise Conflict(attendee_id, expected_version)

            attendee = session.execute(
                select(Attendee).where(Attendee.id == attendee_id)
            ).scalar_one()
            return _attendee_to_dict(attendee)

    def append_log(self, entry: Dict[str, Any]) -> None:
        with self.get_session() as session:
            session.add(SeatAssignmentLog(**entry))

    def list_logs(
        self,
        session_id: str,
        event_type: Optional[EventType] = None,
        limit: Optional[int] = 100,
    ) -> List[Dict[str, Any]]:
        """Newest-first audit entries for a session."""
        with self.get_session() as session:
            query = select(SeatAssignmentLog).where(SeatAssignmentLog.session_id == session_id)
            if event_type is not None:
                query = query.where(SeatAssignmentLog.event_type == event_type)
            query = query.order_by(SeatAssignmentLog.created_at.desc(), SeatAssignmentLog.id.desc())
            if limit is not None:
                query = query.limit(limit)
            return [_log_to_dict(entry) for entry in session.execute(query).scalars()]

    def log_statistics(self, session_id: str) -> Dict[str, Any]:
        """Entry counts per event type plus the mean processing time for a session."""
        with self.get_session() as session:
            counts = session.execute(
                select(SeatAssignmentLog.event_type, func.count(SeatAssignmentLog.id))
                .where(SeatAssignmentLog.session_id == session_id)
                .group_by(SeatAssignmentLog.event_type)
            ).all()
            avg_ms = session.execute(
                select(func.avg(SeatAssignmentLog.processing_time_ms))
                .where(SeatAssignmentLog.session_id == session_id)
            ).scalar()

            count_dict = {kind: 0 for kind in EventType}
            for kind, count in counts:
                count_dict[kind] = count

            return {
                "counts": count_dict,
                "avg_processing_time_ms": round(float(avg_ms)) if avg_ms is not None else 0,
            }

    def find_duplicate_seats(self, session_id: str) -> Dict[str, List[str]]:
        """Seat labels currently claimed by more than one attendee, with the attendee ids."""
        with self.get_session() as session:
            holders: Dict[str, List[str]] = {}
            for attendee_id, seat_number in self._seated_attendees(session, session_id):
                for label in split_seat_number(seat_number):
                    holders.setdefault(canonical_seat_label(label), []).append(attendee_id)
            return {label: ids for label, ids in holders.items() if len(ids) > 1}

    def get_session_occupancy(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Return seat aggregates and per-row details for the session's active layout."""
        rows = self.list_active_rows(session_id)
        if not rows:
            return None

        taken = {key for key in map(parse_seat_label, self.list_occupied_seats(session_id)) if key}
        duplicates = self.find_duplicate_seats(session_id)

        rows_detail = []
        assigned_total = 0
        for row in rows:
            seats = build_seat_space([row])
            assigned = sum(1 for seat in seats if seat.key in taken)
            assigned_total += assigned
            rows_detail.append({
                "row_label": row.row_label,
                "display_order": row.display_order,
                "seat_count": row.seat_count,
                "assigned_seats": assigned,
                "available_seats": row.seat_count - assigned,
            })

        total_seats = sum(row.seat_count for row in rows)
        return {
            "total_seats": total_seats,
            "assigned_seats": assigned_total,
            "available_seats": total_seats - assigned_total,
            "rows": rows_detail,
            "duplicate_seats": sorted(duplicates),
            "invariants_valid": not duplicates,
        }

    def health_check(self) -> Dict:
        """Report database connectivity and session count; used by the /health endpoint."""
        try:
            with self.get_session() as session:
                # Test database connection
                session.execute(text("SELECT 1"))

                session_count = session.query(EventSession).count()

                return {
                    "status": "healthy",
                    "database": "connected",
                    "sessions": session_count
                }
        except StoreError as e:
            logger.error(f"Health check failed: {e.detail}")
            return {
                "status": "unhealthy",
                "database": "disconnected",
                "error": e.detail
            }
