"""ORM model definitions describing the seat assignment schema."""

from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Index,
    Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
import enum
import uuid

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, enum.Enum):
    """Outcome kinds recorded in the assignment audit log."""
    SUCCESS = 'success'
    CONFLICT = 'conflict'
    RETRY = 'retry'
    ERROR = 'error'


class EventSession(Base):
    __tablename__ = 'sessions'

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    event_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    rows = relationship('SeatLayoutRow', back_populates='session', cascade='all, delete-orphan')
    attendees = relationship('Attendee', back_populates='session', cascade='all, delete-orphan')


class SeatLayoutRow(Base):
    __tablename__ = 'seat_layout'

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(36), ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False)
    row_label = Column(String(1), nullable=False)
    seat_count = Column(Integer, nullable=False)
    display_order = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    session = relationship('EventSession', back_populates='rows')

    __table_args__ = (
        CheckConstraint('seat_count >= 1', name='ck_seat_layout_seat_count'),
        # Labels only need to be unique among the rows currently in use
        Index(
            'uq_seat_layout_active_label', 'session_id', 'row_label',
            unique=True,
            postgresql_where=is_active.is_(True),
            sqlite_where=is_active.is_(True),
        ),
        Index('idx_seat_layout_session_order', 'session_id', 'display_order'),
    )


class Attendee(Base):
    __tablename__ = 'attendees'

    id = Column(String(36), primary_key=True, default=_new_id)
    session_id = Column(String(36), ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False)
    phone = Column(String(11), nullable=False)
    name = Column(String(50), nullable=False)
    attendee_count = Column(Integer, nullable=False, default=1)
    seat_number = Column(Text)
    version = Column(Integer, nullable=False, default=0)
    is_onsite = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    session = relationship('EventSession', back_populates='attendees')

    __table_args__ = (
        UniqueConstraint('session_id', 'phone', 'name', name='uq_attendees_identity'),
        Index('idx_attendees_session_seated', 'session_id', 'seat_number'),
    )


class SeatAssignmentLog(Base):
    """Append-only audit record, one per allocation request."""
    __tablename__ = 'seat_assignment_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    # No foreign keys: entries must survive even for unknown sessions/attendees
    session_id = Column(String(36))
    attendee_id = Column(String(36))
    attendee_name = Column(String(200))
    attendee_phone = Column(String(50))
    requested_seat_count = Column(Integer)
    assigned_seats = Column(Text)
    event_type = Column(Enum(EventType, name='assignment_event_type_enum',
                             values_callable=lambda kinds: [k.value for k in kinds]),
                        nullable=False)
    error_message = Column(Text)
    version_attempted = Column(Integer)
    version_final = Column(Integer)
    processing_time_ms = Column(Integer)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index('idx_assignment_logs_session_created', 'session_id', 'created_at'),
        Index('idx_assignment_logs_event_type', 'event_type'),
    )
