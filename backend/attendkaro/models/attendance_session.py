"""Attendance session opened by faculty for one class."""
import uuid
from datetime import datetime, timedelta
from enum import Enum

from attendkaro import db
from attendkaro.models.base import BaseModel
from attendkaro.utils.clock import isoformat_z


class SessionState(Enum):
    """Lifecycle states. ENDED is terminal."""
    ACTIVE = 'ACTIVE'
    ENDED = 'ENDED'


def _new_session_id() -> str:
    return str(uuid.uuid4())


class AttendanceSession(BaseModel):
    """Session for tracking attendance with rotating QR tokens."""

    __tablename__ = 'attendance_sessions'
    __table_args__ = (
        # A code may be reused over time but never by two ACTIVE sessions
        db.Index(
            'uq_active_session_code', 'session_code',
            unique=True,
            sqlite_where=db.text("state = 'ACTIVE'"),
            postgresql_where=db.text("state = 'ACTIVE'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_session_id)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id'), nullable=False, index=True)
    session_code = db.Column(db.String(6), nullable=False, index=True)
    state = db.Column(db.Enum(SessionState), nullable=False, default=SessionState.ACTIVE)

    # Geofence anchor
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    radius = db.Column(db.Float, nullable=True)  # meters; NULL means system default

    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=True)
    time_slot = db.Column(db.String(50), nullable=True)
    end_reason = db.Column(db.String(20), nullable=True)  # CLOSED | EXPIRED

    # Relationships
    course = db.relationship('Course', backref=db.backref('sessions', lazy='dynamic'))
    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    def has_exceeded(self, max_duration: timedelta, now: datetime) -> bool:
        """True once the session has run longer than ``max_duration``."""
        return now - self.start_time > max_duration

    def to_dict(self):
        """Convert to dictionary."""
        return {
            'id': self.id,
            'class_id': self.class_id,
            'session_code': self.session_code,
            'state': self.state.value,
            'is_active': self.is_active,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'radius': self.radius,
            'start_time': isoformat_z(self.start_time),
            'end_time': isoformat_z(self.end_time) if self.end_time else None,
            'time_slot': self.time_slot,
            'end_reason': self.end_reason
        }
