"""Presence record: one row per (session, student)."""
from enum import Enum

from attendkaro import db
from attendkaro.models.base import BaseModel
from attendkaro.utils.clock import utcnow, isoformat_z


class AttendanceStatus(Enum):
    PRESENT = 'PRESENT'
    ABSENT = 'ABSENT'
    LATE = 'LATE'


class AttendanceRecord(BaseModel):
    """Attendance record model."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'student_id', name='uq_attendance_session_student'),
    )

    session_id = db.Column(db.String(36), db.ForeignKey('attendance_sessions.id'), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False)
    marked_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    # Capture metadata; empty for reconciled absences
    device_id = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    student = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'student_id': self.student_id,
            'status': self.status.value,
            'marked_at': isoformat_z(self.marked_at)
        }

    def __repr__(self):
        return f'<AttendanceRecord {self.session_id}-{self.student_id} {self.status.value}>'
