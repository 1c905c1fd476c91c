"""Student request to release the bound device."""
from enum import Enum

from attendkaro import db
from attendkaro.models.base import BaseModel


class DeviceRequestStatus(Enum):
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'


class DeviceChangeRequest(BaseModel):
    """Device change request reviewed by an administrator."""

    __tablename__ = 'device_change_requests'
    __table_args__ = (
        # At most one PENDING request per student
        db.Index(
            'uq_pending_device_request', 'student_id',
            unique=True,
            sqlite_where=db.text("status = 'PENDING'"),
            postgresql_where=db.text("status = 'PENDING'"),
        ),
    )

    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    reason = db.Column(db.Text, nullable=False)
    status = db.Column(db.Enum(DeviceRequestStatus), nullable=False, default=DeviceRequestStatus.PENDING)
    admin_comments = db.Column(db.Text, nullable=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    student = db.relationship('User', foreign_keys=[student_id])

    def to_dict(self):
        profile = self.student.student_profile if self.student else None
        return {
            'id': self.id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'roll_number': profile.roll_number if profile else None,
            'reason': self.reason,
            'status': self.status.value,
            'admin_comments': self.admin_comments,
            'created_at': self.created_at.isoformat(),
            'reviewed_at': self.reviewed_at.isoformat() if self.reviewed_at else None
        }
