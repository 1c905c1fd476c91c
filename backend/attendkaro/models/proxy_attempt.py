"""Append-only evidence of rejected scans."""
from attendkaro import db
from attendkaro.models.base import BaseModel
from attendkaro.utils.clock import utcnow


class ProxyAttempt(BaseModel):
    """A scan rejected for signature, expiry, geofence or device reasons.

    ``session_id`` is not a foreign key: forged tokens may name sessions
    that do not exist and the evidence is kept anyway.
    """

    __tablename__ = 'proxy_attempts'

    session_id = db.Column(db.String(64), nullable=True, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=False)
    device_id = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    attempted_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    student = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'student_id': self.student_id,
            'student_name': self.student.name if self.student else None,
            'reason': self.reason,
            'device_id': self.device_id,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'attempted_at': self.attempted_at.isoformat()
        }
