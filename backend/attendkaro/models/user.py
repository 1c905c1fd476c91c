"""User and student profile models."""
from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from attendkaro import db
from attendkaro.models.base import BaseModel


class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'STUDENT'
    FACULTY = 'FACULTY'
    ADMIN = 'ADMIN'


class User(BaseModel):
    """User model for all system users."""

    __tablename__ = 'users'

    # Basic Information
    username = db.Column(db.String(100), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    department = db.Column(db.String(100), nullable=True)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        exclude = (exclude or []) + ['password_hash']
        return super().to_dict(exclude=exclude)

    def __repr__(self) -> str:
        return f'<User {self.username}>'


class Student(BaseModel):
    """Student profile holding the bound device.

    ``device_id`` stays NULL until the first accepted scan binds it.
    """

    __tablename__ = 'students'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    roll_number = db.Column(db.String(50), nullable=True, index=True)

    # Device binding
    device_id = db.Column(db.String(255), nullable=True)
    device_bound_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship('User', backref=db.backref('student_profile', uselist=False))

    def to_dict(self):
        return {
            'id': self.user_id,
            'roll_number': self.roll_number,
            'name': self.user.name if self.user else None,
            'device_id': self.device_id,
            'device_bound_at': self.device_bound_at.isoformat() if self.device_bound_at else None
        }
