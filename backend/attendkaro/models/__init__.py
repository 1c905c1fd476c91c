"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole, Student
from .course import Course, Enrollment
from .attendance_session import AttendanceSession, SessionState
from .attendance import AttendanceRecord, AttendanceStatus
from .device_change_request import DeviceChangeRequest, DeviceRequestStatus
from .proxy_attempt import ProxyAttempt

__all__ = [
    'BaseModel', 'User', 'UserRole', 'Student',
    'Course', 'Enrollment',
    'AttendanceSession', 'SessionState',
    'AttendanceRecord', 'AttendanceStatus',
    'DeviceChangeRequest', 'DeviceRequestStatus',
    'ProxyAttempt'
]
