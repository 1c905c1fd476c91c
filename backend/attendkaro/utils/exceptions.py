"""Error kinds raised by the attendance services.

Every error carries the message that is safe to show to the caller and the
HTTP status the api layer renders it with. Internal detail (raw exception
text, tracebacks) is logged, never placed in ``message``.
"""
from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base class for expected, user-facing outcomes."""

    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None,
                 reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'error': True,
            'message': self.message,
            'status_code': self.status_code
        }
        if self.reason:
            data['reason'] = self.reason
        return data


class ValidationError(AttendanceError):
    """Malformed input: missing or unusable fields."""
    status_code = 400


class AuthorizationError(AttendanceError):
    """Caller is not permitted (wrong role, not the owner, wrong code)."""
    status_code = 403


class NotFoundError(AttendanceError):
    """Unknown session, student or request id."""
    status_code = 404


class ConflictError(AttendanceError):
    """Duplicate presence mark or duplicate pending request."""
    status_code = 409


class SessionNotActive(AttendanceError):
    """Session exists but is no longer accepting scans."""
    status_code = 400

    def __init__(self, message: str = 'Session not active or not found', expired: bool = False):
        super().__init__(message, reason='not_active')
        self.expired = expired


class IntegrityRejection(AttendanceError):
    """Security-relevant scan rejection, always paired with a proxy attempt."""
    status_code = 400

    def __init__(self, reason: str, message: str, distance: Optional[float] = None):
        super().__init__(message, reason=reason)
        self.distance = distance


class LockedOut(AttendanceError):
    """Too many failed session-code lookups from one client."""
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__(
            f'Too many invalid session codes. Try again in {retry_after} seconds.'
        )
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['retry_after'] = self.retry_after
        return data


class TransientError(AttendanceError):
    """Store or network timeout; safe to retry."""
    status_code = 503

    def __init__(self, message: str = 'Service temporarily unavailable. Please retry.'):
        super().__init__(message)


class InvariantViolation(AttendanceError):
    """State that should never happen. Aborts the unit of work."""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__('Internal server error')
        self.detail = detail
