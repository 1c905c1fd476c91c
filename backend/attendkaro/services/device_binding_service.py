"""One student, one device.

The first accepted scan binds the presented device id. Afterwards every scan
must come from the same device until an administrator clears the binding,
either directly or by approving a device change request.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError

from attendkaro import db
from attendkaro.models.device_change_request import DeviceChangeRequest, DeviceRequestStatus
from attendkaro.models.user import Student
from attendkaro.utils.clock import utcnow
from attendkaro.utils.exceptions import ConflictError, NotFoundError, ValidationError
from attendkaro.utils.validators import Validator

logger = logging.getLogger(__name__)

MANUAL_RESET_COMMENT = 'Manual Reset'


class BindingOutcome(Enum):
    BOUND_NEW = 'BOUND_NEW'
    BOUND_MATCH = 'BOUND_MATCH'
    MISMATCH = 'MISMATCH'

    @property
    def accepted(self) -> bool:
        return self is not BindingOutcome.MISMATCH


class DeviceBindingLedger:
    """Device binding and the device change request workflow."""

    def __init__(self, clock: Callable[[], datetime] = utcnow, reason_min_length: int = 5):
        self._clock = clock
        self.reason_min_length = reason_min_length

    def _profile(self, student_id: int) -> Student:
        profile = Student.query.filter_by(user_id=student_id).first()
        if profile is None:
            raise NotFoundError("Student record not found")
        return profile

    def check_or_bind(self, student_id: int, device_id: str) -> BindingOutcome:
        """Bind on first use, otherwise compare with the stored device.

        The bind is a conditional update committed on its own, so two first
        scans racing from different devices bind exactly one of them.
        """
        self._profile(student_id)

        result = db.session.execute(
            update(Student)
            .where(Student.user_id == student_id, Student.device_id.is_(None))
            .values(device_id=device_id, device_bound_at=self._clock())
        )
        if result.rowcount == 1:
            db.session.commit()
            logger.info("Bound device for student %s", student_id)
            return BindingOutcome.BOUND_NEW
        db.session.rollback()

        stored = db.session.query(Student.device_id).filter(Student.user_id == student_id).scalar()
        if stored == device_id:
            return BindingOutcome.BOUND_MATCH
        return BindingOutcome.MISMATCH

    def _clear_binding(self, student_id: int) -> None:
        db.session.execute(
            update(Student)
            .where(Student.user_id == student_id)
            .values(device_id=None, device_bound_at=None)
        )

    def reset(self, student_id: int, admin_id: Optional[int] = None) -> None:
        """Admin reset: clear the binding and resolve any pending request."""
        self._profile(student_id)
        now = self._clock()
        try:
            self._clear_binding(student_id)
            db.session.execute(
                update(DeviceChangeRequest)
                .where(DeviceChangeRequest.student_id == student_id,
                       DeviceChangeRequest.status == DeviceRequestStatus.PENDING)
                .values(status=DeviceRequestStatus.APPROVED,
                        admin_comments=MANUAL_RESET_COMMENT,
                        reviewed_by=admin_id,
                        reviewed_at=now,
                        updated_at=now)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        logger.info("Device binding reset for student %s by admin %s", student_id, admin_id)

    def request_change(self, student_id: int, reason: str) -> DeviceChangeRequest:
        """Open a device change request; one PENDING request per student."""
        reason = Validator.reason(reason, self.reason_min_length)
        self._profile(student_id)

        existing = DeviceChangeRequest.query.filter_by(
            student_id=student_id, status=DeviceRequestStatus.PENDING
        ).first()
        if existing:
            raise ConflictError("You already have a pending device change request")

        request = DeviceChangeRequest(student_id=student_id, reason=reason)
        db.session.add(request)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("You already have a pending device change request")
        return request

    def decide(self, request_id: int, action: str, admin_id: int,
               comments: Optional[str] = None) -> DeviceChangeRequest:
        """Approve or reject a PENDING request. Approval clears the binding."""
        try:
            status = DeviceRequestStatus(str(action).upper())
        except ValueError:
            status = None
        if status not in (DeviceRequestStatus.APPROVED, DeviceRequestStatus.REJECTED):
            raise ValidationError("Invalid action. Must be APPROVED or REJECTED")

        request = DeviceChangeRequest.query.filter_by(
            id=request_id, status=DeviceRequestStatus.PENDING
        ).first()
        if request is None:
            raise NotFoundError("Request not found or already processed")

        now = self._clock()
        try:
            result = db.session.execute(
                update(DeviceChangeRequest)
                .where(DeviceChangeRequest.id == request_id,
                       DeviceChangeRequest.status == DeviceRequestStatus.PENDING)
                .values(status=status, reviewed_by=admin_id, reviewed_at=now,
                        admin_comments=comments, updated_at=now)
            )
            if result.rowcount != 1:
                db.session.rollback()
                raise NotFoundError("Request not found or already processed")
            if status is DeviceRequestStatus.APPROVED:
                self._clear_binding(request.student_id)
            db.session.commit()
        except NotFoundError:
            raise
        except Exception:
            db.session.rollback()
            raise

        db.session.refresh(request)
        logger.info("Device change request %s %s by admin %s",
                    request_id, status.value.lower(), admin_id)
        return request

    def list_requests(self) -> List[DeviceChangeRequest]:
        """All requests, PENDING first, newest first within each group."""
        pending_first = case((DeviceChangeRequest.status == DeviceRequestStatus.PENDING, 0), else_=1)
        return DeviceChangeRequest.query.order_by(
            pending_first, DeviceChangeRequest.created_at.desc(), DeviceChangeRequest.id.desc()
        ).all()

    def pending_request(self, student_id: int) -> Optional[DeviceChangeRequest]:
        return DeviceChangeRequest.query.filter_by(
            student_id=student_id, status=DeviceRequestStatus.PENDING
        ).first()

    def profile(self, student_id: int) -> Dict:
        profile = self._profile(student_id)
        data = profile.to_dict()
        pending = self.pending_request(student_id)
        data['pending_device_request'] = pending.to_dict() if pending else None
        return data
