"""Presence verification pipeline.

Every scan runs the same ordered checks and stops at the first failure:

1. token parses                 -> ValidationError        (not logged)
2. token signature              -> IntegrityRejection     (proxy attempt)
3. token freshness              -> IntegrityRejection     (proxy attempt)
4. session exists and ACTIVE    -> SessionNotActive       (not logged)
5. geofence                     -> IntegrityRejection     (proxy attempt)
6. device binding               -> IntegrityRejection     (proxy attempt)
7. enrollment                   -> AuthorizationError     (not logged)
8. no existing record           -> ConflictError          (not logged)
9. insert PRESENT

Step 6 commits a first-time binding immediately; a later failure at step 7
or 8 leaves the device bound.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendkaro import db
from attendkaro.models.attendance import AttendanceRecord, AttendanceStatus
from attendkaro.models.attendance_session import AttendanceSession, SessionState
from attendkaro.models.proxy_attempt import ProxyAttempt
from attendkaro.services import geofence_service
from attendkaro.services.device_binding_service import BindingOutcome, DeviceBindingLedger
from attendkaro.services.roster_service import RosterService
from attendkaro.services.session_service import SessionLifecycleManager
from attendkaro.services.token_service import TokenCodec, TokenFormatError
from attendkaro.utils.clock import utcnow
from attendkaro.utils.exceptions import (
    AuthorizationError, ConflictError, IntegrityRejection, SessionNotActive, ValidationError
)

logger = logging.getLogger(__name__)

REASON_INVALID_FORMAT = 'invalid_format'
REASON_SIGNATURE = 'signature_mismatch'
REASON_EXPIRED = 'expired'
REASON_NOT_ACTIVE = 'not_active'
REASON_GEOFENCE = 'outside_geofence'
REASON_DEVICE = 'device_mismatch'
REASON_NOT_ENROLLED = 'not_enrolled'
REASON_DUPLICATE = 'already_marked'


class PresenceVerificationPipeline:
    """Turns one scan into PRESENT or a typed rejection."""

    def __init__(self, codec: TokenCodec, sessions: SessionLifecycleManager,
                 ledger: DeviceBindingLedger, roster: RosterService,
                 default_radius: float = geofence_service.DEFAULT_RADIUS_METERS,
                 clock: Callable[[], datetime] = utcnow):
        self.codec = codec
        self.sessions = sessions
        self.ledger = ledger
        self.roster = roster
        self.default_radius = default_radius
        self._clock = clock

    def log_proxy_attempt(self, session_id: Optional[str], student_id: int, reason: str,
                          device_id: Optional[str], latitude: Optional[float],
                          longitude: Optional[float]) -> None:
        """Append a proxy attempt. A failure here never hides the rejection."""
        logger.warning("Proxy attempt: student=%s session=%s reason=%s",
                       student_id, session_id, reason)
        try:
            db.session.add(ProxyAttempt(
                session_id=str(session_id) if session_id is not None else None,
                student_id=student_id,
                reason=reason,
                device_id=device_id,
                latitude=latitude,
                longitude=longitude,
                attempted_at=self._clock()
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to log proxy attempt for student %s", student_id)

    def _reject(self, reason: str, message: str, log_reason: str, session_id, student_id,
                device_id, latitude, longitude, distance: Optional[float] = None):
        self.log_proxy_attempt(session_id, student_id, log_reason, device_id, latitude, longitude)
        raise IntegrityRejection(reason, message, distance=distance)

    def mark_presence(self, session_id: str, token, student_id: int, device_id: str,
                      latitude: float, longitude: float) -> AttendanceRecord:
        session_id = str(session_id)
        evidence = (session_id, student_id, device_id, latitude, longitude)

        # 1. well-formed
        try:
            parsed = self.codec.parse(token)
        except TokenFormatError:
            raise ValidationError("Invalid QR data format", reason=REASON_INVALID_FORMAT)

        # 2. signature, bound to the session being marked
        if not self.codec.verify_signature(parsed, session_id):
            self._reject(REASON_SIGNATURE, "Invalid QR code signature",
                         "QR signature mismatch", *evidence)

        # 3. freshness
        if not self.codec.is_fresh(parsed):
            self._reject(REASON_EXPIRED, "QR code expired. Please scan a fresh code.",
                         "QR code expired", *evidence)

        # 4. session ACTIVE (auto-expiry applies)
        session = self.sessions.require_active(session_id)

        # 5. geofence
        fence = geofence_service.evaluate(
            latitude, longitude, session.latitude, session.longitude,
            session.radius, default_radius=self.default_radius
        )
        if not fence['is_inside']:
            distance = round(fence['distance'])
            radius = fence['radius']
            logger.info("Geofence fail: student=%s distance=%dm radius=%sm",
                        student_id, distance, f"{radius:g}")
            self._reject(
                REASON_GEOFENCE,
                f"You are outside the attendance area. You are {distance}m away (max {radius:g}m).",
                f"Outside geo-fence ({distance}m away, radius={radius:g}m)",
                *evidence, distance=fence['distance']
            )

        # 6. device binding
        outcome = self.ledger.check_or_bind(student_id, device_id)
        if outcome is BindingOutcome.MISMATCH:
            self._reject(REASON_DEVICE, "Device mismatch. Contact admin to change bound device.",
                         "Device mismatch (different device used)", *evidence)

        # 7. enrollment
        if not self.roster.is_enrolled(session.class_id, student_id):
            raise AuthorizationError("You are not enrolled in this class", reason=REASON_NOT_ENROLLED)

        # 8. duplicate
        if AttendanceRecord.query.filter_by(session_id=session_id, student_id=student_id).first():
            raise ConflictError("Attendance already marked for this session", reason=REASON_DUPLICATE)

        # 9. commit PRESENT
        return self._commit_present(session_id, student_id, device_id, latitude, longitude)

    def _commit_present(self, session_id: str, student_id: int, device_id: str,
                        latitude: float, longitude: float) -> AttendanceRecord:
        """Insert the PRESENT row under a shared lock on the session row.

        The lock orders this insert against a concurrent close; the unique
        (session, student) constraint settles concurrent duplicates.
        """
        try:
            state = db.session.query(AttendanceSession.state).filter(
                AttendanceSession.id == session_id
            ).with_for_update(read=True).scalar()
            if state != SessionState.ACTIVE:
                db.session.rollback()
                raise SessionNotActive("Session has ended")

            record = AttendanceRecord(
                session_id=session_id,
                student_id=student_id,
                status=AttendanceStatus.PRESENT,
                device_id=device_id,
                latitude=latitude,
                longitude=longitude,
                marked_at=self._clock()
            )
            db.session.add(record)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Attendance already marked for this session", reason=REASON_DUPLICATE)
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("Student %s marked present in session %s", student_id, session_id)
        return record
