"""Attendance session lifecycle: open, auto-expire, close and reconcile."""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from attendkaro import db
from attendkaro.models.attendance import AttendanceRecord, AttendanceStatus
from attendkaro.models.attendance_session import AttendanceSession, SessionState
from attendkaro.models.course import Course, Enrollment
from attendkaro.models.user import Student, User
from attendkaro.services.roster_service import RosterService
from attendkaro.utils.clock import isoformat_z, utcnow
from attendkaro.utils.decorators import retry_transient
from attendkaro.utils.exceptions import (
    AuthorizationError, InvariantViolation, LockedOut, NotFoundError,
    SessionNotActive, TransientError
)

logger = logging.getLogger(__name__)

# No I, O, 0 or 1
SESSION_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'

END_CLOSED = 'CLOSED'
END_EXPIRED = 'EXPIRED'


class SessionLifecycleManager:
    """Owns session state. ACTIVE -> ENDED is the only transition."""

    def __init__(self, roster: RosterService,
                 clock: Callable[[], datetime] = utcnow,
                 max_duration: timedelta = timedelta(hours=3),
                 code_length: int = 6,
                 max_code_attempts: int = 5,
                 default_radius: float = 30.0,
                 lockout=None):
        self.roster = roster
        self._clock = clock
        self.max_duration = max_duration
        self.code_length = code_length
        self.max_code_attempts = max_code_attempts
        self.default_radius = default_radius
        self.lockout = lockout

    # ---- codes -------------------------------------------------------

    def generate_session_code(self) -> str:
        return ''.join(secrets.choice(SESSION_CODE_ALPHABET) for _ in range(self.code_length))

    def _code_in_use(self, code: str) -> bool:
        return db.session.query(
            AttendanceSession.query.filter_by(session_code=code, state=SessionState.ACTIVE).exists()
        ).scalar()

    # ---- open --------------------------------------------------------

    def open_session(self, faculty_id: int, class_id: int, latitude: float, longitude: float,
                     radius: Optional[float] = None, time_slot: Optional[str] = None) -> AttendanceSession:
        """Start a session for a class owned by ``faculty_id``."""
        course = Course.query.filter_by(id=class_id, faculty_id=faculty_id).first()
        if course is None:
            raise AuthorizationError("Class not found or unauthorized")

        for attempt in range(1, self.max_code_attempts + 1):
            code = self.generate_session_code()
            if self._code_in_use(code):
                continue

            session = AttendanceSession(
                class_id=course.id,
                session_code=code,
                state=SessionState.ACTIVE,
                latitude=latitude,
                longitude=longitude,
                radius=radius if radius is not None else self.default_radius,
                start_time=self._clock(),
                time_slot=time_slot
            )
            db.session.add(session)
            try:
                db.session.commit()
            except IntegrityError:
                # Another session grabbed the code between check and insert
                db.session.rollback()
                continue

            logger.info("Session %s opened for class %s with code %s",
                        session.id, course.id, code)
            return session

        logger.warning("No free session code after %d attempts", self.max_code_attempts)
        raise TransientError("Could not allocate a session code. Please retry.")

    # ---- reads and auto-expiry ---------------------------------------

    @retry_transient
    def _load(self, session_id: str) -> Optional[AttendanceSession]:
        return db.session.get(AttendanceSession, str(session_id))

    def get_session(self, session_id: str) -> AttendanceSession:
        """Load a session, ending it first if it has outlived its maximum duration."""
        session = self._load(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        self._expire_if_overdue(session)
        return session

    def _expire_if_overdue(self, session: AttendanceSession) -> bool:
        now = self._clock()
        if session.is_active and session.has_exceeded(self.max_duration, now):
            self._close(session.id, session.class_id, END_EXPIRED)
            db.session.refresh(session)
            return True
        return False

    def require_active(self, session_id: str) -> AttendanceSession:
        """Load a session that must still accept scans."""
        try:
            session = self.get_session(session_id)
        except NotFoundError:
            raise SessionNotActive()
        if not session.is_active:
            if session.end_reason == END_EXPIRED:
                raise SessionNotActive("Session has expired", expired=True)
            raise SessionNotActive("Session has ended")
        return session

    def expire_overdue_sessions(self) -> int:
        """End every ACTIVE session past its maximum duration."""
        cutoff = self._clock() - self.max_duration
        overdue = AttendanceSession.query.filter(
            AttendanceSession.state == SessionState.ACTIVE,
            AttendanceSession.start_time < cutoff
        ).all()
        expired = 0
        for session in overdue:
            if self._close(session.id, session.class_id, END_EXPIRED) is not None:
                expired += 1
        return expired

    # ---- close -------------------------------------------------------

    def _close(self, session_id: str, class_id: int, end_reason: str) -> Optional[int]:
        """Flip ACTIVE -> ENDED and insert ABSENT rows in one transaction.

        Returns the number of absences recorded, or None when the session
        was no longer ACTIVE. The conditional update takes the session row
        lock, so scans committing before it are visible to the roster diff
        and scans after it see the ENDED state.
        """
        now = self._clock()
        try:
            result = db.session.execute(
                update(AttendanceSession)
                .where(AttendanceSession.id == session_id,
                       AttendanceSession.state == SessionState.ACTIVE)
                .values(state=SessionState.ENDED, end_time=now, end_reason=end_reason)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                db.session.rollback()
                return None
            if result.rowcount != 1:
                raise InvariantViolation(f"close matched {result.rowcount} rows for session {session_id}")

            enrolled = self.roster.enrolled_students(class_id)
            recorded = {
                student_id for (student_id,) in db.session.query(AttendanceRecord.student_id)
                .filter(AttendanceRecord.session_id == session_id)
            }
            absent = sorted(enrolled - recorded)
            if absent:
                db.session.execute(
                    AttendanceRecord.__table__.insert(),
                    [{
                        'session_id': session_id,
                        'student_id': student_id,
                        'status': AttendanceStatus.ABSENT,
                        'marked_at': now,
                        'created_at': now,
                        'updated_at': now
                    } for student_id in absent]
                )

            state = db.session.query(AttendanceSession.state).filter(
                AttendanceSession.id == session_id
            ).scalar()
            if state != SessionState.ENDED:
                raise InvariantViolation(f"session {session_id} is {state} during reconciliation")

            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning("Reconciliation for session %s raced a scan: %s", session_id, exc.orig)
            raise TransientError("Attendance changed while ending the session. Please retry.") from exc
        except InvariantViolation:
            db.session.rollback()
            logger.exception("Invariant violated while closing session %s", session_id)
            raise
        except SQLAlchemyError:
            db.session.rollback()
            raise

        logger.info("Session %s ended (%s), %d marked absent", session_id, end_reason.lower(), len(absent))
        return len(absent)

    def end_by_owner(self, session_id: str, faculty_id: int) -> int:
        """Close a session from the faculty dashboard."""
        session = AttendanceSession.query.join(Course).filter(
            AttendanceSession.id == str(session_id),
            Course.faculty_id == faculty_id
        ).first()
        if session is None or self._expire_if_overdue(session) or not session.is_active:
            raise AuthorizationError("Session not found or already ended")

        marked_absent = self._close(session.id, session.class_id, END_CLOSED)
        if marked_absent is None:
            raise AuthorizationError("Session not found or already ended")
        return marked_absent

    def end_by_code(self, session_id: str, session_code: Optional[str]) -> int:
        """Close a session from the public display, proven by its code."""
        code = (session_code or '').strip().upper()
        session = AttendanceSession.query.filter_by(
            id=str(session_id), session_code=code, state=SessionState.ACTIVE
        ).first() if code else None
        if session is None or self._expire_if_overdue(session):
            raise AuthorizationError("Invalid session or code")

        marked_absent = self._close(session.id, session.class_id, END_CLOSED)
        if marked_absent is None:
            raise AuthorizationError("Invalid session or code")
        return marked_absent

    # ---- display lookups ---------------------------------------------

    def lookup_by_code(self, session_code: str, client_id: str) -> AttendanceSession:
        """Resolve a code typed into the display, guarded by the lockout."""
        if self.lockout is not None:
            retry_after = self.lockout.retry_after(client_id)
            if retry_after:
                logger.warning("Rejected locked-out session-code lookup from %s", client_id)
                raise LockedOut(retry_after)

        session = AttendanceSession.query.filter_by(
            session_code=session_code, state=SessionState.ACTIVE
        ).first()
        if session is None:
            ended = AttendanceSession.query.filter_by(session_code=session_code).first()
            if ended is None:
                if self.lockout is not None:
                    self.lockout.record_failure(client_id)
                raise NotFoundError("Invalid session code")
            if self.lockout is not None:
                self.lockout.clear(client_id)
            raise SessionNotActive("Session has ended")

        if self.lockout is not None:
            self.lockout.clear(client_id)
        if self._expire_if_overdue(session):
            raise SessionNotActive("Session has expired", expired=True)
        return session

    @retry_transient
    def present_count(self, session_id: str) -> int:
        return db.session.query(func.count(AttendanceRecord.id)).filter(
            AttendanceRecord.session_id == str(session_id),
            AttendanceRecord.status == AttendanceStatus.PRESENT
        ).scalar() or 0

    def stats(self, session_id: str) -> Dict:
        session = self.get_session(session_id)
        return {
            'isActive': session.is_active,
            'studentsScanned': self.present_count(session.id),
            'startTime': isoformat_z(session.start_time),
            'endTime': isoformat_z(session.end_time) if session.end_time else None,
            'endReason': session.end_reason
        }

    @retry_transient
    def recent_scans(self, session_id: str, limit: int = 10) -> List[Dict]:
        rows = db.session.query(User.name, Student.roll_number, AttendanceRecord.marked_at).join(
            AttendanceRecord, AttendanceRecord.student_id == User.id
        ).outerjoin(
            Student, Student.user_id == User.id
        ).filter(
            AttendanceRecord.session_id == str(session_id),
            AttendanceRecord.status == AttendanceStatus.PRESENT
        ).order_by(AttendanceRecord.marked_at.desc(), AttendanceRecord.id.desc()).limit(limit).all()
        return [
            {'name': name, 'roll_number': roll_number, 'timestamp': isoformat_z(marked_at)}
            for name, roll_number, marked_at in rows
        ]

    # ---- faculty views -----------------------------------------------

    def owned_session(self, session_id: str, faculty_id: int) -> AttendanceSession:
        session = self.get_session(session_id)
        if session.course.faculty_id != faculty_id:
            raise AuthorizationError("Session not found or unauthorized")
        return session

    def live_attendance(self, session_id: str, faculty_id: int) -> Dict:
        session = self.owned_session(session_id, faculty_id)
        students = self.recent_scans(session.id, limit=None)
        return {
            'session': session.to_dict(),
            'count': len(students),
            'students': students
        }

    @retry_transient
    def sessions_for_faculty(self, faculty_id: int, limit: int = 50) -> List[AttendanceSession]:
        return AttendanceSession.query.join(Course).filter(
            Course.faculty_id == faculty_id
        ).order_by(AttendanceSession.start_time.desc()).limit(limit).all()

    @retry_transient
    def live_sessions_for_student(self, student_id: int) -> List[Dict]:
        sessions = AttendanceSession.query.join(Course).join(
            Enrollment, Enrollment.class_id == Course.id
        ).filter(
            Enrollment.student_id == student_id,
            AttendanceSession.state == SessionState.ACTIVE
        ).order_by(AttendanceSession.start_time.desc()).all()

        marked = {
            session_id for (session_id,) in db.session.query(AttendanceRecord.session_id).filter(
                AttendanceRecord.student_id == student_id,
                AttendanceRecord.session_id.in_([s.id for s in sessions])
            )
        } if sessions else set()

        live = []
        for session in sessions:
            if session.has_exceeded(self.max_duration, self._clock()):
                continue
            live.append({
                'id': session.id,
                'class_id': session.class_id,
                'subject': session.course.subject,
                'faculty_name': session.course.faculty.name,
                'session_code': session.session_code,
                'start_time': isoformat_z(session.start_time),
                'time_slot': session.time_slot,
                'already_marked': session.id in marked
            })
        return live
