"""Tests for the session lifecycle: open, expire, close and code lookup."""
from datetime import timedelta

import pytest

from attendkaro import db
from attendkaro.models.attendance import AttendanceRecord, AttendanceStatus
from attendkaro.models.attendance_session import AttendanceSession, SessionState
from attendkaro.services.session_service import SESSION_CODE_ALPHABET
from attendkaro.utils.exceptions import (
    AuthorizationError, LockedOut, NotFoundError, SessionNotActive, TransientError
)
from conftest import CLASSROOM


def records_for(session_id):
    db.session.expire_all()
    return {
        r.student_id: r.status
        for r in AttendanceRecord.query.filter_by(session_id=session_id).all()
    }


def test_open_session(engine, active_session, course, clock):
    assert active_session.state == SessionState.ACTIVE
    assert active_session.class_id == course.id
    assert active_session.start_time == clock.now
    assert active_session.end_time is None
    assert (active_session.latitude, active_session.longitude) == CLASSROOM
    assert active_session.radius == 30


def test_session_code_alphabet(engine):
    for _ in range(50):
        code = engine.sessions.generate_session_code()
        assert len(code) == 6
        assert set(code) <= set(SESSION_CODE_ALPHABET)
        assert not set(code) & set('IO01')


def test_open_uses_default_radius(engine, faculty, course):
    session = engine.sessions.open_session(faculty.id, course.id, *CLASSROOM)
    assert session.radius == 30


def test_open_rejects_foreign_class(engine, other_faculty, course):
    with pytest.raises(AuthorizationError):
        engine.sessions.open_session(other_faculty.id, course.id, *CLASSROOM)


def test_open_retries_code_collision(engine, faculty, course, active_session, monkeypatch):
    codes = iter([active_session.session_code, 'FRESH2'])
    monkeypatch.setattr(engine.sessions, 'generate_session_code', lambda: next(codes))

    session = engine.sessions.open_session(faculty.id, course.id, *CLASSROOM)
    assert session.session_code == 'FRESH2'


def test_open_gives_up_after_max_attempts(engine, faculty, course, active_session, monkeypatch):
    monkeypatch.setattr(engine.sessions, 'generate_session_code', lambda: active_session.session_code)
    with pytest.raises(TransientError):
        engine.sessions.open_session(faculty.id, course.id, *CLASSROOM)


def test_ended_code_may_be_reused(engine, faculty, course, active_session, monkeypatch):
    code = active_session.session_code
    engine.sessions.end_by_owner(active_session.id, faculty.id)
    monkeypatch.setattr(engine.sessions, 'generate_session_code', lambda: code)

    session = engine.sessions.open_session(faculty.id, course.id, *CLASSROOM)
    assert session.session_code == code


def test_close_marks_missing_students_absent(engine, faculty, student, second_student, active_session):
    engine.pipeline.mark_presence(
        active_session.id, engine.codec.issue(active_session.id).to_json(),
        student.id, 'device-a', *CLASSROOM
    )

    marked_absent = engine.sessions.end_by_owner(active_session.id, faculty.id)

    assert marked_absent == 1
    assert records_for(active_session.id) == {
        student.id: AttendanceStatus.PRESENT,
        second_student.id: AttendanceStatus.ABSENT,
    }
    session = db.session.get(AttendanceSession, active_session.id)
    assert session.state == SessionState.ENDED
    assert session.end_reason == 'CLOSED'
    assert session.end_time is not None


def test_close_twice_is_rejected(engine, faculty, active_session):
    assert engine.sessions.end_by_owner(active_session.id, faculty.id) == 2
    with pytest.raises(AuthorizationError):
        engine.sessions.end_by_owner(active_session.id, faculty.id)
    # No duplicate absences
    assert len(records_for(active_session.id)) == 2


def test_close_by_other_faculty_rejected(engine, other_faculty, active_session):
    with pytest.raises(AuthorizationError):
        engine.sessions.end_by_owner(active_session.id, other_faculty.id)


def test_end_by_code(engine, active_session):
    assert engine.sessions.end_by_code(active_session.id, active_session.session_code.lower()) == 2


def test_end_by_wrong_code(engine, active_session):
    with pytest.raises(AuthorizationError):
        engine.sessions.end_by_code(active_session.id, 'ZZZZZZ')
    with pytest.raises(AuthorizationError):
        engine.sessions.end_by_code(active_session.id, None)


def test_session_active_at_exactly_max_duration(engine, active_session, clock):
    clock.advance(hours=3)
    assert engine.sessions.require_active(active_session.id).is_active


def test_overdue_session_expires_on_read(engine, active_session, clock):
    clock.advance(hours=3, seconds=1)

    with pytest.raises(SessionNotActive) as exc_info:
        engine.sessions.require_active(active_session.id)
    assert exc_info.value.expired
    assert exc_info.value.message == 'Session has expired'

    session = db.session.get(AttendanceSession, active_session.id)
    assert session.state == SessionState.ENDED
    assert session.end_reason == 'EXPIRED'
    assert set(records_for(active_session.id).values()) == {AttendanceStatus.ABSENT}


def test_expired_session_cannot_be_closed(engine, faculty, active_session, clock):
    clock.advance(hours=4)
    with pytest.raises(AuthorizationError):
        engine.sessions.end_by_owner(active_session.id, faculty.id)


def test_expire_overdue_sessions(engine, faculty, course, active_session, clock):
    clock.advance(hours=2)
    fresh = engine.sessions.open_session(faculty.id, course.id, *CLASSROOM)
    clock.advance(hours=1, minutes=30)

    assert engine.sessions.expire_overdue_sessions() == 1
    db.session.expire_all()
    assert db.session.get(AttendanceSession, active_session.id).state == SessionState.ENDED
    assert db.session.get(AttendanceSession, fresh.id).state == SessionState.ACTIVE


def test_unknown_session(engine):
    with pytest.raises(NotFoundError):
        engine.sessions.get_session('missing')
    with pytest.raises(SessionNotActive):
        engine.sessions.require_active('missing')


def test_lookup_by_code(engine, active_session):
    found = engine.sessions.lookup_by_code(active_session.session_code, '10.0.0.1')
    assert found.id == active_session.id


def test_lookup_ended_session(engine, faculty, active_session):
    engine.sessions.end_by_owner(active_session.id, faculty.id)
    with pytest.raises(SessionNotActive) as exc_info:
        engine.sessions.lookup_by_code(active_session.session_code, '10.0.0.1')
    assert exc_info.value.message == 'Session has ended'


def test_lookup_lockout_is_per_client(engine, active_session):
    """Five bad codes lock client X out; client Y can still look up."""
    for _ in range(5):
        with pytest.raises(NotFoundError):
            engine.sessions.lookup_by_code('ZZZZZZ', '10.0.0.1')

    with pytest.raises(LockedOut) as exc_info:
        engine.sessions.lookup_by_code(active_session.session_code, '10.0.0.1')
    assert exc_info.value.retry_after > 0

    found = engine.sessions.lookup_by_code(active_session.session_code, '10.0.0.2')
    assert found.id == active_session.id


def test_successful_lookup_clears_failures(engine, active_session):
    for _ in range(4):
        with pytest.raises(NotFoundError):
            engine.sessions.lookup_by_code('ZZZZZZ', '10.0.0.1')
    engine.sessions.lookup_by_code(active_session.session_code, '10.0.0.1')
    with pytest.raises(NotFoundError):
        engine.sessions.lookup_by_code('ZZZZZZ', '10.0.0.1')
    assert not engine.lockout.is_locked('10.0.0.1')


def test_stats_and_recent_scans(engine, student, second_student, active_session, clock):
    for user, device in ((student, 'device-a'), (second_student, 'device-b')):
        engine.pipeline.mark_presence(
            active_session.id, engine.codec.issue(active_session.id).to_json(),
            user.id, device, *CLASSROOM
        )
        clock.advance(seconds=2)

    stats = engine.sessions.stats(active_session.id)
    assert stats['isActive'] is True
    assert stats['studentsScanned'] == 2
    assert stats['startTime'] == '2024-01-15T09:00:00.000Z'

    scans = engine.sessions.recent_scans(active_session.id, limit=1)
    assert scans == [{'name': 'Ravi', 'roll_number': '102', 'timestamp': '2024-01-15T09:00:02.000Z'}]


def test_live_sessions_for_student(engine, student, outsider, active_session):
    live = engine.sessions.live_sessions_for_student(student.id)
    assert [s['id'] for s in live] == [active_session.id]
    assert live[0]['already_marked'] is False
    assert engine.sessions.live_sessions_for_student(outsider.id) == []


def test_max_duration_boundary(active_session, clock):
    assert not active_session.has_exceeded(timedelta(hours=3), clock.now + timedelta(hours=3))
    assert active_session.has_exceeded(timedelta(hours=3), clock.now + timedelta(hours=3, microseconds=1))
