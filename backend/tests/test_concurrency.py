"""Concurrent scans against a file-backed database shared across threads."""
import threading

import pytest
from sqlalchemy.exc import OperationalError

from attendkaro import create_app, db
from attendkaro.models.attendance import AttendanceRecord, AttendanceStatus
from attendkaro.utils.exceptions import ConflictError
from config.testing import TestingConfig
from conftest import CLASSROOM

SCANNERS = 4


@pytest.fixture
def app(clock, tmp_path, monkeypatch):
    """App on a SQLite file so every thread gets its own connection."""
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_DATABASE_URI', f"sqlite:///{tmp_path / 'scans.db'}")
    monkeypatch.setattr(TestingConfig, 'SQLALCHEMY_ENGINE_OPTIONS',
                        {'connect_args': {'check_same_thread': False, 'timeout': 15}})
    app = create_app('testing', clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def test_simultaneous_duplicate_scans_record_once(app, engine, student, active_session):
    """Same student, same token, same instant: one PRESENT row, the rest conflict."""
    session_id = active_session.id
    student_id = student.id
    qr_data = engine.codec.issue(session_id).to_json()
    engine.ledger.check_or_bind(student_id, 'device-a')
    db.session.commit()

    barrier = threading.Barrier(SCANNERS)
    outcomes = []
    lock = threading.Lock()

    def scan():
        with app.app_context():
            barrier.wait()
            try:
                engine.pipeline.mark_presence(session_id, qr_data, student_id, 'device-a', *CLASSROOM)
                outcome = 'marked'
            except (ConflictError, OperationalError) as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                outcomes.append(outcome)

    threads = [threading.Thread(target=scan) for _ in range(SCANNERS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(outcomes) == SCANNERS
    assert outcomes.count('marked') == 1
    losers = [outcome for outcome in outcomes if outcome != 'marked']
    assert all(isinstance(outcome, (ConflictError, OperationalError)) for outcome in losers)
    assert any(isinstance(outcome, ConflictError) for outcome in losers)

    db.session.expire_all()
    records = AttendanceRecord.query.filter_by(session_id=session_id, student_id=student_id).all()
    assert len(records) == 1
    assert records[0].status == AttendanceStatus.PRESENT
