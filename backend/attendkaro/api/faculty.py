"""Faculty endpoints: open, watch and end attendance sessions."""
from flask import Blueprint, current_app, g

from attendkaro import limiter
from attendkaro.models.attendance_session import AttendanceSession
from attendkaro.models.course import Course
from attendkaro.models.proxy_attempt import ProxyAttempt
from attendkaro.services.engine import get_engine
from attendkaro.utils.decorators import faculty_required
from attendkaro.utils.helpers import success_response, get_json_body
from attendkaro.utils.validators import Validator

faculty_bp = Blueprint('faculty', __name__)


@faculty_bp.route('/classes', methods=['GET'])
@faculty_required
def get_classes():
    """Classes taught by the current faculty member."""
    classes = Course.query.filter_by(faculty_id=g.current_user.id).order_by(Course.created_at.desc()).all()
    return success_response(data={'classes': [c.to_dict() for c in classes]})


@faculty_bp.route('/sessions', methods=['POST'])
@faculty_required
@limiter.limit("30 per hour")
def start_session():
    """Start an attendance session and return its code and first token."""
    data = get_json_body()
    Validator.require_fields(data, ['classId', 'latitude', 'longitude'])

    engine = get_engine()
    radius = Validator.radius(data.get('radius'), current_app.config['GEO_FENCE_RADIUS'])
    time_slot = data.get('timeSlot')
    if time_slot is not None:
        time_slot = str(time_slot).strip()[:50] or None

    try:
        class_id = int(data['classId'])
    except (TypeError, ValueError):
        class_id = None
    session = engine.sessions.open_session(
        faculty_id=g.current_user.id,
        class_id=class_id,
        latitude=Validator.latitude(data['latitude']),
        longitude=Validator.longitude(data['longitude']),
        radius=radius,
        time_slot=time_slot
    )

    payload = session.to_dict()
    payload['qrData'] = engine.codec.issue(session.id).to_json()
    return success_response(data={'session': payload},
                            message='Session started successfully', status_code=201)


@faculty_bp.route('/sessions', methods=['GET'])
@faculty_required
def list_sessions():
    """Recent sessions across the faculty member's classes."""
    sessions = get_engine().sessions.sessions_for_faculty(g.current_user.id)
    return success_response(data={'sessions': [s.to_dict() for s in sessions]})


@faculty_bp.route('/sessions/<session_id>/end', methods=['POST'])
@faculty_required
def end_session(session_id):
    """End an owned session and mark everyone without a record absent."""
    marked_absent = get_engine().sessions.end_by_owner(session_id, g.current_user.id)
    return success_response(data={'markedAbsent': marked_absent},
                            message='Session ended successfully')


@faculty_bp.route('/sessions/<session_id>/live', methods=['GET'])
@faculty_required
def get_live_count(session_id):
    """Students marked present so far."""
    return success_response(data=get_engine().sessions.live_attendance(session_id, g.current_user.id))


@faculty_bp.route('/analytics', methods=['GET'])
@faculty_required
def get_analytics():
    """Class count and recent proxy attempts across owned classes."""
    faculty_id = g.current_user.id
    limit = current_app.config.get('ANALYTICS_PROXY_ATTEMPTS_LIMIT', 20)

    attempts = ProxyAttempt.query.join(
        AttendanceSession, AttendanceSession.id == ProxyAttempt.session_id
    ).join(Course).filter(
        Course.faculty_id == faculty_id
    ).order_by(ProxyAttempt.attempted_at.desc(), ProxyAttempt.id.desc()).limit(limit).all()

    return success_response(data={
        'totalClasses': Course.query.filter_by(faculty_id=faculty_id).count(),
        'proxyAttempts': [attempt.to_dict() for attempt in attempts]
    })
