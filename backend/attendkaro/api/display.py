"""Public display endpoints (no JWT).

The classroom screen finds its session by code, then polls for a fresh
signed token every few seconds. Every route is rate limited; the code
lookup is additionally guarded by the per-client lockout.
"""
from flask import Blueprint, current_app

from attendkaro import limiter
from attendkaro.services.engine import get_engine
from attendkaro.services.token_service import render_qr_image
from attendkaro.utils.helpers import success_response, get_json_body, client_identity
from attendkaro.utils.validators import Validator

display_bp = Blueprint('display', __name__)


@display_bp.route('/validate', methods=['POST'])
@limiter.limit("5 per minute")
def validate_session():
    """Resolve a session code typed into the display."""
    data = get_json_body()
    code = Validator.session_code(data.get('sessionCode'))

    engine = get_engine()
    session = engine.sessions.lookup_by_code(code, client_identity())
    course = session.course

    return success_response(data={
        'session': {
            'id': session.id,
            'sessionCode': session.session_code,
            'className': course.subject,
            'classInfo': course.class_info,
            'facultyName': course.faculty.name,
            'startTime': session.to_dict()['start_time'],
            'timeSlot': session.time_slot,
            'isActive': session.is_active
        },
        'studentsScanned': engine.sessions.present_count(session.id)
    }, message="Session found")


@display_bp.route('/<session_id>/qr-token', methods=['GET'])
@limiter.limit("15 per minute")
def get_qr_token(session_id):
    """Issue a fresh signed token for the display to render."""
    engine = get_engine()
    session = engine.sessions.require_active(session_id)
    token = engine.codec.issue(session.id)
    qr_data = token.to_json()

    return success_response(data={
        'qrData': qr_data,
        'qrImage': render_qr_image(qr_data),
        'studentsScanned': engine.sessions.present_count(session.id),
        'validitySeconds': engine.codec.validity_seconds,
        'refreshSeconds': engine.refresh_seconds
    })


@display_bp.route('/<session_id>/stats', methods=['GET'])
@limiter.limit("30 per minute")
def get_session_stats(session_id):
    """Live session stats."""
    return success_response(data=get_engine().sessions.stats(session_id))


@display_bp.route('/<session_id>/recent-scans', methods=['GET'])
@limiter.limit("15 per minute")
def get_recent_scans(session_id):
    """Latest students marked present."""
    engine = get_engine()
    session = engine.sessions.get_session(session_id)
    scans = engine.sessions.recent_scans(session.id, limit=current_app.config.get('RECENT_SCANS_LIMIT', 10))
    return success_response(data={'scans': scans})


@display_bp.route('/<session_id>/end', methods=['POST'])
@limiter.limit("3 per minute")
def end_session_by_code(session_id):
    """End a session from the display; the session code proves access."""
    data = get_json_body()
    marked_absent = get_engine().sessions.end_by_code(session_id, data.get('sessionCode'))

    return success_response(
        data={'markedAbsent': marked_absent},
        message='Session ended successfully'
    )
