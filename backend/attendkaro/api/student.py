"""Student endpoints: mark attendance and manage the bound device."""
from flask import Blueprint, g

from attendkaro import limiter
from attendkaro.models.attendance import AttendanceRecord
from attendkaro.models.attendance_session import AttendanceSession
from attendkaro.models.course import Course
from attendkaro.services.engine import get_engine
from attendkaro.utils.clock import isoformat_z
from attendkaro.utils.decorators import student_required
from attendkaro.utils.helpers import success_response, get_json_body
from attendkaro.utils.validators import Validator

student_bp = Blueprint('student', __name__)


@student_bp.route('/attendance/mark', methods=['POST'])
@student_required
@limiter.limit("30 per minute")
def mark_attendance():
    """Scan endpoint: run the presence verification pipeline."""
    data = get_json_body()
    Validator.require_fields(data, ['session_id', 'qr_data', 'device_id', 'latitude', 'longitude'])

    record = get_engine().pipeline.mark_presence(
        session_id=Validator.session_id(data['session_id']),
        token=data['qr_data'],
        student_id=g.current_user.id,
        device_id=Validator.device_id(data['device_id']),
        latitude=Validator.latitude(data['latitude']),
        longitude=Validator.longitude(data['longitude'])
    )

    return success_response(
        data={'status': record.status.value, 'marked_at': isoformat_z(record.marked_at)},
        message='Attendance marked successfully!'
    )


@student_bp.route('/sessions/live', methods=['GET'])
@student_required
def get_live_sessions():
    """Active sessions for the student's classes."""
    sessions = get_engine().sessions.live_sessions_for_student(g.current_user.id)
    return success_response(data={'sessions': sessions})


@student_bp.route('/attendance/history', methods=['GET'])
@student_required
def get_attendance_history():
    """Last 50 attendance records."""
    rows = AttendanceRecord.query.join(AttendanceSession).join(Course).filter(
        AttendanceRecord.student_id == g.current_user.id
    ).order_by(AttendanceRecord.marked_at.desc()).limit(50).all()

    records = []
    for record in rows:
        item = record.to_dict()
        item['subject'] = record.session.course.subject
        item['session_date'] = isoformat_z(record.session.start_time)
        item['session_code'] = record.session.session_code
        records.append(item)
    return success_response(data={'records': records})


@student_bp.route('/profile', methods=['GET'])
@student_required
def get_profile():
    """Profile with device binding and any pending change request."""
    return success_response(data={'profile': get_engine().ledger.profile(g.current_user.id)})


@student_bp.route('/device/change-request', methods=['POST'])
@student_required
def request_device_change():
    """Ask an administrator to release the bound device."""
    data = get_json_body()
    change_request = get_engine().ledger.request_change(g.current_user.id, data.get('reason'))
    return success_response(
        data={'request': change_request.to_dict()},
        message='Device change request submitted successfully. Awaiting admin approval.',
        status_code=201
    )
