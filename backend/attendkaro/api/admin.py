"""Admin endpoints for device binding oversight."""
from flask import Blueprint, g

from attendkaro.services.engine import get_engine
from attendkaro.utils.decorators import admin_required
from attendkaro.utils.helpers import success_response, get_json_body

admin_bp = Blueprint('admin', __name__)


@admin_bp.route('/device-requests', methods=['GET'])
@admin_required
def get_device_change_requests():
    """All device change requests, pending first."""
    requests = get_engine().ledger.list_requests()
    return success_response(data={'requests': [r.to_dict() for r in requests]})


@admin_bp.route('/device-requests/<int:request_id>', methods=['POST'])
@admin_required
def decide_device_change(request_id):
    """Approve or reject a pending request."""
    data = get_json_body()
    change_request = get_engine().ledger.decide(
        request_id, data.get('action'), g.current_user.id, comments=data.get('comments')
    )
    return success_response(
        data={'request': change_request.to_dict()},
        message=f'Device change request {change_request.status.value.lower()} successfully'
    )


@admin_bp.route('/students/<int:student_id>/reset-device', methods=['POST'])
@admin_required
def reset_student_device(student_id):
    """Manually clear a student's device binding."""
    get_engine().ledger.reset(student_id, admin_id=g.current_user.id)
    return success_response(message='Device binding reset successfully')
