"""Test admin device oversight endpoints."""
import json

from attendkaro import db
from attendkaro.models.user import Student
from conftest import auth_headers


def bound_device(student_id):
    db.session.expire_all()
    return Student.query.filter_by(user_id=student_id).one().device_id


def test_list_requests(client, engine, admin, student):
    engine.ledger.request_change(student.id, 'Phone was replaced')
    response = client.get('/api/admin/device-requests', headers=auth_headers(admin))
    assert response.status_code == 200
    requests = json.loads(response.data)['data']['requests']
    assert len(requests) == 1
    assert requests[0]['student_name'] == 'Asha'
    assert requests[0]['roll_number'] == '101'


def test_approve_request_unbinds(client, engine, admin, student):
    engine.ledger.check_or_bind(student.id, 'device-a')
    change_request = engine.ledger.request_change(student.id, 'Phone was replaced')

    response = client.post(f'/api/admin/device-requests/{change_request.id}',
                           json={'action': 'APPROVED', 'comments': 'verified'},
                           headers=auth_headers(admin))

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['message'] == 'Device change request approved successfully'
    assert data['data']['request']['admin_comments'] == 'verified'
    assert bound_device(student.id) is None


def test_decide_twice(client, engine, admin, student):
    change_request = engine.ledger.request_change(student.id, 'Phone was replaced')
    url = f'/api/admin/device-requests/{change_request.id}'
    assert client.post(url, json={'action': 'REJECTED'}, headers=auth_headers(admin)).status_code == 200
    response = client.post(url, json={'action': 'APPROVED'}, headers=auth_headers(admin))
    assert response.status_code == 404


def test_invalid_action(client, engine, admin, student):
    change_request = engine.ledger.request_change(student.id, 'Phone was replaced')
    response = client.post(f'/api/admin/device-requests/{change_request.id}',
                           json={'action': 'LATER'}, headers=auth_headers(admin))
    assert response.status_code == 400


def test_reset_device(client, engine, admin, student):
    engine.ledger.check_or_bind(student.id, 'device-a')
    response = client.post(f'/api/admin/students/{student.id}/reset-device', headers=auth_headers(admin))
    assert response.status_code == 200
    assert bound_device(student.id) is None


def test_reset_unknown_student(client, admin):
    response = client.post('/api/admin/students/999/reset-device', headers=auth_headers(admin))
    assert response.status_code == 404


def test_admin_only(client, student):
    response = client.get('/api/admin/device-requests', headers=auth_headers(student))
    assert response.status_code == 403
