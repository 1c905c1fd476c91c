"""Test authentication endpoints."""
import json

from conftest import auth_headers


def test_health_check(client):
    """Test auth health endpoint."""
    response = client.get('/api/auth/health')
    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['message'] == 'Auth service is running'


def test_app_health_check(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert json.loads(response.data)['status'] == 'healthy'


def test_login_success(client, student):
    """Test successful login."""
    response = client.post('/api/auth/login', json={
        'username': 'Student',
        'password': 'password123'
    })

    assert response.status_code == 200
    data = json.loads(response.data)
    assert data['error'] is False
    assert 'access_token' in data['data']
    assert data['data']['user']['role'] == 'STUDENT'
    assert 'password_hash' not in data['data']['user']


def test_login_invalid_credentials(client, student):
    """Test login with invalid credentials."""
    response = client.post('/api/auth/login', json={
        'username': 'student',
        'password': 'wrongpassword'
    })

    assert response.status_code == 401
    data = json.loads(response.data)
    assert data['error'] is True
    assert data['message'] == 'Invalid username or password'


def test_login_requires_json(client):
    response = client.post('/api/auth/login', data='username=student')
    assert response.status_code == 400


def test_me_returns_current_user(client, faculty):
    response = client.get('/api/auth/me', headers=auth_headers(faculty))
    assert response.status_code == 200
    assert json.loads(response.data)['data']['username'] == 'faculty'


def test_missing_token(client):
    response = client.get('/api/auth/me')
    assert response.status_code == 401
    data = json.loads(response.data)
    assert data['message'] == 'No token, authorization denied'


def test_invalid_token(client):
    response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert response.status_code == 401
    assert json.loads(response.data)['message'] == 'Token is not valid'


def test_wrong_role_is_forbidden(client, student):
    response = client.get('/api/faculty/classes', headers=auth_headers(student))
    assert response.status_code == 403
    data = json.loads(response.data)
    assert data['message'] == 'Access denied. Faculty only.'
