import pytest

from app import create_app
from conftest import TEST_PASSWORD


def test_login_returns_token(client):
    response = client.post('/api/auth/login', json={'password': TEST_PASSWORD})
    assert response.status_code == 200
    data = response.get_json()
    assert data['success'] is True
    assert data['token']
    assert data['expiresIn'] == 7 * 24 * 60 * 60


def test_login_with_wrong_password(client):
    response = client.post('/api/auth/login', json={'password': 'nope'})
    assert response.status_code == 401
    assert response.get_json() == {'error': 'Invalid password'}


def test_login_without_password_is_a_validation_error(client):
    response = client.post('/api/auth/login', json={})
    assert response.status_code == 400
    assert 'password' in response.get_json()['error']


def test_verify_accepts_issued_token(client, auth_headers):
    response = client.get('/api/auth/verify', headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json() == {'valid': True}


def test_verify_without_token(client):
    response = client.get('/api/auth/verify')
    assert response.status_code == 401
    assert response.get_json()['error'] == 'Access denied. No token provided.'


def test_verify_with_bad_token(client, auth_headers):
    response = client.get('/api/auth/verify', headers={'Authorization': 'Bearer garbage'})
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Invalid or expired token.'

    truncated = auth_headers['Authorization'][:-6]
    response = client.get('/api/auth/verify', headers={'Authorization': truncated})
    assert response.status_code == 403


def test_token_from_other_secret_is_refused(make_app):
    other = make_app(JWT_SECRET='another-secret').test_client()
    token = other.post('/api/auth/login', json={'password': TEST_PASSWORD}).get_json()['token']

    client = make_app().test_client()
    response = client.get('/api/auth/verify', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 403


def test_login_is_throttled_per_ip(make_app):
    client = make_app(LOGIN_MAX_ATTEMPTS=2).test_client()
    for _ in range(2):
        assert client.post('/api/auth/login', json={'password': 'wrong'}).status_code == 401

    response = client.post('/api/auth/login', json={'password': TEST_PASSWORD})
    assert response.status_code == 429
    assert response.get_json() == {'error': 'Too many failed attempts. Please try again in 1 minutes.'}

    other_ip = client.post('/api/auth/login', json={'password': TEST_PASSWORD},
                           environ_base={'REMOTE_ADDR': '10.1.1.1'})
    assert other_ip.status_code == 200


def test_successful_login_resets_throttle(make_app):
    client = make_app(LOGIN_MAX_ATTEMPTS=2).test_client()
    client.post('/api/auth/login', json={'password': 'wrong'})
    assert client.post('/api/auth/login', json={'password': TEST_PASSWORD}).status_code == 200
    client.post('/api/auth/login', json={'password': 'wrong'})
    assert client.post('/api/auth/login', json={'password': TEST_PASSWORD}).status_code == 200


def test_rotating_forwarded_for_does_not_escape_throttle(make_app):
    client = make_app(LOGIN_MAX_ATTEMPTS=3).test_client()
    codes = [
        client.post('/api/auth/login', json={'password': 'wrong'},
                    headers={'X-Forwarded-For': f'198.51.100.{i}'}).status_code
        for i in range(10)
    ]
    assert codes[:3] == [401, 401, 401]
    assert set(codes[3:]) == {429}


def test_forwarded_for_used_behind_trusted_proxy(make_app):
    client = make_app(LOGIN_MAX_ATTEMPTS=1, TRUSTED_PROXIES=1).test_client()
    client.post('/api/auth/login', json={'password': 'wrong'},
                headers={'X-Forwarded-For': '203.0.113.5'})
    blocked = client.post('/api/auth/login', json={'password': TEST_PASSWORD},
                          headers={'X-Forwarded-For': '203.0.113.5'})
    assert blocked.status_code == 429
    assert client.post('/api/auth/login', json={'password': TEST_PASSWORD}).status_code == 200


def test_missing_password_config_exits(db):
    with pytest.raises(SystemExit) as excinfo:
        create_app({'PASSWORD': None, 'DATABASE': db, 'DATABASE_URL': ''})
    assert excinfo.value.code == 1


def test_missing_jwt_secret_falls_back(db):
    app = create_app({'PASSWORD': TEST_PASSWORD, 'JWT_SECRET': None, 'DATABASE': db, 'DATABASE_URL': ''})
    assert app.config['JWT_SECRET'].startswith('your-super-secret-jwt-key')


def test_health_is_public(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'ok': True, 'database': 'sqlite'}
