import base64
import json

import jwt
import pytest
from limits import parse

from auth import (
    LOGIN_SCOPE, client_ip, decode_token, generate_token, limiter, login_limit, login_retry_minutes,
    reset_login_attempts, throttled_message, verify_password, verify_token,
)

SECRET = 'unit-test-secret'


def test_verify_password_is_exact_match():
    assert verify_password('hunter2', 'hunter2')
    assert not verify_password('hunter3', 'hunter2')
    assert not verify_password('Hunter2', 'hunter2')
    assert not verify_password('', 'hunter2')
    assert not verify_password('hunter2', None)


def test_token_carries_admin_identity():
    token = generate_token(SECRET, 3600)
    claims = decode_token(token, SECRET)
    assert claims['userId'] == 'admin'
    assert claims['exp'] > claims['iat']
    assert verify_token(token, SECRET)


def test_token_signed_with_other_secret_is_rejected():
    token = generate_token('someone-else', 3600)
    assert not verify_token(token, SECRET)


def test_tampered_payload_is_rejected():
    header, payload, signature = generate_token(SECRET, 3600).split('.')
    claims = json.loads(base64.urlsafe_b64decode(payload + '=' * (-len(payload) % 4)))
    claims['userId'] = 'intruder'
    forged = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b'=').decode()

    assert not verify_token(f"{header}.{forged}.{signature}", SECRET)


def test_expired_token_is_rejected():
    token = generate_token(SECRET, -10)
    assert not verify_token(token, SECRET)
    with pytest.raises(jwt.ExpiredSignatureError):
        decode_token(token, SECRET)


def test_garbage_token_is_rejected():
    assert not verify_token('not-a-token', SECRET)


class TestLoginThrottle:
    def test_limit_is_built_from_config(self, make_app):
        app = make_app(LOGIN_MAX_ATTEMPTS=5, LOGIN_WINDOW_SECONDS=900)
        with app.app_context():
            assert login_limit() == '5 per 900 seconds'

    def test_reset_clears_only_current_client(self, make_app):
        app = make_app(LOGIN_MAX_ATTEMPTS=2)
        with app.test_request_context(environ_base={'REMOTE_ADDR': '10.0.0.1'}):
            item = parse(login_limit())
            limiter.limiter.hit(item, '10.0.0.1', LOGIN_SCOPE)
            limiter.limiter.hit(item, '10.0.0.2', LOGIN_SCOPE)

            reset_login_attempts()

            assert limiter.limiter.get_window_stats(item, '10.0.0.1', LOGIN_SCOPE).remaining == 2
            assert limiter.limiter.get_window_stats(item, '10.0.0.2', LOGIN_SCOPE).remaining == 1

    def test_message_rounds_wait_up_to_minutes(self, make_app):
        app = make_app(LOGIN_MAX_ATTEMPTS=1, LOGIN_WINDOW_SECONDS=900)
        with app.test_request_context():
            limiter.limiter.hit(parse(login_limit()), client_ip(), LOGIN_SCOPE)
            assert login_retry_minutes() == 15
            assert throttled_message() == 'Too many failed attempts. Please try again in 15 minutes.'

    def test_client_ip_ignores_forwarded_header(self, make_app):
        app = make_app()
        with app.test_request_context(headers={'X-Forwarded-For': '203.0.113.9'},
                                      environ_base={'REMOTE_ADDR': '10.0.0.7'}):
            assert client_ip() == '10.0.0.7'
