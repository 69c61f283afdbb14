"""
Shared pytest fixtures.

Every test gets its own SQLite file under pytest's tmp_path, so nothing is
written next to the project and tests never see each other's rows.
"""
import sys
from pathlib import Path

import pytest

# Modules live at the project root
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from database import SQLiteDatabase

TEST_PASSWORD = 'correct horse battery staple'
TEST_SECRET = 'test-jwt-secret'


@pytest.fixture
def db(tmp_path):
    database = SQLiteDatabase(tmp_path / 'calendar-test.db')
    database.init_db()
    return database


@pytest.fixture
def make_app(db):
    def factory(**overrides):
        config = {
            'TESTING': True,
            'PASSWORD': TEST_PASSWORD,
            'JWT_SECRET': TEST_SECRET,
            'DATABASE_URL': '',
            'DATABASE': db,
        }
        config.update(overrides)
        return create_app(config)
    return factory


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(client):
    response = client.post('/api/auth/login', json={'password': TEST_PASSWORD})
    assert response.status_code == 200
    return {'Authorization': f"Bearer {response.get_json()['token']}"}
