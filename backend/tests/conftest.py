"""
Pytest fixtures for Cave backend tests.

Provides test database setup, user and event factories, and test client.
"""

from datetime import timedelta

import pytest
from cave import create_app
from cave.extensions import db
from cave.models import User
from cave.models.events import EVENT_KIND_SCHEDULED, EVENT_KIND_TICKETED
from cave.services import event_service
from cave.services.auth_service import hash_password
from cave.time_utils import utcnow

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: make_user("alice", is_admin=False) -> User with PASSWORD."""
    def _make(username: str, is_admin: bool = False) -> User:
        user = User(
            username=username,
            email=f"{username}@cave.local",
            password_hash=hash_password(PASSWORD),
            is_admin=is_admin,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def user(make_user):
    return make_user("alice")


@pytest.fixture(scope='function')
def other_user(make_user):
    return make_user("bob")


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("operator", is_admin=True)


@pytest.fixture(scope='function')
def make_event(db_session):
    """
    Factory for events. By default the window opened an hour ago and
    closes in two hours, sessions last 30 minutes, one visit per user.
    """
    def _make(**overrides):
        now = utcnow()
        fields = {
            "title": "Cave Night",
            "kind": EVENT_KIND_SCHEDULED,
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=2),
            "user_time_limit": 30,
            "max_participations_per_user": 1,
        }
        fields.update(overrides)
        return event_service.create_event(**fields)
    return _make


@pytest.fixture(scope='function')
def scheduled_event(make_event):
    return make_event()


@pytest.fixture(scope='function')
def ticketed_event(make_event):
    return make_event(title="Members Only", kind=EVENT_KIND_TICKETED)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def user_headers(client, user):
    return auth_headers(get_auth_token(client, user.username))


@pytest.fixture(scope='function')
def other_headers(client, other_user):
    return auth_headers(get_auth_token(client, other_user.username))


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.username))
