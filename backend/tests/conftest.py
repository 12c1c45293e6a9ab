"""
Pytest fixtures for stockpos backend tests.

Provides an in-memory database, a test client, and signed-in operators.
"""

import pytest
from stockpos import create_app
from stockpos.extensions import db
from stockpos.services import auth_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'RETRY_BACKOFF_BASE': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


def clear_database():
    """Delete every row but keep the schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh, empty database for each test."""
    clear_database()
    yield db.session
    db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def admin_user(db_session):
    return auth_service.create_user("admin", "adminpass", role="admin")


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return auth_service.create_user("cashier", "cashierpass", role="user")


def get_auth_token(client, username: str, password: str) -> str | None:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin", "adminpass"))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_user):
    return auth_headers(get_auth_token(client, "cashier", "cashierpass"))
