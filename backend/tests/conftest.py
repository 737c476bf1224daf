import os
import sys
import pytest

# Ensure the backend root (containing the `flashbattle` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from flask import g
from flask.testing import FlaskClient

from flashbattle import create_app, db, socketio


class FreshLoginClient(FlaskClient):
    """Test client whose requests don't reuse Flask-Login's cached user.

    The flask_app fixture keeps one app context pushed, so `g` is shared
    across requests; a real request always starts with a fresh `g`.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        g.pop('auth_error', None)
        return super().open(*args, **kwargs)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    CORS_ORIGINS = []
    TOKEN_TTL_DAYS = 7
    HISTORY_LIMIT = 50
    LEADERBOARD_PAGE_SIZE_MAX = 50
    LEADERBOARD_BROADCAST_SIZE = 10


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import flashbattle.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    flask_app.test_client_class = FreshLoginClient
    return flask_app.test_client()


@pytest.fixture()
def sio_factory(flask_app):
    """Build extra Socket.IO clients on '/ws'; all are disconnected on teardown."""
    created = []

    def make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws'
        )
        created.append(test_client)
        return test_client

    yield make
    for test_client in created:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass


@pytest.fixture()
def sio_client(sio_factory):
    return sio_factory()


@pytest.fixture()
def register(client):
    """Register an account over HTTP and return the response JSON."""
    def _register(user_id, password='secret-pw', name=None):
        body = {'userId': user_id, 'password': password}
        if name:
            body['name'] = name
        res = client.post('/auth/register', json=body)
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _register
