import os
import sys
import pytest

# Ensure the backend root (containing the `chessclub` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from chessclub import create_app, db, socketio
from chessclub.services import get_services
from chessclub.services.notifier import ChangeNotifier, SocketIONotifier
from config import Config


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    ELO_K_FACTOR = 20
    DEFAULT_INITIAL_RATING = 1200
    AUTO_VERIFY_GAMES = False


class RecordingNotifier(ChangeNotifier):
    """Captures broadcast events instead of sending them."""

    def __init__(self):
        self.events = []

    def broadcast(self, event):
        self.events.append(event)

    def of_type(self, event_type, action=None):
        return [
            e for e in self.events
            if e['type'] == event_type and (action is None or e['data']['action'] == action)
        ]

    def clear(self):
        self.events.clear()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def flask_app(notifier):
    application = create_app(TestConfig, notifier=notifier)
    with application.app_context():
        # Ensure models are imported so tables are created
        import chessclub.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def services(flask_app):
    return get_services()


@pytest.fixture()
def ledger(services):
    return services.ledger


@pytest.fixture()
def store(services):
    return services.players


@pytest.fixture()
def make_player(store):
    counter = {'n': 0}

    def _make(name=None, pin='1234', rating=1200, is_admin=False):
        counter['n'] += 1
        return store.create(name or f'Player {counter["n"]}', pin, is_admin=is_admin, initial_rating=rating)

    return _make


@pytest.fixture()
def login(client):
    def _login(name, pin='1234'):
        res = client.post('/api/auth/login', json={'name': name, 'pin': pin})
        assert res.status_code == 200, res.get_json()
        return res.get_json()['player']

    return _login


@pytest.fixture()
def admin(make_player):
    return make_player(name='Admin', pin='9999', is_admin=True)


@pytest.fixture()
def admin_client(client, admin, login):
    login('Admin', '9999')
    return client


@pytest.fixture()
def live_app():
    """App wired to the real Socket.IO notifier."""
    application = create_app(TestConfig)
    with application.app_context():
        import chessclub.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def sio_client(live_app):
    test_client = socketio.test_client(
        live_app,
        flask_test_client=live_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


class FailingEmitter:
    """Socket.IO stand-in whose transport is down."""

    def __init__(self):
        self.attempts = 0

    def emit(self, *args, **kwargs):
        self.attempts += 1
        raise RuntimeError('transport down')


@pytest.fixture()
def failing_emitter():
    return FailingEmitter()


@pytest.fixture()
def offline_app(failing_emitter):
    """App whose broadcasts all fail at the transport."""
    application = create_app(TestConfig, notifier=SocketIONotifier(failing_emitter))
    with application.app_context():
        import chessclub.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
