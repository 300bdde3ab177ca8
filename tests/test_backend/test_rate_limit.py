"""Tests for request rate limiting and failed-login lockouts."""
from datetime import timedelta
import pytest
from backend.app import create_app
from backend.models import db
from backend.services import login_attempts
from backend.services.login_attempts import LoginAttemptTracker
from shared.models import now
from tests.conftest import register_and_login, DEFAULT_PASSWORD


@pytest.fixture
def limited_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'limited.db'}",
        'RATELIMIT_ENABLED': True,
        'RATELIMIT_STORAGE_URI': 'memory://',
        'RATELIMIT_DEFAULT': '4 per minute',
        'LOGIN_RATE_LIMIT': '3 per minute',
        'STORAGE_PATH': str(tmp_path / 'media'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'ALLOWED_REGISTRATION_EMAILS': ['*'],
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


class TestRateLimits:

    def test_login_limit(self, limited_app):
        client = limited_app.test_client()
        for _ in range(3):
            response = client.post('/api/auth/login', json={'email': 'x@example.com', 'password': 'wrong'})
            assert response.status_code == 401
        response = client.post('/api/auth/login', json={'email': 'x@example.com', 'password': 'wrong'})
        assert response.status_code == 429
        assert response.get_json()['error'] == 'Too many requests'

    def test_default_limit_is_per_user(self, limited_app):
        client = limited_app.test_client()
        first = register_and_login(client, 'one@example.com')
        second = register_and_login(client, 'two@example.com')
        for _ in range(4):
            assert client.get('/api/auth/me', headers=first).status_code == 200
        assert client.get('/api/auth/me', headers=first).status_code == 429
        assert client.get('/api/auth/me', headers=second).status_code == 200

    def test_disabled_in_default_test_app(self, client):
        for _ in range(15):
            response = client.post('/api/auth/login', json={'email': 'x@example.com', 'password': 'wrong'})
            assert response.status_code in (401, 429)
        # Only the lockout, never the limiter, answers here
        assert 'retry_after_minutes' in response.get_json()


class TestLoginLockoutTracker:

    def test_account_lock(self):
        tracker = LoginAttemptTracker(max_per_account=2, max_per_ip=10, lockout_minutes=15)
        assert tracker.check('a@example.com', '10.0.0.1') == 0
        tracker.record_failure('a@example.com', '10.0.0.1')
        assert tracker.check('a@example.com', '10.0.0.1') == 0
        assert tracker.record_failure('A@example.com', '10.0.0.1') == 2
        assert tracker.check('a@example.com', '10.0.0.1') == 15
        # Same account from another address is unaffected
        assert tracker.check('a@example.com', '10.0.0.2') == 0

    def test_ip_lock_covers_every_account(self):
        tracker = LoginAttemptTracker(max_per_account=5, max_per_ip=3, lockout_minutes=15)
        for email in ('a@example.com', 'b@example.com', 'c@example.com'):
            tracker.record_failure(email, '10.0.0.1')
        assert tracker.check('d@example.com', '10.0.0.1') > 0
        assert tracker.check('d@example.com', '10.0.0.9') == 0

    def test_success_clears_account_failures(self):
        tracker = LoginAttemptTracker(max_per_account=2, max_per_ip=10)
        tracker.record_failure('a@example.com', '10.0.0.1')
        tracker.record_success('a@example.com', '10.0.0.1')
        tracker.record_failure('a@example.com', '10.0.0.1')
        assert tracker.check('a@example.com', '10.0.0.1') == 0

    def test_lock_expires(self, monkeypatch):
        tracker = LoginAttemptTracker(max_per_account=1, max_per_ip=10, lockout_minutes=15)
        tracker.record_failure('a@example.com', '10.0.0.1')
        assert tracker.check('a@example.com', '10.0.0.1') == 15

        later = now() + timedelta(minutes=10)
        monkeypatch.setattr(login_attempts, 'now', lambda: later)
        assert tracker.check('a@example.com', '10.0.0.1') == 5

        later = later + timedelta(minutes=6)
        monkeypatch.setattr(login_attempts, 'now', lambda: later)
        assert tracker.check('a@example.com', '10.0.0.1') == 0

    def test_expired_keys_are_dropped_on_new_failures(self, monkeypatch):
        tracker = LoginAttemptTracker(max_per_account=5, max_per_ip=10, lockout_minutes=15)
        for n in range(20):
            tracker.record_failure(f'user{n}@example.com', f'10.0.1.{n}')
        assert len(tracker._failures) == 40

        later = now() + timedelta(minutes=16)
        monkeypatch.setattr(login_attempts, 'now', lambda: later)
        tracker.record_failure('fresh@example.com', '10.0.2.1')
        assert sorted(tracker._failures) == ['account:fresh@example.com:10.0.2.1', 'ip:10.0.2.1']

    def test_reset(self):
        tracker = LoginAttemptTracker(max_per_account=1)
        tracker.record_failure('a@example.com', '10.0.0.1')
        tracker.reset()
        assert tracker.check('a@example.com', '10.0.0.1') == 0

    def test_configured_from_app(self, app):
        tracker = app.extensions['login_attempts']
        assert tracker.max_per_account == 5
        assert tracker.max_per_ip == 15
        assert tracker.window == timedelta(minutes=15)


def test_successful_login_after_failures(client, admin_headers):
    for _ in range(4):
        client.post('/api/auth/login', json={'email': 'admin@example.com', 'password': 'wrong'})
    response = client.post('/api/auth/login', json={'email': 'admin@example.com', 'password': DEFAULT_PASSWORD})
    assert response.status_code == 200
