"""Pytest configuration and fixtures for Shogunito tests."""
import pytest
import tempfile
import os
from backend.app import create_app
from backend.cli import seed_default_statuses
from backend.models import db

DEFAULT_PASSWORD = 'Passw0rdX'


@pytest.fixture
def app(tmp_path):
    """Create and configure a test app instance."""
    # Create temporary database for testing
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    test_config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'RATELIMIT_ENABLED': False,
        'STORAGE_PATH': str(tmp_path / 'media'),
        'LOG_DIR': str(tmp_path / 'logs'),
        'ALLOWED_REGISTRATION_EMAILS': ['*'],
    }

    app = create_app(test_config)

    with app.app_context():
        db.create_all()
        seed_default_statuses()
        db.session.commit()

    yield app

    # Cleanup
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


def register_and_login(client, email, name='Test User', password=DEFAULT_PASSWORD):
    """Register a user and return Authorization headers for them."""
    response = client.post('/api/auth/register', json={'email': email, 'name': name, 'password': password})
    assert response.status_code == 201, response.get_json()
    response = client.post('/api/auth/login', json={'email': email, 'password': password})
    assert response.status_code == 200, response.get_json()
    return {'Authorization': f"Bearer {response.get_json()['access_token']}"}


class ApiClient:
    """Test client bound to one user's headers, with shortcuts for building a hierarchy."""

    def __init__(self, client, headers):
        self.client = client
        self.headers = headers

    def get(self, url, **kwargs):
        return self.client.get(url, headers=self.headers, **kwargs)

    def post(self, url, json=None, **kwargs):
        return self.client.post(url, json=json, headers=self.headers, **kwargs)

    def put(self, url, json=None):
        return self.client.put(url, json=json, headers=self.headers)

    def patch(self, url, json=None):
        return self.client.patch(url, json=json, headers=self.headers)

    def delete(self, url):
        return self.client.delete(url, headers=self.headers)

    def create(self, url, payload):
        response = self.post(url, json=payload)
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    def project(self, code='PRJ', name='Test Project', **fields):
        return self.create('/api/projects', {'code': code, 'name': name, **fields})

    def episode(self, project_id, code='EP01', name='Episode One', **fields):
        return self.create('/api/episodes', {'code': code, 'name': name, 'project_id': project_id, **fields})

    def sequence(self, episode_id, code='SQ01', name='Sequence One', **fields):
        return self.create('/api/sequences', {'code': code, 'name': name, 'episode_id': episode_id, **fields})

    def shot(self, sequence_id, name='Shot One', **fields):
        return self.create('/api/shots', {'name': name, 'sequence_id': sequence_id, **fields})

    def asset(self, project_id, code='AST01', name='Asset One', **fields):
        return self.create('/api/assets', {'code': code, 'name': name, 'project_id': project_id, **fields})

    def version(self, entity_type, entity_id, code, name='Version', **fields):
        return self.create('/api/versions', {
            'code': code, 'name': name, 'entity_type': entity_type, 'entity_id': entity_id, **fields
        })


@pytest.fixture
def admin_headers(client):
    """The first registered user becomes admin."""
    return register_and_login(client, 'admin@example.com', name='Admin User')


@pytest.fixture
def member_headers(client, admin_headers):
    return register_and_login(client, 'member@example.com', name='Member User')


@pytest.fixture
def admin_api(client, admin_headers):
    return ApiClient(client, admin_headers)


@pytest.fixture
def member_api(client, member_headers):
    return ApiClient(client, member_headers)


@pytest.fixture
def member_id(member_api):
    return member_api.get('/api/auth/me').get_json()['id']


@pytest.fixture
def hierarchy(admin_api):
    """Project -> episode -> sequence -> shot, created by the admin."""
    project = admin_api.project()
    episode = admin_api.episode(project['id'])
    sequence = admin_api.sequence(episode['id'])
    shot = admin_api.shot(sequence['id'])
    return {'project': project, 'episode': episode, 'sequence': sequence, 'shot': shot}
