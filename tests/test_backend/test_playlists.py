"""Tests for playlists and their ordered version entries."""
import pytest


@pytest.fixture
def takes(admin_api, hierarchy):
    """Three versions on the hierarchy shot: V001, V002, V003."""
    shot_id = hierarchy['shot']['id']
    return [admin_api.version('shot', shot_id, f'V00{n}') for n in range(1, 4)]


@pytest.fixture
def playlist(admin_api, hierarchy):
    return admin_api.create('/api/playlists', {'code': 'PL01', 'name': 'Dailies',
                                               'project_id': hierarchy['project']['id']})


def entries_url(playlist):
    return f"/api/playlists/{playlist['id']}/versions"


class TestPlaylistCrud:

    def test_create_with_version_codes(self, admin_api, hierarchy, takes):
        created = admin_api.create('/api/playlists', {'code': 'PL01', 'name': 'Dailies',
                                                      'project_id': hierarchy['project']['id'],
                                                      'version_codes': ['V003', 'V001']})
        assert created['version_codes'] == ['V003', 'V001']
        assert admin_api.get(f"/api/playlists/{created['id']}").get_json()['version_codes'] == ['V003', 'V001']

    def test_unknown_version_codes(self, admin_api, hierarchy, takes):
        response = admin_api.post('/api/playlists', json={'code': 'PL01', 'name': 'Dailies',
                                                          'project_id': hierarchy['project']['id'],
                                                          'version_codes': ['V001', 'GHOST', 'PHANTOM']})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Versions not found: GHOST, PHANTOM'
        assert admin_api.get('/api/playlists').get_json()['pagination']['total'] == 0

    def test_from_versions_requires_codes(self, admin_api, hierarchy, takes):
        url = '/api/playlists/from-versions'
        base = {'code': 'PL01', 'name': 'Dailies', 'project_id': hierarchy['project']['id']}
        assert admin_api.post(url, json=base).status_code == 400
        assert admin_api.post(url, json={**base, 'version_codes': []}).status_code == 400
        created = admin_api.create(url, {**base, 'version_codes': ['V002']})
        assert created['version_codes'] == ['V002']

    def test_update_status(self, admin_api, playlist):
        response = admin_api.put(f"/api/playlists/{playlist['id']}", json={'status': 'review'})
        body = response.get_json()
        assert body['status'] == 'review'
        assert body['status_updated_at'] is not None

    def test_project_cannot_change(self, admin_api, playlist):
        response = admin_api.put(f"/api/playlists/{playlist['id']}", json={'project_id': 2})
        assert response.status_code == 400

    def test_delete_keeps_listed_versions(self, admin_api, playlist, takes):
        admin_api.put(f'{entries_url(playlist)}/reorder', json={'version_codes': ['V001', 'V002']})
        summary = admin_api.delete(f"/api/playlists/{playlist['id']}").get_json()['summary']
        assert summary['playlists'] == 1
        assert summary['playlist_entries'] == 2
        assert summary['versions'] == 0
        assert admin_api.get('/api/versions').get_json()['pagination']['total'] == 3


class TestPlaylistEntries:

    def test_append_and_insert(self, admin_api, playlist, takes):
        url = entries_url(playlist)
        assert admin_api.post(url, json={'version_code': 'V001'}).get_json()['version_codes'] == ['V001']
        assert admin_api.post(url, json={'version_code': 'V002'}).get_json()['version_codes'] == ['V001', 'V002']
        body = admin_api.post(url, json={'version_code': 'V003', 'position': 0}).get_json()
        assert body['version_codes'] == ['V003', 'V001', 'V002']

    def test_position_past_end_appends(self, admin_api, playlist, takes):
        url = entries_url(playlist)
        admin_api.post(url, json={'version_code': 'V001'})
        body = admin_api.post(url, json={'version_code': 'V002', 'position': 50}).get_json()
        assert body['version_codes'] == ['V001', 'V002']

    def test_duplicate_and_unknown(self, admin_api, playlist, takes):
        url = entries_url(playlist)
        admin_api.post(url, json={'version_code': 'V001'})
        response = admin_api.post(url, json={'version_code': 'V001'})
        assert response.status_code == 400
        assert response.get_json()['error'] == "Version 'V001' is already in this playlist"
        assert admin_api.post(url, json={'version_code': 'GHOST'}).status_code == 404
        assert admin_api.post(url, json={'version_code': 'V002', 'position': -1}).status_code == 400

    def test_remove(self, admin_api, playlist, takes):
        url = entries_url(playlist)
        admin_api.put(f'{url}/reorder', json={'version_codes': ['V001', 'V002', 'V003']})
        response = admin_api.delete(f'{url}/V002')
        assert response.status_code == 200
        assert response.get_json()['version_codes'] == ['V001', 'V003']
        assert admin_api.delete(f'{url}/V002').status_code == 404

    def test_reorder(self, admin_api, playlist, takes):
        url = f'{entries_url(playlist)}/reorder'
        admin_api.put(url, json={'version_codes': ['V001', 'V002', 'V003']})
        body = admin_api.put(url, json={'version_codes': ['V003', 'V001', 'V002']}).get_json()
        assert body['version_codes'] == ['V003', 'V001', 'V002']
        # Reordering to a subset drops the missing entries
        body = admin_api.put(url, json={'version_codes': ['V002']}).get_json()
        assert body['version_codes'] == ['V002']
        assert admin_api.put(url, json={'version_codes': ['V001', 'V001']}).status_code == 400

    def test_deleting_version_removes_entry(self, admin_api, playlist, takes):
        url = entries_url(playlist)
        admin_api.put(f'{url}/reorder', json={'version_codes': ['V001', 'V002']})
        summary = admin_api.delete(f"/api/versions/{takes[0]['id']}").get_json()['summary']
        assert summary['playlist_entries'] == 1
        assert admin_api.get(f"/api/playlists/{playlist['id']}").get_json()['version_codes'] == ['V002']

    def test_viewer_cannot_edit_entries(self, admin_api, member_api, playlist, takes, hierarchy, member_id):
        admin_api.post(f"/api/projects/{hierarchy['project']['id']}/permissions",
                       json={'user_id': member_id, 'role': 'viewer'})
        assert member_api.get(f"/api/playlists/{playlist['id']}").status_code == 200
        assert member_api.post(entries_url(playlist), json={'version_code': 'V001'}).status_code == 403
