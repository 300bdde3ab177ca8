"""Tests for versions: numbering, the latest flag and entity+version creation."""
import pytest
from sqlalchemy.exc import IntegrityError
from backend.models import db, Version
from backend.services.versioning import clear_latest_flags, repair_latest_flags
from backend.utils import find_latest_flag_violations
from shared.enums import VersionEntityType


def latest_codes(api, entity_type, entity_id):
    body = api.get(f'/api/versions?entity_type={entity_type}&entity_id={entity_id}&latest=true').get_json()
    return [v['code'] for v in body['versions']]


class TestVersionCreation:

    def test_numbering_and_default_status(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        first = admin_api.version('shot', shot_id, 'SH001_V001')
        second = admin_api.version('shot', shot_id, 'SH001_V002')
        assert (first['version_number'], second['version_number']) == (1, 2)
        assert first['status'] == 'wip'
        assert first['entity_type'] == 'shot'

    def test_numbering_is_per_entity(self, admin_api, hierarchy):
        other = admin_api.shot(hierarchy['sequence']['id'], name='Other Shot')
        admin_api.version('shot', hierarchy['shot']['id'], 'A_V001')
        assert admin_api.version('shot', other['id'], 'B_V001')['version_number'] == 1

    def test_new_version_takes_latest_flag(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        first = admin_api.version('shot', shot_id, 'V001')
        admin_api.version('shot', shot_id, 'V002')
        assert latest_codes(admin_api, 'shot', shot_id) == ['V002']
        assert admin_api.get(f"/api/versions/{first['id']}").get_json()['latest'] is False

    def test_non_latest_version_leaves_flag_alone(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        created = admin_api.version('shot', shot_id, 'V002', latest=False)
        assert created['latest'] is False
        assert latest_codes(admin_api, 'shot', shot_id) == ['V001']

    def test_entity_by_code(self, admin_api):
        project = admin_api.project()
        admin_api.asset(project['id'], code='AST01')
        version = admin_api.create('/api/versions', {'code': 'AST01_V001', 'name': 'Model', 'entity_type': 'asset',
                                                     'entity_code': 'AST01'})
        assert version['entity_type'] == 'asset'

    def test_versions_on_every_entity_kind(self, admin_api, hierarchy):
        project = hierarchy['project']
        playlist = admin_api.create('/api/playlists', {'code': 'PL01', 'name': 'Dailies', 'project_id': project['id']})
        for entity_type, entity_id in (('project', project['id']), ('episode', hierarchy['episode']['id']),
                                       ('sequence', hierarchy['sequence']['id']), ('playlist', playlist['id'])):
            version = admin_api.version(entity_type, entity_id, f'{entity_type}_V001')
            assert version['latest'] is True

    def test_missing_entity(self, admin_api):
        response = admin_api.post('/api/versions', json={'code': 'V001', 'name': 'Take', 'entity_type': 'shot',
                                                         'entity_id': 999})
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Shot with ID 999 not found'

    def test_duplicate_code(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        response = admin_api.post('/api/versions', json={'code': 'V001', 'name': 'Again', 'entity_type': 'shot',
                                                         'entity_id': shot_id})
        assert response.status_code == 409
        # The failed insert must not have touched the existing latest version
        assert latest_codes(admin_api, 'shot', shot_id) == ['V001']

    @pytest.mark.parametrize('payload, message', [
        ({'latest': 'true'}, 'latest'),
        ({'duration': 'long'}, 'duration'),
        ({'frame_range': 'abc'}, 'frame_range'),
        ({'status': 'approved', 'status_id': 'x' * 40}, 'status_id'),
    ])
    def test_invalid_fields(self, admin_api, hierarchy, payload, message):
        response = admin_api.post('/api/versions', json={'code': 'V001', 'name': 'Take', 'entity_type': 'shot',
                                                         'entity_id': hierarchy['shot']['id'], **payload})
        assert response.status_code == 400
        assert message in response.get_json()['error']

    def test_status_must_apply_to_versions(self, admin_api, hierarchy):
        response = admin_api.post('/api/versions', json={'code': 'V001', 'name': 'Take', 'entity_type': 'shot',
                                                         'entity_id': hierarchy['shot']['id'], 'status': 'final'})
        assert response.status_code == 400

    def test_viewer_cannot_create(self, admin_api, member_api, hierarchy, member_id):
        admin_api.post(f"/api/projects/{hierarchy['project']['id']}/permissions",
                       json={'user_id': member_id, 'role': 'viewer'})
        response = member_api.post('/api/versions', json={'code': 'V001', 'name': 'Take', 'entity_type': 'shot',
                                                          'entity_id': hierarchy['shot']['id']})
        assert response.status_code == 403


class TestVersionUpdates:

    def test_promote_older_version(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        first = admin_api.version('shot', shot_id, 'V001')
        admin_api.version('shot', shot_id, 'V002')

        response = admin_api.put(f"/api/versions/{first['id']}", json={'latest': True})
        assert response.status_code == 200
        assert response.get_json()['latest'] is True
        assert latest_codes(admin_api, 'shot', shot_id) == ['V001']

    def test_unset_latest_leaves_entity_without_latest(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        version = admin_api.version('shot', shot_id, 'V001')
        admin_api.put(f"/api/versions/{version['id']}", json={'latest': False})
        assert latest_codes(admin_api, 'shot', shot_id) == []

    def test_status_change_records_timestamp(self, admin_api, hierarchy):
        version = admin_api.version('shot', hierarchy['shot']['id'], 'V001')
        assert version['status_updated_at'] is None
        response = admin_api.put(f"/api/versions/{version['id']}", json={'status': 'approved'})
        body = response.get_json()
        assert body['status'] == 'approved'
        assert body['status_updated_at'] is not None

    def test_code_conflict(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        second = admin_api.version('shot', shot_id, 'V002')
        response = admin_api.put(f"/api/versions/{second['id']}", json={'code': 'V001'})
        assert response.status_code == 409

    def test_lookup_by_code(self, admin_api, hierarchy):
        version = admin_api.version('shot', hierarchy['shot']['id'], 'V001')
        assert admin_api.get('/api/versions/code/V001').get_json()['id'] == version['id']
        assert admin_api.get('/api/versions/code/NOPE').status_code == 404

    def test_list_newest_first(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        for n in range(1, 4):
            admin_api.version('shot', shot_id, f'V00{n}')
        body = admin_api.get('/api/versions').get_json()
        assert [v['code'] for v in body['versions']] == ['V003', 'V002', 'V001']
        assert admin_api.get('/api/versions?latest=maybe').status_code == 400


class TestVersionDeletion:

    def test_deleting_latest_promotes_newest_sibling(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        admin_api.version('shot', shot_id, 'V002')
        third = admin_api.version('shot', shot_id, 'V003')

        response = admin_api.delete(f"/api/versions/{third['id']}")
        assert response.status_code == 200
        assert response.get_json()['summary']['promoted'] == 'V002'
        assert latest_codes(admin_api, 'shot', shot_id) == ['V002']

    def test_deleting_non_latest_promotes_nothing(self, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        first = admin_api.version('shot', shot_id, 'V001')
        admin_api.version('shot', shot_id, 'V002')
        summary = admin_api.delete(f"/api/versions/{first['id']}").get_json()['summary']
        assert summary['promoted'] is None
        assert latest_codes(admin_api, 'shot', shot_id) == ['V002']

    def test_deleting_only_version(self, admin_api, hierarchy):
        version = admin_api.version('shot', hierarchy['shot']['id'], 'V001')
        summary = admin_api.delete(f"/api/versions/{version['id']}").get_json()['summary']
        assert summary == {'versions': 1, 'notes': 0, 'playlist_entries': 0, 'promoted': None}

    def test_deleting_removes_notes(self, admin_api, hierarchy):
        version = admin_api.version('shot', hierarchy['shot']['id'], 'V001')
        admin_api.create('/api/notes', {'link_type': 'Version', 'link_id': version['id'], 'subject': 'Comp',
                                        'content': 'Edges are soft'})
        summary = admin_api.delete(f"/api/versions/{version['id']}").get_json()['summary']
        assert summary['notes'] == 1
        assert admin_api.get('/api/notes').get_json()['pagination']['total'] == 0


class TestHybridCreation:

    def test_shot_with_version(self, admin_api, hierarchy):
        response = admin_api.post('/api/versions/shot', json={
            'name': 'Hero Shot', 'sequence_id': hierarchy['sequence']['id'],
            'version_name': 'Blocking', 'version_status': 'review'
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body['shot']['code'] == 'SQ01_SH002'
        assert body['version']['code'] == 'SQ01_SH002_001'
        assert body['version']['name'] == 'Blocking'
        assert body['version']['status'] == 'review'
        assert body['version']['entity_id'] == body['shot']['id']
        assert body['version']['latest'] is True

    def test_asset_code_generated(self, admin_api):
        project = admin_api.project(code='PRJ')
        body = admin_api.create('/api/versions/asset', {'name': 'Dialogue', 'project_id': project['id']})
        assert body['asset']['code'] == 'PRJ_AST001'
        assert body['version']['name'] == 'Initial version of Dialogue'

    def test_sequence_and_playlist_codes(self, admin_api, hierarchy):
        body = admin_api.create('/api/versions/sequence', {'name': 'Chase', 'episode_id': hierarchy['episode']['id']})
        assert body['sequence']['code'] == 'EP01_SQ001'
        body = admin_api.create('/api/versions/playlist', {'name': 'Review', 'project_id': hierarchy['project']['id']})
        assert body['playlist']['code'] == 'PRJ_PL001'

    def test_failure_rolls_back_entity(self, admin_api, hierarchy):
        admin_api.version('shot', hierarchy['shot']['id'], 'TAKEN')
        response = admin_api.post('/api/versions/shot', json={
            'name': 'Doomed Shot', 'sequence_id': hierarchy['sequence']['id'], 'version_code': 'TAKEN'
        })
        assert response.status_code == 409
        shots = admin_api.get(f"/api/shots?sequence_id={hierarchy['sequence']['id']}").get_json()['shots']
        assert [s['name'] for s in shots] == ['Shot One']

    def test_unknown_parent(self, admin_api):
        response = admin_api.post('/api/versions/asset', json={'name': 'Orphan', 'project_id': 999})
        assert response.status_code == 404


class TestLatestFlagMaintenance:

    def test_database_rejects_two_latest_versions(self, app, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        second = admin_api.version('shot', shot_id, 'V002', latest=False)
        with app.app_context():
            version = db.session.get(Version, second['id'])
            version.latest = True
            with pytest.raises(IntegrityError):
                db.session.commit()
            db.session.rollback()

    def test_repair_keeps_newest(self, app, admin_api, hierarchy):
        shot_id = hierarchy['shot']['id']
        admin_api.version('shot', shot_id, 'V001')
        admin_api.version('shot', shot_id, 'V002')
        with app.app_context():
            assert find_latest_flag_violations() == []
            assert repair_latest_flags() == 0
            assert clear_latest_flags(VersionEntityType.SHOT, shot_id) == 1
            db.session.commit()
            assert Version.query.filter_by(latest=True).count() == 0
