"""Tests for cross-entity search."""
import pytest


@pytest.fixture
def searchable(admin_api, hierarchy):
    project = hierarchy['project']
    dragon = admin_api.asset(project['id'], code='DRAGON', name='Dragon model')
    admin_api.asset(project['id'], code='DRAGON_RIG', name='Rig')
    admin_api.asset(project['id'], code='CASTLE', name='Castle', description='Where the dragon sleeps')
    admin_api.version('asset', dragon['id'], 'DRAGON_V001', name='First dragon pass')
    admin_api.create('/api/notes', {'link_type': 'Shot', 'link_id': hierarchy['shot']['id'],
                                    'subject': 'Wings', 'content': 'The dragon wings clip the tower'})
    return hierarchy


def search(api, query=''):
    return api.get(f'/api/search?{query}')


class TestSearch:

    def test_ranks_exact_then_prefix_then_substring(self, admin_api, searchable):
        body = search(admin_api, 'q=dragon&entity=asset').get_json()
        assert [r['code'] for r in body['results']] == ['DRAGON', 'DRAGON_RIG', 'CASTLE']
        assert [r['rank'] for r in body['results']] == [3, 2, 1]
        assert body['query'] == 'dragon'
        assert body['entity'] == 'asset'

    def test_all_entity_types(self, admin_api, searchable):
        body = search(admin_api, 'q=dragon').get_json()
        types = {r['type'] for r in body['results']}
        assert types == {'asset', 'version', 'note'}
        version = next(r for r in body['results'] if r['type'] == 'version')
        assert version['entity_type'] == 'asset'
        assert version['latest'] is True
        note = next(r for r in body['results'] if r['type'] == 'note')
        assert note['name'] == 'Wings'
        assert note['link_type'] == 'Shot'

    def test_pagination(self, admin_api, searchable):
        body = search(admin_api, 'q=dragon&per_page=2&page=2').get_json()
        assert body['pagination']['total'] == 5
        assert body['pagination']['pages'] == 3
        assert len(body['results']) == 2
        assert body['pagination']['has_prev'] is True

    def test_wildcards_are_literal(self, admin_api, searchable):
        assert search(admin_api, 'q=%25%25').get_json()['pagination']['total'] == 0
        body = search(admin_api, 'q=N_R&entity=asset').get_json()
        assert [r['code'] for r in body['results']] == ['DRAGON_RIG']

    def test_query_validation(self, admin_api):
        assert search(admin_api, 'q=a').status_code == 400
        assert search(admin_api).status_code == 400
        assert search(admin_api, 'q=' + 'x' * 101).status_code == 400
        assert search(admin_api, 'q=dragon&entity=spaceship').status_code == 400
        response = search(admin_api, 'q=1%3B%20DROP%20TABLE%20users%3B%20--')
        assert response.status_code == 400

    def test_results_respect_project_access(self, member_api, searchable):
        assert search(member_api, 'q=dragon').get_json()['pagination']['total'] == 0
        member_api.project(code='DRAGON_SHOW', name='Member project')
        body = search(member_api, 'q=dragon').get_json()
        assert [r['code'] for r in body['results']] == ['DRAGON_SHOW']

    def test_requires_authentication(self, client):
        assert client.get('/api/search?q=dragon').status_code == 401
