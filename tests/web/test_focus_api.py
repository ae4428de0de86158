"""
FocusLog API Endpoint Tests.
Tests auth, focus entry and analytics routes through the Flask test client.
"""
import json

import pytest


def _post(client, url, payload, headers=None):
    return client.post(url, data=json.dumps(payload), content_type='application/json', headers=headers or {})


def _put(client, url, payload, headers=None):
    return client.put(url, data=json.dumps(payload), content_type='application/json', headers=headers or {})


class TestHealthAndMetrics:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert json.loads(response.data) == {'status': 'healthy', 'service': 'focuslog'}

    def test_metrics_endpoint(self, client):
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'focuslog_entries_logged_total' in response.data


class TestAuthAPI:
    """Registration, login and the user profile."""

    def test_register_returns_token(self, client):
        response = _post(client, '/api/auth/register', {'username': 'alex', 'password': 'pw'})

        assert response.status_code == 200
        assert json.loads(response.data)['token']

    def test_register_duplicate(self, client, user):
        response = _post(client, '/api/auth/register', {'username': 'tester', 'password': 'pw'})

        assert response.status_code == 400
        assert json.loads(response.data)['msg'] == 'User already exists'

    def test_register_missing_fields(self, client):
        response = _post(client, '/api/auth/register', {'username': 'alex'})
        assert response.status_code == 400

    def test_register_no_body(self, client):
        response = client.post('/api/auth/register')
        assert response.status_code == 400

    def test_login(self, client, user):
        response = _post(client, '/api/auth/login', {'username': 'tester', 'password': 'secret'})

        assert response.status_code == 200
        assert json.loads(response.data)['token']

    def test_login_wrong_password(self, client, user):
        response = _post(client, '/api/auth/login', {'username': 'tester', 'password': 'nope'})

        assert response.status_code == 400
        assert json.loads(response.data)['msg'] == 'Invalid Credentials'

    def test_load_user_hides_hash(self, client, auth_headers):
        response = client.get('/api/auth/user', headers=auth_headers)
        data = json.loads(response.data)

        assert response.status_code == 200
        assert data['username'] == 'tester'
        assert 'password_hash' not in data

    def test_bearer_token_accepted(self, client, token):
        response = client.get('/api/auth/user', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200

    @pytest.mark.parametrize('headers', [{}, {'x-auth-token': 'garbage'}])
    def test_protected_routes_need_token(self, client, headers):
        response = client.get('/api/focus', headers=headers)

        assert response.status_code == 401
        assert json.loads(response.data)['msg'] == 'No token, authorization denied'

    def test_update_tracks(self, client, auth_headers):
        response = _put(client, '/api/auth/tracks',
                        {'tracks': [{'name': 'DSA', 'currentTopic': 'Graphs', 'targetHours': 2}]},
                        auth_headers)

        assert response.status_code == 200
        assert json.loads(response.data) == [{'name': 'DSA', 'currentTopic': 'Graphs', 'targetHours': 2.0}]

    def test_update_tracks_requires_list(self, client, auth_headers):
        response = _put(client, '/api/auth/tracks', {'tracks': 'DSA'}, auth_headers)
        assert response.status_code == 400

    def test_update_todos(self, client, auth_headers):
        response = _put(client, '/api/auth/todos', {'todos': [{'text': 'Revise', 'isCompleted': True}]},
                        auth_headers)

        assert response.status_code == 200
        assert json.loads(response.data) == [{'text': 'Revise', 'isCompleted': True}]

    def test_update_user(self, client, auth_headers):
        response = _put(client, '/api/auth/update', {'tracks': [{'name': 'Dev'}]}, auth_headers)
        data = json.loads(response.data)

        assert response.status_code == 200
        assert data['user']['username'] == 'tester'
        assert data['user']['tracks'][0]['name'] == 'Dev'


class TestFocusAPI:
    """Daily entry CRUD."""

    def test_log_entry(self, client, auth_headers):
        response = _post(client, '/api/focus', {
            'date': '2024-01-05',
            'sessions': [{'category': 'DSA', 'subCategory': 'Graphs', 'focused': 1.5, 'assigned': 2}],
            'notes': 'good day'
        }, auth_headers)
        data = json.loads(response.data)

        assert response.status_code == 200
        assert data['_id'] == '1'
        assert data['date'] == '2024-01-05'
        assert data['sessions'][0]['subCategory'] == 'Graphs'
        assert data['notes'] == 'good day'

    def test_log_twice_merges(self, client, auth_headers):
        payload = {'date': '2024-01-05', 'sessions': [{'category': 'DSA', 'focused': 1}]}
        _post(client, '/api/focus', payload, auth_headers)
        response = _post(client, '/api/focus', payload, auth_headers)
        data = json.loads(response.data)

        assert len(data['sessions']) == 1
        assert data['sessions'][0]['focused'] == 2

    def test_invalid_payload(self, client, auth_headers):
        response = _post(client, '/api/focus', {
            'date': 'yesterday',
            'sessions': [{'category': 'DSA', 'focused': -1}]
        }, auth_headers)
        data = json.loads(response.data)

        assert response.status_code == 400
        assert data['error'] == 'Invalid data'
        assert len(data['details']) == 2

    def test_list_entries(self, client, auth_headers):
        for day in ('2024-01-04', '2024-01-05'):
            _post(client, '/api/focus', {'date': day, 'sessions': [{'category': 'DSA', 'focused': 1}]},
                  auth_headers)

        response = client.get('/api/focus', headers=auth_headers)
        assert [e['date'] for e in json.loads(response.data)] == ['2024-01-05', '2024-01-04']

    def test_replace_entry(self, client, auth_headers):
        created = json.loads(_post(client, '/api/focus', {
            'date': '2024-01-05', 'sessions': [{'category': 'DSA', 'focused': 1}]
        }, auth_headers).data)

        response = _put(client, f"/api/focus/{created['_id']}",
                        {'sessions': [{'category': 'Dev', 'focused': 0.5}], 'notes': 'fixed'},
                        auth_headers)
        data = json.loads(response.data)

        assert response.status_code == 200
        assert [s['category'] for s in data['sessions']] == ['Dev']
        assert data['notes'] == 'fixed'

    def test_replace_missing(self, client, auth_headers):
        response = _put(client, '/api/focus/42', {'sessions': []}, auth_headers)

        assert response.status_code == 404
        assert json.loads(response.data)['msg'] == 'Log not found'

    def test_delete_entry(self, client, auth_headers):
        created = json.loads(_post(client, '/api/focus', {
            'date': '2024-01-05', 'sessions': [{'category': 'DSA', 'focused': 1}]
        }, auth_headers).data)

        response = client.delete(f"/api/focus/{created['_id']}", headers=auth_headers)
        assert json.loads(response.data) == {'msg': 'Entry removed'}
        assert client.delete(f"/api/focus/{created['_id']}", headers=auth_headers).status_code == 404

    def test_store_failure_is_500(self, client, auth_headers, mock_db_data):
        mock_db_data['fail'] = True
        response = client.get('/api/focus', headers=auth_headers)

        assert response.status_code == 500
        assert json.loads(response.data) == {'error': 'Server Error'}


class TestAnalyticsAPI:
    """Analytics datasets over the stored entries."""

    @pytest.fixture
    def today_entries(self, client, auth_headers, monkeypatch):
        from datetime import date

        from focuslog import analytics

        monkeypatch.setattr(analytics, 'today_canonical', lambda: date(2024, 1, 5))
        for day in ('2024-01-03', '2024-01-04', '2024-01-05'):
            _post(client, '/api/focus', {
                'date': day,
                'sessions': [{'category': 'DSA', 'focused': 1, 'assigned': 2},
                             {'category': 'Dev', 'focused': 2, 'assigned': 2}]
            }, auth_headers)

    def test_streak(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/streak', headers=auth_headers)
        assert json.loads(response.data) == {'current_streak': 3, 'longest_streak': 3, 'total_days': 3}

    def test_heatmap(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/heatmap?days=6&cap=3', headers=auth_headers)
        data = json.loads(response.data)

        assert data['days'] == 6
        assert len(data['series']) == 7
        assert data['series'][-1] == {'date': '2024-01-05', 'hours': 3.0, 'intensity': 1.0}

    def test_heatmap_default_length(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/heatmap', headers=auth_headers)
        assert len(json.loads(response.data)['series']) == 90

    @pytest.mark.parametrize('query', ['days=abc', 'days=-1', 'days=99999', 'cap=x', 'cap=nan', 'cap=inf'])
    def test_heatmap_bad_params(self, client, auth_headers, query):
        response = client.get(f'/api/analytics/heatmap?{query}', headers=auth_headers)
        assert response.status_code == 400

    def test_dashboard(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/dashboard?range=7', headers=auth_headers)
        data = json.loads(response.data)

        assert data['stats']['total_focused'] == 9
        assert data['stats']['efficiency'] == 75
        assert data['available_categories'] == ['All', 'DSA', 'Dev']
        assert data['category'] == 'All'

    def test_dashboard_category(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/dashboard?range=all&category=DSA', headers=auth_headers)
        data = json.loads(response.data)

        assert data['stats']['total_focused'] == 3
        assert data['stats']['efficiency'] == 50
        assert [c['name'] for c in data['categories']] == ['DSA']

    def test_dashboard_custom_range(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/dashboard?range=custom&start=2024-01-04&end=2024-01-04',
                              headers=auth_headers)
        assert json.loads(response.data)['stats']['total_days'] == 1

    def test_overview(self, client, auth_headers, today_entries):
        response = client.get('/api/analytics/overview', headers=auth_headers)
        data = json.loads(response.data)

        assert len(data['execution_vs_intention']) == 3
        assert data['allocation'][0]['name'] == 'Dev'
        assert data['streak']['current_streak'] == 3

    def test_empty_analytics(self, client, auth_headers):
        response = client.get('/api/analytics/streak', headers=auth_headers)
        assert json.loads(response.data) == {'current_streak': 0, 'longest_streak': 0, 'total_days': 0}
