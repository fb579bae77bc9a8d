"""Tests for the app-level routes: health, accounts, roles and route protection."""

import pytest

from auth import authenticate_user, create_user, is_admin, set_user_role
from config import Config


@pytest.fixture
def no_demo(monkeypatch):
    monkeypatch.setattr(Config, 'DEMO_MODE', False)


class TestHealth:
    def test_health(self, anon_client):
        body = anon_client.get('/health').get_json()
        assert body['status'] == 'ok'
        assert body['database'] == 'sqlite'
        assert 'hits' in body['page_cache']

    def test_unknown_route_is_json_404(self, anon_client):
        resp = anon_client.get('/api/nope')
        assert resp.status_code == 404
        assert resp.get_json() == {'error': 'Not found', 'path': '/api/nope'}

    def test_wrong_method_is_json_405(self, anon_client):
        resp = anon_client.patch('/api/locations')
        assert resp.status_code == 405


class TestAccounts:
    def test_create_and_authenticate(self):
        user_id = create_user('Grower@Example.com ', 'pw', 'Sam')
        user = authenticate_user('grower@example.com', 'pw')
        assert user['id'] == user_id
        assert user['role'] == 'member'
        assert authenticate_user('grower@example.com', 'wrong') is None

    def test_duplicate_email(self):
        create_user('a@example.com', 'pw', 'A')
        with pytest.raises(ValueError, match='already registered'):
            create_user('A@example.com', 'pw', 'A again')

    def test_roles(self):
        user_id = create_user('a@example.com', 'pw', 'A')
        assert not is_admin(user_id)
        assert set_user_role(user_id, 'admin')
        assert is_admin(user_id)
        with pytest.raises(ValueError):
            set_user_role(user_id, 'owner')
        assert not set_user_role(999999, 'member')

    def test_first_registration_is_admin(self, anon_client):
        resp = anon_client.post('/register', json={'email': 'one@example.com', 'password': 'pw', 'name': 'One'})
        assert resp.status_code == 201
        assert resp.get_json()['user']['role'] == 'admin'
        anon_client.post('/logout')
        resp = anon_client.post('/register', json={'email': 'two@example.com', 'password': 'pw', 'name': 'Two'})
        assert resp.get_json()['user']['role'] == 'member'

    def test_register_requires_fields(self, anon_client):
        resp = anon_client.post('/register', json={'email': 'one@example.com'})
        assert resp.status_code == 400

    def test_login(self, anon_client):
        create_user('a@example.com', 'pw', 'A')
        resp = anon_client.post('/login', data={'email': 'a@example.com', 'password': 'pw'})
        assert resp.status_code == 200
        with anon_client.session_transaction() as sess:
            assert sess['user_email'] == 'a@example.com'
        assert anon_client.post('/login', json={'email': 'a@example.com', 'password': 'x'}).status_code == 401

    def test_login_with_non_object_body(self, anon_client):
        resp = anon_client.post('/login', data='["a@example.com", "pw"]', content_type='application/json')
        assert resp.status_code == 401


class TestRouteProtection:
    def test_api_requires_login(self, no_demo, anon_client):
        resp = anon_client.get('/api/locations')
        assert resp.status_code == 401
        assert resp.get_json()['error'] == 'Authentication required'

    def test_demo_mode_runs_as_user_one(self, anon_client):
        assert anon_client.get('/api/locations').status_code == 200
        with anon_client.session_transaction() as sess:
            assert sess['user_id'] == 1

    def test_nursery_writes_need_admin(self, no_demo, anon_client, location_id):
        user_id = create_user('member@example.com', 'pw', 'Member')
        with anon_client.session_transaction() as sess:
            sess['user_id'] = user_id
        resp = anon_client.post('/api/nurseries', json={'name': 'Shed', 'location_id': location_id})
        assert resp.status_code == 403

        set_user_role(user_id, 'admin')
        resp = anon_client.post('/api/nurseries', json={'name': 'Shed', 'location_id': location_id})
        assert resp.status_code == 201

    def test_user_admin_routes(self, no_demo, anon_client):
        admin_id = create_user('admin@example.com', 'pw', 'Admin', role='admin')
        member_id = create_user('member@example.com', 'pw', 'Member')
        with anon_client.session_transaction() as sess:
            sess['user_id'] = admin_id
        assert len(anon_client.get('/api/users').get_json()) == 2
        resp = anon_client.put(f'/api/users/{member_id}/role', json={'role': 'admin'})
        assert resp.get_json()['user']['role'] == 'admin'
        assert anon_client.put('/api/users/999999/role', json={'role': 'admin'}).status_code == 404

    def test_me(self, client):
        create_user('a@example.com', 'pw', 'A')
        body = client.get('/api/me').get_json()
        assert body['user']['id'] == 1
