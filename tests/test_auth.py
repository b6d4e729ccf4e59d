import uuid


def test_missing_token_is_unauthorized(client):
    response = client.get('/api/users/me')
    assert response.status_code == 401


def test_non_bearer_header_is_unauthorized(client):
    response = client.get('/api/users/me', headers={'Authorization': 'Basic abc'})
    assert response.status_code == 401


def test_expired_token_reports_session_expired(client, users, make_token):
    token = make_token(users.contractor.id, expires_in=-10)
    response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401
    assert response.get_json()['message'].startswith('Session expired')


def test_wrong_signature_is_unauthorized(client, users, make_token):
    token = make_token(users.contractor.id, secret='another-secret-that-is-long-enough-123')
    response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401


def test_wrong_audience_is_unauthorized(client, users, make_token):
    token = make_token(users.contractor.id, audience='someone-else')
    response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401


def test_garbage_token_is_unauthorized(client):
    response = client.get('/api/users/me', headers={'Authorization': 'Bearer not.a.jwt'})
    assert response.status_code == 401


def test_unregistered_user_is_forbidden(client, make_token):
    token = make_token(str(uuid.uuid4()), email='stranger@intellibus.com')
    response = client.get('/api/users/me', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 403


def test_disabled_user_is_forbidden(client, users, auth_headers, app):
    from app import db
    users.contractor.is_active = False
    db.session.commit()
    response = client.get('/api/users/me', headers=auth_headers(users.contractor))
    assert response.status_code == 403
    assert response.get_json()['message'] == 'Account is disabled'


def test_role_comes_from_profile(client, users, auth_headers):
    response = client.get('/api/users/me', headers=auth_headers(users.manager))
    assert response.status_code == 200
    assert response.get_json()['role'] == 'manager'


def test_role_guard(client, users, auth_headers):
    response = client.get('/api/users/', headers=auth_headers(users.contractor))
    assert response.status_code == 403
    assert response.get_json()['error'] == 'Forbidden'
