from app import db
from app.models import Project


def _create(test_client, headers, **fields):
    payload = {'name': 'Portal', 'client': 'Acme', 'start_date': '2026-01-01', 'end_date': '2026-06-30'}
    payload.update(fields)
    return test_client.post('/api/projects/', headers=headers, json=payload)


def test_create_project(client, users, auth_headers):
    response = _create(client, auth_headers(users.admin))
    assert response.status_code == 201
    body = response.get_json()
    assert body['name'] == 'Portal'
    assert body['is_enabled'] is True


def test_create_requires_name_and_valid_dates(client, users, auth_headers):
    assert _create(client, auth_headers(users.admin), name='  ').status_code == 400
    assert _create(client, auth_headers(users.admin), start_date='2026-07-01').status_code == 400
    assert Project.query.count() == 0


def test_only_admins_manage_projects(client, users, auth_headers):
    assert _create(client, auth_headers(users.manager)).status_code == 403


def test_list_filters_and_sorting(client, users, auth_headers):
    headers = auth_headers(users.admin)
    _create(client, headers, name='Beta', client='Zeta Corp')
    alpha = _create(client, headers, name='Alpha', client='Acme').get_json()
    client.put(f"/api/projects/{alpha['id']}/enabled", headers=headers, json={'enabled': False})

    names = [p['name'] for p in client.get('/api/projects/', headers=headers).get_json()['projects']]
    assert names == ['Alpha', 'Beta']

    enabled = client.get('/api/projects/?enabled=true', headers=headers).get_json()['projects']
    assert [p['name'] for p in enabled] == ['Beta']

    by_client = client.get('/api/projects/?sort=client&order=desc', headers=headers).get_json()['projects']
    assert [p['client'] for p in by_client] == ['Zeta Corp', 'Acme']

    found = client.get('/api/projects/?search=zeta', headers=headers).get_json()
    assert found['total'] == 1


def test_update_project(client, users, auth_headers):
    headers = auth_headers(users.admin)
    project = _create(client, headers).get_json()

    response = client.put(f"/api/projects/{project['id']}", headers=headers, json={'description': 'Rebuild'})
    assert response.status_code == 200
    assert response.get_json()['description'] == 'Rebuild'

    response = client.put(f"/api/projects/{project['id']}", headers=headers, json={'end_date': '2025-01-01'})
    assert response.status_code == 400


def test_assignments(client, users, auth_headers):
    headers = auth_headers(users.admin)
    project = _create(client, headers).get_json()
    url = f"/api/projects/{project['id']}/contractors"

    response = client.post(url, headers=headers, json={'contractor_id': users.contractor.id})
    assert response.status_code == 201

    response = client.post(url, headers=headers, json={'contractorId': users.contractor.id})
    assert response.status_code == 409

    response = client.post(url, headers=headers, json={'contractor_id': users.manager.id})
    assert response.status_code == 400

    listed = client.get(url, headers=headers).get_json()['contractors']
    assert [a['contractor_name'] for a in listed] == ['Casey Contractor']

    mine = client.get('/api/projects/mine', headers=auth_headers(users.contractor)).get_json()['projects']
    assert [p['id'] for p in mine] == [project['id']]

    client.put(f"/api/projects/{project['id']}/enabled", headers=headers, json={'enabled': False})
    mine = client.get('/api/projects/mine', headers=auth_headers(users.contractor)).get_json()['projects']
    assert mine == []

    response = client.delete(f"{url}/{users.contractor.id}", headers=headers)
    assert response.status_code == 200
    assert client.delete(f"{url}/{users.contractor.id}", headers=headers).status_code == 404


def test_project_manager(client, users, auth_headers):
    headers = auth_headers(users.admin)
    project = _create(client, headers).get_json()
    url = f"/api/projects/{project['id']}/manager"

    response = client.put(url, headers=headers, json={'manager_id': users.manager.id})
    assert response.get_json()['manager_name'] == 'Max Manager'

    assert client.put(url, headers=headers, json={'manager_id': users.contractor.id}).status_code == 400

    response = client.put(url, headers=headers, json={'manager_id': None})
    assert response.get_json()['manager_id'] is None
    assert db.session.get(Project, project['id']).manager_id is None
