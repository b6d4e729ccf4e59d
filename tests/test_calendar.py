from freezegun import freeze_time


def _entry(**fields):
    payload = {'name': 'Emancipation Day', 'type': 'holiday', 'start_date': '2026-08-01',
               'end_date': '2026-08-01', 'countries': ['Jamaica']}
    payload.update(fields)
    return payload


def test_create_entry(client, users, auth_headers):
    response = client.post('/api/calendar/', headers=auth_headers(users.admin), json=_entry())
    assert response.status_code == 201
    body = response.get_json()
    assert body['applies_to_type'] == 'ALL'
    assert body['countries'] == ['Jamaica']
    assert body['created_by'] == users.admin.id


def test_end_date_defaults_to_start(client, users, auth_headers):
    response = client.post('/api/calendar/', headers=auth_headers(users.admin),
                           json=_entry(end_date=None))
    assert response.get_json()['end_date'] == '2026-08-01'


def test_validation(client, users, auth_headers):
    headers = auth_headers(users.admin)
    assert client.post('/api/calendar/', headers=headers, json=_entry(name='')).status_code == 400
    assert client.post('/api/calendar/', headers=headers, json=_entry(type='birthday')).status_code == 400
    assert client.post('/api/calendar/', headers=headers,
                       json=_entry(end_date='2026-07-01')).status_code == 400
    assert client.post('/api/calendar/', headers=headers,
                       json=_entry(applies_to_type='ROLES', applies_to_roles=[])).status_code == 400
    assert client.post('/api/calendar/', headers=headers,
                       json=_entry(applies_to_type='ROLES', applies_to_roles=['pilot'])).status_code == 400


def test_only_admins_create(client, users, auth_headers):
    assert client.post('/api/calendar/', headers=auth_headers(users.manager), json=_entry()).status_code == 403


def test_list_by_month_filters_by_role(client, users, auth_headers):
    headers = auth_headers(users.admin)
    client.post('/api/calendar/', headers=headers, json=_entry())
    client.post('/api/calendar/', headers=headers, json=_entry(
        name='Manager offsite', type='time_off', start_date='2026-07-30', end_date='2026-08-02',
        applies_to_type='ROLES', applies_to_roles=['manager']
    ))
    client.post('/api/calendar/', headers=headers, json=_entry(name='Labour Day', start_date='2026-05-25',
                                                                end_date='2026-05-25'))

    admin_view = client.get('/api/calendar/?month=2026-08', headers=headers).get_json()['entries']
    assert [e['name'] for e in admin_view] == ['Manager offsite', 'Emancipation Day']

    contractor_view = client.get('/api/calendar/?month=2026-08',
                                 headers=auth_headers(users.contractor)).get_json()['entries']
    assert [e['name'] for e in contractor_view] == ['Emancipation Day']

    ranged = client.get('/api/calendar/?start=2026-05-01&end=2026-05-31', headers=headers).get_json()['entries']
    assert [e['name'] for e in ranged] == ['Labour Day']


def test_upcoming(client, users, auth_headers):
    headers = auth_headers(users.admin)
    client.post('/api/calendar/', headers=headers, json=_entry())
    client.post('/api/calendar/', headers=headers, json=_entry(name='Christmas', start_date='2026-12-25',
                                                                end_date='2026-12-25'))

    with freeze_time('2026-07-15'):
        response = client.get('/api/calendar/upcoming', headers=auth_headers(users.admin))
        short = client.get('/api/calendar/upcoming?days=7', headers=auth_headers(users.admin))

    assert [e['name'] for e in response.get_json()['entries']] == ['Emancipation Day']
    assert short.get_json()['entries'] == []


def test_update_and_delete(client, users, auth_headers):
    headers = auth_headers(users.admin)
    entry = client.post('/api/calendar/', headers=headers, json=_entry()).get_json()

    response = client.put(f"/api/calendar/{entry['id']}", headers=headers, json={'description': 'Public holiday'})
    assert response.status_code == 200
    assert response.get_json()['description'] == 'Public holiday'
    assert response.get_json()['name'] == 'Emancipation Day'

    assert client.delete(f"/api/calendar/{entry['id']}", headers=headers).status_code == 200
    assert client.delete(f"/api/calendar/{entry['id']}", headers=headers).status_code == 404


def test_affected_count(client, users, auth_headers):
    headers = auth_headers(users.admin)
    everyone = client.post('/api/calendar/', headers=headers, json=_entry()).get_json()
    managers = client.post('/api/calendar/', headers=headers, json=_entry(
        applies_to_type='ROLES', applies_to_roles=['manager']
    )).get_json()

    assert client.get(f"/api/calendar/{everyone['id']}/affected-count",
                      headers=headers).get_json()['affected_count'] == 5
    assert client.get(f"/api/calendar/{managers['id']}/affected-count",
                      headers=headers).get_json()['affected_count'] == 2
