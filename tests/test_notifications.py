from app.utils.helpers import create_notification
from app import db


def _notify(user, title='Hello'):
    notification = create_notification(user.id, 'submitted', title, 'Body text')
    db.session.commit()
    return notification


def test_list_only_own_notifications(client, users, auth_headers):
    _notify(users.manager, 'First')
    _notify(users.manager, 'Second')
    _notify(users.admin)

    response = client.get('/api/notifications/', headers=auth_headers(users.manager))
    body = response.get_json()
    assert body['total'] == 2
    assert {n['title'] for n in body['notifications']} == {'First', 'Second'}


def test_mark_read_and_unread_count(client, users, auth_headers):
    first = _notify(users.manager)
    _notify(users.manager)
    headers = auth_headers(users.manager)

    assert client.get('/api/notifications/unread-count', headers=headers).get_json() == {'unread_count': 2}

    response = client.put(f'/api/notifications/{first.id}/read', headers=headers)
    assert response.status_code == 200
    assert response.get_json()['is_read'] is True

    unread = client.get('/api/notifications/?unread_only=true', headers=headers).get_json()
    assert unread['total'] == 1

    response = client.put('/api/notifications/read-all', headers=headers)
    assert response.get_json()['updated'] == 1
    assert client.get('/api/notifications/unread-count', headers=headers).get_json() == {'unread_count': 0}


def test_cannot_touch_other_users_notifications(client, users, auth_headers):
    notification = _notify(users.admin)
    response = client.put(f'/api/notifications/{notification.id}/read', headers=auth_headers(users.manager))
    assert response.status_code == 404


def test_create_notification_without_recipient_is_skipped():
    assert create_notification(None, 'submitted', 'Title', 'Body') is None


def test_submission_workflow_notifies_each_party(client, users, auth_headers):
    client.post('/api/submissions/', headers=auth_headers(users.contractor), json={
        'workPeriod': '2026-02', 'hoursSubmitted': 160, 'description': 'Work'
    })
    manager_inbox = client.get('/api/notifications/', headers=auth_headers(users.manager)).get_json()
    assert [n['event_type'] for n in manager_inbox['notifications']] == ['submitted']

    submission_id = manager_inbox['notifications'][0]['submission_id']
    client.post(f'/api/submissions/{submission_id}/actions', headers=auth_headers(users.manager),
                json={'action': 'REJECT', 'note': 'Missing detail'})

    contractor_inbox = client.get('/api/notifications/', headers=auth_headers(users.contractor)).get_json()
    assert [n['event_type'] for n in contractor_inbox['notifications']] == ['manager_rejected']
    assert 'Missing detail' in contractor_inbox['notifications'][0]['message']


def test_filter_by_event_type(client, users, auth_headers):
    _notify(users.manager, 'Submitted one')
    create_notification(users.manager.id, 'paid', 'Paid one', 'Body')
    db.session.commit()
    headers = auth_headers(users.manager)

    body = client.get('/api/notifications/?event_type=paid', headers=headers).get_json()
    assert [n['title'] for n in body['notifications']] == ['Paid one']

    assert client.get('/api/notifications/?event_type=birthday', headers=headers).status_code == 400
